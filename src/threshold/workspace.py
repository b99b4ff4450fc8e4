"""Workspace root discovery.

A workspace root is the nearest directory, starting from the given path and
walking up, that carries a version-control or threshold marker. When nothing
matches, the starting path itself is treated as the workspace.
"""

from __future__ import annotations

import os
from pathlib import Path

WORKSPACE_MARKERS = (".git", ".svn", ".jj", ".threshold")

LOCAL_CONFIG_DIRNAME = ".threshold"
LANGUAGES_FILENAME = "languages.yaml"


def find_workspace_in(path: str | os.PathLike[str]) -> tuple[Path, bool]:
    """Walk up from path to the nearest workspace root.

    Returns (root, is_fallback). is_fallback is True when no marker was found
    and path itself is returned.
    """
    start = Path(path).absolute()
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in WORKSPACE_MARKERS):
            return candidate, False
    return start, True


def find_workspace() -> tuple[Path, bool]:
    """Workspace root for the current working directory."""
    return find_workspace_in(os.getcwd())


def workspace_config_dir(root: Path) -> Path:
    return root / LOCAL_CONFIG_DIRNAME


def workspace_languages_file(root: Path | None = None) -> Path:
    """Path of the workspace-local language configuration (may not exist)."""
    if root is None:
        root = find_workspace()[0]
    return workspace_config_dir(root) / LANGUAGES_FILENAME
