"""Cross-platform path canonicalization for trust store keys.

Trust decisions are keyed by canonical paths: absolute, with '..' collapsed
and symlinks followed. Unlike os.path.realpath(), canonicalize() is strict:
a path that does not exist cannot be canonicalized and yields None, so the
store never records a decision for a location that was never resolved.

On Windows, os.path.realpath() resolves mapped network drive letters
(e.g., X:\\) to their underlying UNC paths (e.g., \\\\server\\share), which
enterprise network policy may block. There we keep the drive letter and only
normalize, after checking that the path exists.
"""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

_IS_WINDOWS = sys.platform == "win32"


def safe_resolve(path: str) -> str:
    """Resolve a path to an absolute, normalized form.

    On Windows: uses os.path.abspath() to avoid resolving mapped drive letters
    to UNC paths. On POSIX: uses os.path.realpath() for full symlink resolution.
    """
    if _IS_WINDOWS:
        return os.path.normpath(os.path.abspath(path))
    return os.path.realpath(path)


def canonicalize(path: str | os.PathLike[str]) -> Path | None:
    """Return the canonical form of an existing path, or None if it cannot be resolved."""
    try:
        if _IS_WINDOWS:
            resolved = Path(safe_resolve(os.fspath(path)))
            if not resolved.exists():
                return None
            return resolved
        return Path(path).resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        logger.debug("Could not canonicalize %s", path)
        return None


def ancestors(path: Path) -> list[Path]:
    """Return path followed by each of its parents, nearest first."""
    return [path, *path.parents]


def ensure_parent_dir(path: Path) -> None:
    """Create the parent directory of path (owner-only) if it is missing."""
    parent = path.parent
    if parent.is_dir():
        return
    parent.mkdir(parents=True, exist_ok=True)
    try:
        parent.chmod(stat.S_IRWXU)  # 0700
    except OSError:
        pass  # May fail on Windows or non-owned directories


def restrict_permissions(path: Path) -> None:
    """Best-effort chmod 0600 on a file we own."""
    try:
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        logger.warning("Could not restrict permissions on %s", path)
