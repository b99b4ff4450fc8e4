"""Configuration loader: YAML documents with environment variable fallbacks.

Two kinds of configuration live here:

- settings (where the config and data directories are), read from
  <config_dir>/config.yaml with THRESHOLD_* environment variable fallbacks;
- the language tooling configuration, built by merging the embedded
  default_languages.yaml with the global and, when trusted, the
  workspace-local languages.yaml.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .merge import MERGE_DEPTH, merge_values
from .workspace import LANGUAGES_FILENAME, find_workspace, workspace_languages_file

if TYPE_CHECKING:
    from .services.trust import TrustStore

logger = logging.getLogger(__name__)

_DEFAULT_LANGUAGES_RESOURCE = "default_languages.yaml"


@dataclass
class AppSettings:
    config_dir: Path
    data_dir: Path


def _resolve_config_dir() -> Path:
    """THRESHOLD_CONFIG_DIR, else $XDG_CONFIG_HOME/threshold, else ~/.config/threshold."""
    env_dir = os.environ.get("THRESHOLD_CONFIG_DIR")
    if env_dir:
        return Path(os.path.expanduser(env_dir))
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "threshold"


def _resolve_data_dir() -> Path:
    """THRESHOLD_DATA_DIR, else $XDG_DATA_HOME/threshold, else ~/.local/share/threshold."""
    env_dir = os.environ.get("THRESHOLD_DATA_DIR")
    if env_dir:
        return Path(os.path.expanduser(env_dir))
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "threshold"


def _get_config_path(config_dir: Path | None = None) -> Path:
    return (config_dir or _resolve_config_dir()) / "config.yaml"


def load_settings(config_dir: Path | None = None) -> AppSettings:
    """Resolve directories. The data dir comes from THRESHOLD_DATA_DIR, then
    app.data_dir in config.yaml, then the platform default."""
    config_dir = config_dir or _resolve_config_dir()
    path = _get_config_path(config_dir)

    raw: dict[str, Any] = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path} must contain a mapping at the top level")

    app_raw = raw.get("app") or {}
    data_dir_raw = os.environ.get("THRESHOLD_DATA_DIR") or app_raw.get("data_dir")
    if data_dir_raw:
        data_dir = Path(os.path.expanduser(str(data_dir_raw)))
    else:
        data_dir = _resolve_data_dir()

    return AppSettings(config_dir=config_dir, data_dir=data_dir)


def default_lang_config() -> dict[str, Any]:
    """The built-in languages document. Failing to parse it is a packaging bug."""
    text = resources.files(__package__).joinpath(_DEFAULT_LANGUAGES_RESOURCE).read_text(encoding="utf-8")
    try:
        config = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Could not parse built-in {_DEFAULT_LANGUAGES_RESOURCE}: {exc}") from exc
    if not isinstance(config, dict):
        raise RuntimeError(f"Built-in {_DEFAULT_LANGUAGES_RESOURCE} must be a mapping")
    return config


def _read_overlay(path: Path) -> dict[str, Any] | None:
    """Parse one optional overlay; unreadable or malformed documents are skipped."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.debug("No usable language config at %s", path)
        return None
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError:
        logger.debug("Ignoring malformed language config at %s", path)
        return None
    if not isinstance(doc, dict):
        logger.debug("Ignoring language config at %s: not a mapping", path)
        return None
    return doc


def user_lang_config(
    use_local: bool,
    *,
    config_dir: Path | None = None,
    workspace: Path | None = None,
) -> dict[str, Any]:
    """Baseline merged with the global languages.yaml and, if use_local, the workspace one.

    Only pass use_local=True once the workspace's local file is known to be
    trusted. Later documents win: workspace-local over global over built-in.
    """
    sources = [(config_dir or _resolve_config_dir()) / LANGUAGES_FILENAME]
    if use_local:
        root = workspace if workspace is not None else find_workspace()[0]
        sources.append(workspace_languages_file(root))

    config = default_lang_config()
    for source in sources:
        overlay = _read_overlay(source)
        if overlay is not None:
            config = merge_values(config, overlay, MERGE_DEPTH)
    return config


effective_config = user_lang_config


def lang_config_for(
    store: TrustStore,
    use_local: bool | None = None,
    *,
    config_dir: Path | None = None,
    workspace: Path | None = None,
) -> dict[str, Any]:
    """Language config for a workspace, loading the local file only if the store trusts it."""
    if use_local is None:
        use_local = store.is_local_lang_config_trusted(workspace)
    return user_lang_config(use_local, config_dir=config_dir, workspace=workspace)
