"""Tests for settings resolution and the layered language configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from threshold.config import (
    AppSettings,
    default_lang_config,
    effective_config,
    lang_config_for,
    load_settings,
    user_lang_config,
)
from threshold.services.trust import TrustStore


def _write_yaml(path: Path, data: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data))
    return path


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    d = tmp_path / "config"
    d.mkdir()
    return d


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    (root / ".git").mkdir(parents=True)
    return root


class TestLoadSettings:
    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("THRESHOLD_CONFIG_DIR", str(tmp_path / "cfg"))
        monkeypatch.setenv("THRESHOLD_DATA_DIR", str(tmp_path / "data"))
        settings = load_settings()
        assert isinstance(settings, AppSettings)
        assert settings.config_dir == tmp_path / "cfg"
        assert settings.data_dir == tmp_path / "data"

    def test_xdg_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("THRESHOLD_CONFIG_DIR", raising=False)
        monkeypatch.delenv("THRESHOLD_DATA_DIR", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xc"))
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xd"))
        settings = load_settings()
        assert settings.config_dir == tmp_path / "xc" / "threshold"
        assert settings.data_dir == tmp_path / "xd" / "threshold"

    def test_data_dir_from_config_file(self, config_dir: Path, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv("THRESHOLD_DATA_DIR", raising=False)
        _write_yaml(config_dir / "config.yaml", {"app": {"data_dir": str(tmp_path / "custom")}})
        assert load_settings(config_dir).data_dir == tmp_path / "custom"

    def test_env_beats_config_file(self, config_dir: Path, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("THRESHOLD_DATA_DIR", str(tmp_path / "env"))
        _write_yaml(config_dir / "config.yaml", {"app": {"data_dir": str(tmp_path / "custom")}})
        assert load_settings(config_dir).data_dir == tmp_path / "env"

    def test_non_mapping_config_rejected(self, config_dir: Path) -> None:
        (config_dir / "config.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(config_dir)


class TestDefaultLangConfig:
    def test_parses_builtin(self) -> None:
        config = default_lang_config()
        assert "language" in config
        assert config["language"]["python"]["language-servers"] == ["pylsp"]

    def test_returns_fresh_copy(self) -> None:
        first = default_lang_config()
        first["language"].clear()
        assert default_lang_config()["language"]

    def test_malformed_builtin_is_fatal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _broken(*args, **kwargs):
            raise yaml.YAMLError("bad")

        monkeypatch.setattr("threshold.config.yaml.safe_load", _broken)
        with pytest.raises(RuntimeError, match="built-in"):
            default_lang_config()


class TestUserLangConfig:
    def test_baseline_only(self, config_dir: Path, workspace: Path) -> None:
        assert user_lang_config(False, config_dir=config_dir, workspace=workspace) == default_lang_config()

    def test_global_overlay(self, config_dir: Path, workspace: Path) -> None:
        _write_yaml(config_dir / "languages.yaml", {"language": {"python": {"comment-token": ";;"}}})
        config = user_lang_config(False, config_dir=config_dir, workspace=workspace)
        assert config["language"]["python"]["comment-token"] == ";;"
        assert config["language"]["python"]["scope"] == "source.python"
        assert "rust" in config["language"]

    def test_local_overlay_wins_over_global(self, config_dir: Path, workspace: Path) -> None:
        _write_yaml(config_dir / "languages.yaml", {"formatter": {"python": {"command": "ruff"}}})
        _write_yaml(workspace / ".threshold" / "languages.yaml", {"formatter": {"python": {"command": "yapf"}}})
        config = user_lang_config(True, config_dir=config_dir, workspace=workspace)
        assert config["formatter"]["python"]["command"] == "yapf"

    def test_local_ignored_without_use_local(self, config_dir: Path, workspace: Path) -> None:
        _write_yaml(workspace / ".threshold" / "languages.yaml", {"formatter": {"python": {"command": "evil"}}})
        config = user_lang_config(False, config_dir=config_dir, workspace=workspace)
        assert config["formatter"]["python"]["command"] == "black"

    def test_malformed_local_not_read_without_use_local(self, config_dir: Path, workspace: Path) -> None:
        bad = workspace / ".threshold" / "languages.yaml"
        bad.parent.mkdir()
        bad.write_text("language: [unclosed\n")
        assert user_lang_config(False, config_dir=config_dir, workspace=workspace) == default_lang_config()

    def test_malformed_overlays_skipped(self, config_dir: Path, workspace: Path) -> None:
        (config_dir / "languages.yaml").write_text("language: {python: [\n")
        bad = workspace / ".threshold" / "languages.yaml"
        bad.parent.mkdir()
        bad.write_text(":::\n  - [")
        assert user_lang_config(True, config_dir=config_dir, workspace=workspace) == default_lang_config()

    def test_non_mapping_overlay_skipped(self, config_dir: Path, workspace: Path) -> None:
        (config_dir / "languages.yaml").write_text("- a\n- b\n")
        assert user_lang_config(False, config_dir=config_dir, workspace=workspace) == default_lang_config()

    def test_lists_replaced_not_merged(self, config_dir: Path, workspace: Path) -> None:
        _write_yaml(config_dir / "languages.yaml", {"language": {"python": {"language-servers": ["pyright"]}}})
        config = user_lang_config(False, config_dir=config_dir, workspace=workspace)
        assert config["language"]["python"]["language-servers"] == ["pyright"]

    def test_deep_tables_replaced(self, config_dir: Path, workspace: Path) -> None:
        _write_yaml(config_dir / "languages.yaml", {"language": {"python": {"indent": {"tab-width": 2}}}})
        config = user_lang_config(False, config_dir=config_dir, workspace=workspace)
        assert config["language"]["python"]["indent"] == {"tab-width": 2}

    def test_local_defaults_to_cwd_workspace(self, config_dir: Path, workspace: Path, monkeypatch) -> None:
        _write_yaml(workspace / ".threshold" / "languages.yaml", {"debugger": {"lldb": {"command": "gdb"}}})
        monkeypatch.chdir(workspace)
        config = user_lang_config(True, config_dir=config_dir)
        assert config["debugger"]["lldb"]["command"] == "gdb"

    def test_effective_config_alias(self) -> None:
        assert effective_config is user_lang_config


class TestLangConfigFor:
    def test_untrusted_local_file_ignored(self, tmp_path: Path, config_dir: Path, workspace: Path) -> None:
        _write_yaml(workspace / ".threshold" / "languages.yaml", {"formatter": {"python": {"command": "evil"}}})
        store = TrustStore(tmp_path / "data")
        config = lang_config_for(store, config_dir=config_dir, workspace=workspace)
        assert config["formatter"]["python"]["command"] == "black"

    def test_trusted_local_file_loaded(self, tmp_path: Path, config_dir: Path, workspace: Path) -> None:
        local = _write_yaml(workspace / ".threshold" / "languages.yaml", {"formatter": {"python": {"command": "ruff"}}})
        store = TrustStore(tmp_path / "data")
        store.trust_file(local, local.read_bytes())
        config = lang_config_for(store, config_dir=config_dir, workspace=workspace)
        assert config["formatter"]["python"]["command"] == "ruff"

    def test_edited_local_file_no_longer_loaded(self, tmp_path: Path, config_dir: Path, workspace: Path) -> None:
        local = _write_yaml(workspace / ".threshold" / "languages.yaml", {"formatter": {"python": {"command": "ruff"}}})
        store = TrustStore(tmp_path / "data")
        store.trust_file(local, local.read_bytes())
        _write_yaml(local, {"formatter": {"python": {"command": "evil"}}})
        config = lang_config_for(store, config_dir=config_dir, workspace=workspace)
        assert config["formatter"]["python"]["command"] == "black"

    def test_explicit_use_local_skips_store(self, tmp_path: Path, config_dir: Path, workspace: Path) -> None:
        _write_yaml(workspace / ".threshold" / "languages.yaml", {"formatter": {"python": {"command": "ruff"}}})
        store = TrustStore(tmp_path / "data")
        config = lang_config_for(store, True, config_dir=config_dir, workspace=workspace)
        assert config["formatter"]["python"]["command"] == "ruff"
        assert not store.path.exists()
