"""Tests for fetchkit.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from fetchkit.config import (
    _atomic_write,
    config_path,
    env_overrides,
    get_config_dir,
    get_data_dir,
    load_client_config,
    load_project_config,
    resolve_config,
    save_client_config,
)
from fetchkit.exceptions import ConfigurationError
from fetchkit.models import ClientConfig, FailoverConfig, SelectionStrategy


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestPaths:
    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
        result = get_config_dir()
        assert result == tmp_path / "cfg" / "fetchkit"
        assert result.is_dir()

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert get_config_dir() == tmp_path / ".config" / "fetchkit"

    def test_non_xdg_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert get_config_dir() == tmp_path / ".fetchkit"
        assert get_data_dir() == tmp_path / ".fetchkit" / "logs"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_writes_content(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.json"
        _atomic_write(target, '{"a": 1}')
        assert target.read_text(encoding="utf-8") == '{"a": 1}'

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        target = tmp_path / "file.json"
        _atomic_write(target, "x")
        _atomic_write(target, "y")
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]


# ---------------------------------------------------------------------------
# User config
# ---------------------------------------------------------------------------


class TestUserConfig:
    def test_defaults_when_missing(self, isolated_config: Path) -> None:
        assert load_client_config() == ClientConfig()

    def test_save_and_load_round_trip(self, isolated_config: Path) -> None:
        config = ClientConfig(failover=FailoverConfig(endpoints=["https://a"], strategy="random"))
        save_client_config(config)
        assert config_path().is_file()
        assert load_client_config() == config

    def test_invalid_json_raises(self, isolated_config: Path) -> None:
        config_path().write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_client_config()

    def test_invalid_values_raise(self, isolated_config: Path) -> None:
        _write_json(config_path(), {"cache": {"capacity": 0}})
        with pytest.raises(ConfigurationError):
            load_client_config()


# ---------------------------------------------------------------------------
# Project config and environment
# ---------------------------------------------------------------------------


class TestProjectConfig:
    def test_missing_returns_none(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_loads_partial_mapping(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "fetchkit.json", {"cache": {"enabled": True}})
        assert load_project_config() == {"cache": {"enabled": True}}

    def test_non_object_raises(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "fetchkit.json", [1, 2])
        with pytest.raises(ConfigurationError):
            load_project_config()


class TestEnvOverrides:
    def test_endpoints_are_comma_separated(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FETCHKIT_ENDPOINTS", "https://a, https://b,")
        assert env_overrides() == {"failover": {"endpoints": ["https://a", "https://b"]}}

    def test_empty_env_ignored(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FETCHKIT_TIMEOUT", "")
        assert env_overrides() == {}


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestResolveConfig:
    def test_defaults(self, isolated_config: Path) -> None:
        assert resolve_config() == ClientConfig()

    def test_precedence_chain(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_client_config(ClientConfig.model_validate({
            "request": {"timeout": 1, "max_retries": 1, "retry_delay": 0.5},
            "cache": {"ttl_seconds": 42},
        }))
        _write_json(isolated_config / "fetchkit.json", {"request": {"timeout": 2, "max_retries": 2}})
        monkeypatch.setenv("FETCHKIT_TIMEOUT", "3")

        config = resolve_config(cli_retries=7)
        assert config.request.timeout == 3
        assert config.request.max_retries == 7
        assert config.request.retry_delay == 0.5
        assert config.cache.ttl_seconds == 42

    def test_env_strategy_and_cache(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FETCHKIT_STRATEGY", "health-ranked")
        monkeypatch.setenv("FETCHKIT_CACHE", "true")
        config = resolve_config()
        assert config.failover.strategy == SelectionStrategy.HEALTH_RANKED
        assert config.cache.enabled is True

    def test_cli_endpoints_replace_configured(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FETCHKIT_ENDPOINTS", "https://env")
        config = resolve_config(cli_endpoints=["https://cli/"])
        assert config.failover.endpoints == ["https://cli"]

    def test_invalid_override_raises(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FETCHKIT_RETRIES", "many")
        with pytest.raises(ConfigurationError):
            resolve_config()
