"""Configuration files, environment overrides and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fetchkit/`` on macOS and Windows.  See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **User config** -- one :class:`~fetchkit.models.ClientConfig` JSON file,
  read by :func:`load_client_config` and written atomically by
  :func:`save_client_config`.
* **Project config** -- an optional ``./fetchkit.json`` holding a partial
  ``ClientConfig`` that is deep-merged over the user file.
* **Environment** -- ``FETCHKIT_*`` variables, see :data:`ENV_OVERRIDES`.
* **Precedence** -- :func:`resolve_config` layers all of the above plus CLI
  flags into the effective configuration.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from fetchkit.exceptions import ConfigurationError
from fetchkit.models import ClientConfig

_APP_NAME = "fetchkit"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "fetchkit.json"

#: Environment variable -> dotted config path it overrides.
ENV_OVERRIDES: dict[str, str] = {
    "FETCHKIT_ENDPOINTS": "failover.endpoints",
    "FETCHKIT_STRATEGY": "failover.strategy",
    "FETCHKIT_TIMEOUT": "request.timeout",
    "FETCHKIT_RETRIES": "request.max_retries",
    "FETCHKIT_CACHE": "cache.enabled",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    return Path.home().joinpath(*default_segments)


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/fetchkit/`` (default ``~/.config/fetchkit/``).
    On macOS/Windows: ``~/.fetchkit/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory used for crash logs, creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/fetchkit/`` (default ``~/.local/share/fetchkit/``).
    On macOS/Windows: ``~/.fetchkit/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* via a sibling temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def _read_json(path: Path, label: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid {label} at {path}: expected a JSON object")
    return data


# --- User config ---


def config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_client_config() -> ClientConfig:
    """Load the user configuration.

    Returns:
        The stored :class:`~fetchkit.models.ClientConfig`, or defaults when
        no file exists.

    Raises:
        ConfigurationError: If the file is not valid JSON or fails validation.
    """
    path = config_path()
    if not path.is_file():
        return ClientConfig()
    data = _read_json(path, "config")
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config at {path}: {exc}") from exc


def save_client_config(config: ClientConfig) -> None:
    """Persist *config* atomically to the user config file."""
    data = config.model_dump(mode="json")
    _atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./fetchkit.json`` as a partial config mapping.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigurationError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Precedence resolution ---


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _set_path(data: dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    target = data
    for key in parents:
        target = target.setdefault(key, {})
    target[leaf] = value


def env_overrides() -> dict[str, Any]:
    """Collect ``FETCHKIT_*`` overrides as a nested partial config mapping.

    ``FETCHKIT_ENDPOINTS`` is comma separated; the remaining values are
    passed through as strings and coerced by pydantic validation.
    """
    overrides: dict[str, Any] = {}
    for var, dotted in ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if not raw:
            continue
        value: Any = raw
        if var == "FETCHKIT_ENDPOINTS":
            value = [part.strip() for part in raw.split(",") if part.strip()]
        _set_path(overrides, dotted, value)
    return overrides


def resolve_config(
    cli_endpoints: Optional[list[str]] = None,
    cli_strategy: Optional[str] = None,
    cli_timeout: Optional[float] = None,
    cli_retries: Optional[int] = None,
    cli_retry_delay: Optional[float] = None,
    cli_cache: Optional[bool] = None,
) -> ClientConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_*`` arguments that are not ``None``)
        2. Environment variables (:data:`ENV_OVERRIDES`)
        3. Project config (``./fetchkit.json``)
        4. User config (``~/.config/fetchkit/config.json``)
        5. Defaults

    Raises:
        ConfigurationError: If any layer is unreadable or the merged result
            fails validation.
    """
    data = load_client_config().model_dump(mode="json")

    project = load_project_config()
    if project is not None:
        data = _deep_merge(data, project)

    data = _deep_merge(data, env_overrides())

    cli: dict[str, Any] = {}
    for dotted, value in (
        ("failover.endpoints", cli_endpoints or None),
        ("failover.strategy", cli_strategy),
        ("request.timeout", cli_timeout),
        ("request.max_retries", cli_retries),
        ("request.retry_delay", cli_retry_delay),
        ("cache.enabled", cli_cache),
    ):
        if value is not None:
            _set_path(cli, dotted, value)
    data = _deep_merge(data, cli)

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
