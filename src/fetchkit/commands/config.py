"""Config commands -- view and modify the user configuration.

Provides the ``fetchkit config`` sub-command group for reading, updating and
resetting the user's :class:`~fetchkit.models.ClientConfig` file.  ``show``
prints the *effective* configuration, i.e. after project file and
environment overrides are applied.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from fetchkit.exceptions import FetchkitError
from fetchkit.exit_codes import EXIT_INVALID_USAGE
from fetchkit.output import error, get_output, info


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Example::

        fetchkit config show
        fetchkit --json config show
    """
    from fetchkit.config import config_path, resolve_config

    try:
        config = resolve_config()
    except FetchkitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config file: {config_path()}")
    get_output().format_response(config.model_dump(mode="json"))


def _coerce(current: Any, value: str, key: str) -> Any:
    """Convert *value* to the type of the field's *current* value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if isinstance(current, list):
        return [part.strip() for part in value.split(",") if part.strip()]
    if current is None and value.lower() in ("none", "null", ""):
        return None
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key in dot notation, e.g. 'cache.ttl_seconds'."),
    value: str = typer.Argument(help="Value to set. Lists are comma separated."),
) -> None:
    """Set a configuration value in the user config file.

    The value is coerced to the type of the existing field and the whole
    configuration is re-validated before it is saved.

    Example::

        fetchkit config set failover.strategy health-ranked
        fetchkit config set failover.endpoints https://a.example.com,https://b.example.com
        fetchkit config set cache.enabled true
    """
    from fetchkit.config import load_client_config, save_client_config
    from fetchkit.models import ClientConfig

    try:
        config = load_client_config()
    except FetchkitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    data = config.model_dump(mode="json")

    *parents, leaf = key.split(".")
    target = data
    for part in parents:
        if not isinstance(target.get(part), dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[part]
    if leaf not in target or isinstance(target[leaf], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    target[leaf] = _coerce(target[leaf], value, key)

    try:
        updated = ClientConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_client_config(updated)
    get_output().success(f"Set {key} = {target[leaf]}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt."),
) -> None:
    """Reset the user configuration to defaults.

    Example::

        fetchkit config reset --force
    """
    from fetchkit.config import save_client_config
    from fetchkit.models import ClientConfig

    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_client_config(ClientConfig())
    get_output().success("Configuration reset to defaults.")
