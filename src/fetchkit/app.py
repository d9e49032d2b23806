"""Typer application and CLI entry point for fetchkit.

The root application carries the global output flags and registers the
built-in sub-commands (``request`` and the ``config`` group).  :func:`main`
is the console-script entry point declared in ``pyproject.toml``: it installs
a SIGINT handler, runs the app, maps :class:`~fetchkit.exceptions.FetchkitError`
to its exit code and writes a crash log for anything unexpected.

See Also:
    :mod:`fetchkit.config`: Configuration resolution used by the commands.
    :mod:`fetchkit.output`: Output manager initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from fetchkit import __version__
from fetchkit.commands.config import config_app
from fetchkit.commands.request import request_command
from fetchkit.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="fetchkit",
    help="HTTP client with response caching, retries and multi-endpoint failover.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("request")(request_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"fetchkit {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show retries, quarantines and cache activity."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Print requests instead of sending them."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~fetchkit.output.OutputManager` and stores
    shared options in ``ctx.obj`` for the sub-commands.
    """
    from fetchkit.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj["dry_run"] = dry_run
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to the data directory and return its path."""
    from fetchkit.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        encoding="utf-8",
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``fetchkit`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from fetchkit.exceptions import FetchkitError
        from fetchkit.output import error

        if isinstance(exc, FetchkitError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
