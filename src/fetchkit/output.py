"""Diagnostics and data rendering with strict stdout/stderr separation.

fetchkit has a single output channel shared by the library and the CLI:

* **stdout** -- response bodies and statistics only, so ``fetchkit request``
  output can be piped into ``jq`` and friends.
* **stderr** -- everything else: status lines, retry and quarantine notices,
  cache diagnostics, warnings and errors.

Library modules never print directly; they call :func:`get_output` and use
the level that fits (``debug`` for retry/cache chatter, ``warning`` for
failed background refreshes).  Without ``--verbose`` debug messages are
dropped, and ``--quiet`` silences ``info``/``success``.  Colour follows
``NO_COLOR``, ``TERM=dumb`` and ``--no-color``.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Mapping, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """Rendering used for data written to stdout.

    ``AUTO`` becomes ``RICH`` on an interactive, colour-capable terminal and
    ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Route data to stdout and diagnostics to stderr.

    Created by :func:`~fetchkit.app.main_callback` from the global CLI flags
    and installed with :func:`set_output`.  Library users who never install
    one get a default manager (``AUTO`` format, debug off) from
    :func:`get_output`.

    Args:
        format: Desired data format.
        no_color: Disable colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Show debug messages on stderr.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            self._format = (
                OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
            )
        else:
            self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(self._format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any, content_type: str = "application/json") -> None:
        """Render a response body to stdout in the active format.

        Args:
            data: Decoded body -- a dict, list or string.
            content_type: MIME type used to pick syntax highlighting in
                Rich mode.
        """
        if self._format == OutputFormat.JSON:
            self._print_json(data)
        elif self._format == OutputFormat.PLAIN:
            self._print_plain(data)
        else:
            self._print_rich(data, content_type)

    def print_data(self, text: str) -> None:
        """Write *text* to stdout unchanged."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print rows to stdout as a Rich table, JSON records or TSV."""
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
        elif self._format == OutputFormat.PLAIN:
            self.print_data("\t".join(headers))
            for row in rows:
                self.print_data("\t".join(row))
        else:
            table = Table(title=title, show_header=True, header_style="bold cyan")
            for header in headers:
                table.add_column(header)
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    def print_stats(self, stats: Mapping[str, Any], title: Optional[str] = None) -> None:
        """Print a flat statistics mapping.

        JSON mode emits the mapping as one object; the other formats show a
        two-column ``key``/``value`` table.  Nested mappings are rendered
        as compact JSON in the value column.
        """
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(dict(stats), indent=2, ensure_ascii=False, default=str))
            return
        rows = [[str(key), _stat_cell(value)] for key, value in stats.items()]
        self.print_table(["key", "value"], rows, title=title)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Informational message.  Suppressed by ``--quiet``."""
        if self._quiet:
            return
        self._emit("", message)

    def success(self, message: str) -> None:
        """Green success message.  Suppressed by ``--quiet``."""
        if self._quiet:
            return
        self._emit("", message, style="green")

    def warning(self, message: str) -> None:
        """Yellow warning.  Shown even with ``--quiet``."""
        self._emit("Warning:", message, style="yellow", prefix_only=True)

    def error(self, message: str) -> None:
        """Bold red error.  Never suppressed."""
        self._emit("Error:", message, style="bold red", prefix_only=True)

    def suggest(self, message: str) -> None:
        """Dimmed next-step hint.  Suppressed by ``--quiet``."""
        if self._quiet:
            return
        self._emit("→", message, style="dim")

    def debug(self, message: str) -> None:
        """Debug message, shown only with ``--verbose``."""
        if not self._verbose:
            return
        self._emit("[debug]", message, style="dim")

    def _emit(self, prefix: str, message: str, style: str = "", prefix_only: bool = False) -> None:
        """Write ``prefix message`` to stderr; *message* is never parsed as markup."""
        plain = f"{prefix} {message}" if prefix else message
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
            return
        if not style:
            self._stderr.print(escape(plain))
        elif prefix_only:
            self._stderr.print(f"[{style}]{escape(prefix)}[/{style}] {escape(message)}")
        else:
            self._stderr.print(f"[{style}]{escape(plain)}[/{style}]")

    # ------------------------------------------------------------------ #
    # Renderers
    # ------------------------------------------------------------------ #

    def _print_json(self, data: Any) -> None:
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, TypeError):
                self.print_data(data)
                return
        self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _print_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                self.print_data(f"{key}\t{value}")
        elif isinstance(data, list):
            for item in data:
                if isinstance(item, dict):
                    self.print_data("\t".join(str(v) for v in item.values()))
                else:
                    self.print_data(str(item))
        else:
            self.print_data(str(data))

    def _print_rich(self, data: Any, content_type: str) -> None:
        if isinstance(data, str) and "json" in content_type:
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, TypeError):
                pass
        if isinstance(data, (dict, list)):
            rendered = json.dumps(data, indent=2, ensure_ascii=False, default=str)
            self._stdout.print(Syntax(rendered, "json", theme="monokai", word_wrap=True))
        else:
            self._stdout.print(str(data), markup=False)


def _stat_cell(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.4g}"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str, separators=(",", ":"))
    return str(value)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value) or ``TERM=dumb`` disables colour."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Global output instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the process-wide manager."""
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager.  Used by the test suite."""
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
