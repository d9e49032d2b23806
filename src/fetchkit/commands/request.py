"""Request command -- send one HTTP request through an :class:`AsyncClient`.

``fetchkit request METHOD URL`` resolves the effective configuration
(:func:`~fetchkit.config.resolve_config`), builds a client for the duration
of the command and prints the response body to stdout.  ``--repeat`` sends
the same request several times through one client, which makes cache hits
and round-robin rotation observable; ``--stats`` prints cache and failover
statistics afterwards.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import typer

from fetchkit.exceptions import ConfigurationError, FetchkitError
from fetchkit.exit_codes import EXIT_INVALID_USAGE
from fetchkit.models import ClientConfig
from fetchkit.output import error, get_output


def _parse_headers(raw: list[str]) -> dict[str, str]:
    """Parse ``Name: value`` strings into a header mapping."""
    headers: dict[str, str] = {}
    for item in raw:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            error(f"Invalid header (expected 'Name: value'): {item}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        headers[name.strip()] = value.strip()
    return headers


def _parse_body(body: Optional[str]) -> tuple[Optional[str], Any]:
    """Split *body* into ``(raw, json)``; JSON text goes to the second slot."""
    if body is None:
        return None, None
    try:
        return None, json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body, None


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method, e.g. GET or POST."),
    url: str = typer.Argument(help="Absolute URL, or a path routed across --endpoint values."),
    endpoint: Optional[list[str]] = typer.Option(
        None, "--endpoint", "-e", help="Base URL to route relative paths to (repeatable)."
    ),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", help="Endpoint selection: round-robin, random or health-ranked."
    ),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries after the first attempt."),
    retry_delay: Optional[float] = typer.Option(
        None, "--retry-delay", help="Base backoff delay in seconds."
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-attempt timeout in seconds."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header 'Name: value' (repeatable)."
    ),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="Request body; JSON is sent as JSON."),
    cache: Optional[bool] = typer.Option(
        None, "--cache/--no-cache", help="Serve and store cache-eligible responses."
    ),
    repeat: int = typer.Option(1, "--repeat", min=1, help="Send the request this many times."),
    stats: bool = typer.Option(False, "--stats", help="Print cache and failover statistics."),
) -> None:
    """Send an HTTP request with caching, retries and failover.

    Example::

        fetchkit request GET https://httpbin.org/get
        fetchkit request GET /users -e https://a.example.com -e https://b.example.com --repeat 3
        fetchkit --json request GET /users -e https://a.example.com --cache --repeat 2 --stats
    """
    from fetchkit.config import resolve_config

    headers = _parse_headers(header or [])
    raw_body, json_body = _parse_body(body)
    dry_run = bool(ctx.obj.get("dry_run", False)) if ctx.obj else False

    try:
        config = resolve_config(
            cli_endpoints=endpoint,
            cli_strategy=strategy,
            cli_timeout=timeout,
            cli_retries=retries,
            cli_retry_delay=retry_delay,
            cli_cache=cache,
        )
        asyncio.run(
            _run(config, method, url, headers, raw_body, json_body, repeat, stats, dry_run)
        )
    except ConfigurationError as exc:
        error(str(exc))
        if not endpoint and not url.startswith(("http://", "https://")):
            get_output().suggest(
                "Pass --endpoint, or run: fetchkit config set failover.endpoints URL[,URL...]"
            )
        raise typer.Exit(code=exc.exit_code) from None
    except FetchkitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


async def _run(
    config: ClientConfig,
    method: str,
    url: str,
    headers: dict[str, str],
    raw_body: Optional[str],
    json_body: Any,
    repeat: int,
    stats: bool,
    dry_run: bool,
) -> None:
    from fetchkit.client import AsyncClient
    from fetchkit.client.response import format_api_response

    output = get_output()
    async with AsyncClient(config, dry_run=dry_run) as client:
        for _ in range(repeat):
            response = await client.request(
                method, url, headers=headers or None, body=raw_body, json_body=json_body,
            )
            format_api_response(response)

        if stats:
            output.print_stats(client.get_cache_stats(), title="Cache")
            failover = client.get_failover_stats()
            output.print_stats(failover, title="Failover")
