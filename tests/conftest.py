"""Shared test fixtures for fetchkit.

Provides a scripted in-memory transport, a manually advanced clock, isolated
configuration directories, and output-state management.  These fixtures are
discovered by pytest automatically and are available to every test module.
"""

from __future__ import annotations

import inspect
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import pytest

from fetchkit.client.response import Response, SyntheticResponse
from fetchkit.client.transport import Transport
from fetchkit.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a silent OutputManager and reset it after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time; when
    CliRunner swaps those streams the cached references go stale, so a
    fresh manager is created for every test.
    """
    set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


@dataclass
class SentRequest:
    """One exchange recorded by :class:`FakeTransport`."""

    method: str
    url: str
    headers: dict[str, str]
    body: Optional[bytes]
    sent_at: float


Outcome = Union[Response, BaseException]
Handler = Callable[[SentRequest], Union[Outcome, Awaitable[Outcome]]]


class FakeTransport(Transport):
    """Transport whose answers come from a handler instead of the network.

    The handler receives the :class:`SentRequest` and returns a response,
    an exception instance to raise, or an awaitable of either (so tests can
    delay or block an exchange).

    Attributes:
        requests: Every exchange in the order it was sent.
        closed: Set by :meth:`aclose`.
    """

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self.requests: list[SentRequest] = []
        self.closed = False

    async def send(self, method, url, headers, body, signal, timeout) -> Response:
        sent = SentRequest(method, url, dict(headers), body, time.monotonic())
        self.requests.append(sent)
        outcome = self._handler(sent)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True

    def urls(self) -> list[str]:
        return [request.url for request in self.requests]


def ok(json: Any = None, status: int = 200, headers: Optional[Mapping[str, str]] = None) -> SyntheticResponse:
    """Shorthand for a JSON :class:`SyntheticResponse`."""
    return SyntheticResponse(status, headers=headers, json=json if json is not None else {"ok": True})


def scripted(*outcomes: Outcome) -> Handler:
    """Handler returning *outcomes* in order, repeating the last one forever."""
    queue = list(outcomes)

    def handler(request: SentRequest) -> Outcome:
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    return handler


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory: ``make_transport(handler)`` or ``make_transport(*outcomes)``."""

    def _make(*outcomes: Any) -> FakeTransport:
        if len(outcomes) == 1 and callable(outcomes[0]) and not isinstance(outcomes[0], Response):
            return FakeTransport(outcomes[0])
        return FakeTransport(scripted(*outcomes))

    return _make


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG directories at tmp_path, clear FETCHKIT_* and chdir there."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("fetchkit.config._is_xdg_platform", lambda: True)

    for var in [
        "FETCHKIT_ENDPOINTS",
        "FETCHKIT_STRATEGY",
        "FETCHKIT_TIMEOUT",
        "FETCHKIT_RETRIES",
        "FETCHKIT_CACHE",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
