"""Response abstraction shared by real transports, the cache and dry-run mode.

Every layer of fetchkit talks to responses through :class:`Response`, which
exposes a small capability set: a status code, case-insensitive header lookup,
and the body.  Two concrete variants exist:

- :class:`TransportResponse` wraps the :class:`httpx.Response` returned by
  :class:`~fetchkit.client.transport.HttpxTransport`.
- :class:`SyntheticResponse` is built from plain values.  Cache entries hold a
  synthetic snapshot so that a cached value never references live connection
  state, dry-run mode returns one, and tests script transports with them.

The module also keeps the bridge to the output system,
:func:`format_api_response`, used by the command line.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import httpx

from fetchkit.output import get_output


class Response(ABC):
    """Read-only view of one HTTP response."""

    @property
    @abstractmethod
    def status_code(self) -> int: ...

    @property
    @abstractmethod
    def headers(self) -> httpx.Headers: ...

    @property
    @abstractmethod
    def content(self) -> bytes: ...

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return header *name* (case-insensitive), or *default*."""
        return self.headers.get(name, default)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)

    @property
    def data(self) -> Any:
        """Body decoded as JSON when possible, else text, or ``None`` when empty."""
        if not self.content:
            return None
        try:
            return self.json()
        except ValueError:
            return self.text

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status_code}]>"


class TransportResponse(Response):
    """A :class:`Response` backed by an :class:`httpx.Response`."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def content(self) -> bytes:
        return self._response.content

    @property
    def raw(self) -> httpx.Response:
        """The wrapped :class:`httpx.Response`."""
        return self._response


class SyntheticResponse(Response):
    """A :class:`Response` built from plain values.

    Args:
        status_code: HTTP status code.
        headers: Response headers.
        content: Raw body bytes (or a ``str`` encoded as UTF-8).
        json: JSON-serialisable body; sets ``content-type`` when given.

    Example::

        SyntheticResponse(200, json={"id": 1})
    """

    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Mapping[str, str] | list[tuple[str, str]]] = None,
        content: bytes | str = b"",
        json: Any = None,
    ) -> None:
        self._status_code = status_code
        self._headers = httpx.Headers(headers or {})
        if json is not None:
            content = _dump_json(json)
            self._headers.setdefault("content-type", "application/json")
        self._content = content.encode("utf-8") if isinstance(content, str) else content

    @classmethod
    def snapshot(cls, response: Response) -> SyntheticResponse:
        """Copy *response* into a detached, immutable-by-convention snapshot."""
        return cls(
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            content=bytes(response.content),
        )

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._headers

    @property
    def content(self) -> bytes:
        return self._content


def _dump_json(data: Any) -> bytes:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def format_api_response(response: Response) -> None:
    """Format and print a response using the global output system.

    Writes the status line (e.g. ``HTTP 200``) to stderr and renders the
    body to stdout.
    """
    output = get_output()
    output.info(f"HTTP {response.status_code}")

    content_type = response.header("content-type", "application/json") or "application/json"
    data = response.data
    if data is not None:
        output.format_response(data, content_type)
