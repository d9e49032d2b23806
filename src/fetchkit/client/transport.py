"""Network transport boundary.

A :class:`Transport` performs exactly one request/response exchange.  It
knows nothing about retries, endpoints or caching -- those belong to
:class:`~fetchkit.client.async_client.AsyncClient`, which calls
:meth:`Transport.send` once per attempt.

:class:`HttpxTransport` is the default implementation, backed by a shared
:class:`httpx.AsyncClient` so connection pooling, DNS and TLS stay with
httpx.  Tests and embedding applications can supply any other subclass.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Mapping, Optional

import httpx

from fetchkit.client.response import Response, TransportResponse
from fetchkit.exceptions import TransportError


class Transport(ABC):
    """One-shot HTTP exchange capability."""

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
        signal: Optional[asyncio.Event],
        timeout: float,
    ) -> Response:
        """Send one request and return its response.

        Raises:
            TransportError: On any network-level failure or timeout.
        """

    async def aclose(self) -> None:
        """Release transport resources.  The default does nothing."""


class HttpxTransport(Transport):
    """:class:`Transport` backed by :class:`httpx.AsyncClient`.

    Args:
        verify_ssl: Verify server certificates.
        client: Optional pre-built client (e.g. one using
            :class:`httpx.MockTransport`).  A client passed in is not
            closed by :meth:`aclose`.
    """

    def __init__(
        self,
        verify_ssl: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(verify=verify_ssl, follow_redirects=True)

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
        signal: Optional[asyncio.Event],
        timeout: float,
    ) -> Response:
        # The signal is honoured by the caller racing this coroutine; httpx
        # aborts the exchange when the task is cancelled.
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(headers),
                content=body,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timed out: {method} {url}", url=url) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Connection error: {exc}", url=url) from exc
        except httpx.InvalidURL as exc:
            raise TransportError(f"Invalid URL: {exc}", url=url) from exc
        return TransportResponse(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
