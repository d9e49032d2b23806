"""HTTP client layer for fetchkit.

:class:`AsyncClient` orchestrates caching, endpoint selection and retries on
top of a :class:`Transport`, which performs exactly one exchange per call.
Responses of every origin share the :class:`Response` interface.

Example::

    from fetchkit.client import AsyncClient

    async with AsyncClient(config) as client:
        resp = await client.get("https://api.example.com/users", cache=True)
"""

from fetchkit.client.async_client import AsyncClient
from fetchkit.client.outcome import AttemptOutcome
from fetchkit.client.response import Response, SyntheticResponse, TransportResponse
from fetchkit.client.transport import HttpxTransport, Transport

__all__ = [
    "AsyncClient",
    "AttemptOutcome",
    "HttpxTransport",
    "Response",
    "SyntheticResponse",
    "Transport",
    "TransportResponse",
]
