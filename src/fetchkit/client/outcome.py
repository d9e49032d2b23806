"""Typed result of a single request attempt.

The retry loop in :class:`~fetchkit.client.async_client.AsyncClient` never
uses exceptions to move between attempts: every attempt produces an
:class:`AttemptOutcome`, and only budget exhaustion or cancellation is
turned into an exception for the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fetchkit.client.response import Response
from fetchkit.exceptions import FetchkitError


@dataclass(frozen=True)
class AttemptOutcome:
    """Success, failure, or cancellation of one attempt."""

    response: Optional[Response] = None
    error: Optional[FetchkitError] = None
    latency: Optional[float] = None
    cancelled: bool = False

    @classmethod
    def success(cls, response: Response, latency: float) -> AttemptOutcome:
        return cls(response=response, latency=latency)

    @classmethod
    def failure(cls, error: FetchkitError, latency: Optional[float] = None) -> AttemptOutcome:
        return cls(error=error, latency=latency)

    @classmethod
    def aborted(cls) -> AttemptOutcome:
        return cls(cancelled=True)

    @property
    def ok(self) -> bool:
        return self.response is not None and self.error is None and not self.cancelled
