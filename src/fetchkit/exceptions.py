"""Exception hierarchy for fetchkit.

All exceptions inherit from :class:`FetchkitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`fetchkit.exit_codes`.
The command line catches ``FetchkitError`` and exits with the appropriate
code; library callers usually only need to handle
:class:`ExhaustedRetriesError`, :class:`RequestCancelledError` and
:class:`ConfigurationError`.

Per-attempt failures (:class:`TransportError`, :class:`StatusValidationError`)
are recorded by the retry loop and only surface wrapped inside
:class:`ExhaustedRetriesError` once the retry budget is spent.

Subclass hierarchy::

    FetchkitError (exit 1)
    +-- ConfigurationError      (exit 2)
    +-- TransportError          (exit 6)
    +-- StatusValidationError   (exit 4)
    +-- ExhaustedRetriesError   (exit 5)
    +-- CacheRevalidationError  (exit 1)
    +-- RequestCancelledError   (exit 130)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fetchkit.exit_codes import (
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_RETRIES_EXHAUSTED,
    EXIT_STATUS_REJECTED,
)

if TYPE_CHECKING:
    from fetchkit.client.response import Response


class FetchkitError(Exception):
    """Base exception for all fetchkit errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(FetchkitError):
    """Raised for unusable configuration, e.g. failover without endpoints. Never retried."""

    exit_code = EXIT_INVALID_USAGE


class TransportError(FetchkitError):
    """Raised by a transport when a single attempt fails at the network level.

    Args:
        message: Description of the failure.
        url: The URL of the failed attempt, when known.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class StatusValidationError(FetchkitError):
    """A response arrived but the status validator rejected it.

    Args:
        response: The rejected response.
    """

    exit_code = EXIT_STATUS_REJECTED

    def __init__(self, response: Response):
        super().__init__(f"Request failed with status {response.status_code}")
        self.response = response

    @property
    def status_code(self) -> int:
        return self.response.status_code


class ExhaustedRetriesError(FetchkitError):
    """Every attempt in the retry budget failed.

    Args:
        last_error: The error observed on the final attempt.
        attempts: Total number of attempts made.
    """

    exit_code = EXIT_RETRIES_EXHAUSTED

    def __init__(self, last_error: FetchkitError, attempts: int):
        super().__init__(
            f"Request failed after {attempts} attempt{'s' if attempts != 1 else ''}: {last_error}"
        )
        self.last_error = last_error
        self.attempts = attempts


class CacheRevalidationError(FetchkitError):
    """A background refresh of a stale cache entry failed.

    Only ever logged; the stale entry stays authoritative until the next
    successful refresh or its natural expiry.
    """

    def __init__(self, key: str, cause: BaseException):
        super().__init__(f"Background revalidation failed for {key[:12]}: {cause}")
        self.key = key
        self.cause = cause


class RequestCancelledError(FetchkitError):
    """The caller's cancellation signal fired before the request completed.

    Args:
        attempts: Attempts started before cancellation (``0`` when the
            signal was already set on entry).
    """

    exit_code = EXIT_CANCELLED

    def __init__(self, attempts: int = 0):
        super().__init__(
            "Request cancelled" if attempts == 0
            else f"Request cancelled during attempt {attempts}"
        )
        self.attempts = attempts
