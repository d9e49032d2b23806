"""Per-endpoint health state derived from probes and live request outcomes.

Each endpoint moves through a small state machine::

    UNKNOWN --> HEALTHY <--> UNHEALTHY

A failed probe, or ``failure_threshold`` consecutive failed requests, makes an
endpoint ``UNHEALTHY``; a successful probe or request makes it ``HEALTHY``.
``UNKNOWN`` (no observation yet) counts as healthy so that routing never
fails just because nothing has been measured.

The tracker is written to only through :meth:`HealthTracker.record_success`,
:meth:`HealthTracker.record_failure` and :meth:`HealthTracker.record_probe`;
readers receive immutable :class:`EndpointHealth` snapshots.
"""

from __future__ import annotations

import asyncio
import enum
import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from fetchkit.exceptions import FetchkitError
from fetchkit.models import HealthCheckConfig
from fetchkit.output import get_output

if TYPE_CHECKING:
    from fetchkit.client.transport import Transport


class HealthState(str, enum.Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class EndpointHealth:
    """Snapshot of one endpoint's health record."""

    state: HealthState = HealthState.UNKNOWN
    last_checked_at: Optional[float] = None
    last_latency: Optional[float] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.state != HealthState.UNHEALTHY


class HealthTracker:
    """Thread-safe map of endpoint -> :class:`EndpointHealth`.

    Args:
        config: Probe interval, timeout, path and failure threshold.
        transport: Transport used by :meth:`probe`.  Without one, probing
            is unavailable and only request outcomes feed the tracker.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        config: Optional[HealthCheckConfig] = None,
        transport: Optional[Transport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or HealthCheckConfig()
        self._transport = transport
        self._clock = clock
        self._records: dict[str, EndpointHealth] = {}
        self._lock = threading.Lock()
        self._prober: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, endpoint: str) -> EndpointHealth:
        with self._lock:
            return self._records.get(endpoint, EndpointHealth())

    def is_healthy(self, endpoint: str) -> bool:
        return self.get(endpoint).healthy

    def healthy(self, endpoints: Iterable[str]) -> list[str]:
        """Return the healthy subset of *endpoints*, preserving order."""
        return [endpoint for endpoint in endpoints if self.is_healthy(endpoint)]

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Return every known record as plain dicts (for stats output)."""
        with self._lock:
            records = dict(self._records)
        return {
            endpoint: {**asdict(record), "state": record.state.value}
            for endpoint, record in records.items()
        }

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def record_success(self, endpoint: str, latency: Optional[float] = None) -> None:
        """A live request to *endpoint* succeeded."""
        with self._lock:
            current = self._records.get(endpoint, EndpointHealth())
            self._records[endpoint] = replace(
                current,
                state=HealthState.HEALTHY,
                last_checked_at=self._clock(),
                last_latency=latency if latency is not None else current.last_latency,
                consecutive_failures=0,
                last_error=None,
            )

    def record_failure(self, endpoint: str, error: Optional[BaseException] = None) -> int:
        """A live request to *endpoint* failed.

        Returns:
            The endpoint's consecutive failure count after this failure.
        """
        with self._lock:
            current = self._records.get(endpoint, EndpointHealth())
            failures = current.consecutive_failures + 1
            state = current.state
            if failures >= self._config.failure_threshold:
                state = HealthState.UNHEALTHY
            self._records[endpoint] = replace(
                current,
                state=state,
                last_checked_at=self._clock(),
                consecutive_failures=failures,
                last_error=str(error) if error is not None else current.last_error,
            )
            return failures

    def record_probe(
        self,
        endpoint: str,
        ok: bool,
        latency: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        """Store the outcome of one probe of *endpoint*."""
        with self._lock:
            current = self._records.get(endpoint, EndpointHealth())
            if ok:
                record = replace(
                    current,
                    state=HealthState.HEALTHY,
                    last_checked_at=self._clock(),
                    last_latency=latency,
                    consecutive_failures=0,
                    last_error=None,
                )
            else:
                record = replace(
                    current,
                    state=HealthState.UNHEALTHY,
                    last_checked_at=self._clock(),
                    last_error=error,
                )
            self._records[endpoint] = record

    # ------------------------------------------------------------------ #
    # Probing
    # ------------------------------------------------------------------ #

    async def probe(self, endpoint: str) -> bool:
        """Probe ``{endpoint}{config.path}`` once and record the outcome."""
        if self._transport is None:
            raise RuntimeError("HealthTracker has no transport to probe with")

        url = f"{endpoint}{self._config.path}"
        started = self._clock()
        try:
            response = await asyncio.wait_for(
                self._transport.send("GET", url, {}, None, None, self._config.timeout),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError:
            self.record_probe(endpoint, False, error="probe timed out")
            return False
        except FetchkitError as exc:
            self.record_probe(endpoint, False, error=str(exc))
            return False
        except Exception as exc:
            self.record_probe(endpoint, False, error=f"{type(exc).__name__}: {exc}")
            return False

        latency = self._clock() - started
        ok = 200 <= response.status_code < 300
        self.record_probe(
            endpoint,
            ok,
            latency=latency,
            error=None if ok else f"probe returned HTTP {response.status_code}",
        )
        return ok

    async def probe_all(self, endpoints: Iterable[str]) -> dict[str, bool]:
        """Probe every endpoint concurrently."""
        targets = list(endpoints)
        results = await asyncio.gather(*(self.probe(endpoint) for endpoint in targets))
        return dict(zip(targets, results))

    @property
    def is_probing(self) -> bool:
        return self._prober is not None and not self._prober.done()

    def start(self, endpoints: Iterable[str]) -> None:
        """Start periodic probing on the running event loop (no-op if running)."""
        if self.is_probing:
            return
        self._prober = asyncio.get_running_loop().create_task(
            self._probe_loop(list(endpoints)), name="fetchkit-health-probe"
        )

    async def stop(self) -> None:
        """Cancel periodic probing and wait for it to finish.  Idempotent."""
        task, self._prober = self._prober, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _probe_loop(self, endpoints: list[str]) -> None:
        while True:
            await asyncio.sleep(self._config.interval)
            results = await self.probe_all(endpoints)
            down = [endpoint for endpoint, ok in results.items() if not ok]
            if down:
                get_output().debug(f"Health probe failed for: {', '.join(down)}")
