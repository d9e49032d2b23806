"""Endpoint selection with quarantine.

:class:`EndpointSelector` picks the base URL for the next attempt from a fixed,
ordered candidate list.  Endpoints that keep failing are *quarantined* by the
client and skipped until they are released by a success.  When quarantine
would exclude every candidate it is cleared wholesale before selecting, so a
client can never lock itself out.
"""

from __future__ import annotations

import random
import threading
from typing import Iterable, Optional

from fetchkit.exceptions import ConfigurationError
from fetchkit.models import SelectionStrategy
from fetchkit.output import get_output
from fetchkit.routing.health import HealthTracker


class EndpointSelector:
    """Choose a target endpoint under a :class:`~fetchkit.models.SelectionStrategy`.

    Args:
        endpoints: Candidate base URLs in fixed order.
        strategy: ``round-robin``, ``random`` or ``health-ranked``.
        tracker: Health data used by the ``health-ranked`` strategy.
        rng: Random source for the ``random`` strategy.

    Example::

        selector = EndpointSelector(["https://a", "https://b"], "round-robin", HealthTracker())
        selector.select()  # "https://a"
        selector.select()  # "https://b"
    """

    def __init__(
        self,
        endpoints: Iterable[str],
        strategy: SelectionStrategy | str = SelectionStrategy.ROUND_ROBIN,
        tracker: Optional[HealthTracker] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._endpoints: tuple[str, ...] = tuple(endpoints)
        self._strategy = SelectionStrategy(strategy)
        self._tracker = tracker or HealthTracker()
        self._rng = rng or random.Random()
        self._cursor = 0
        self._quarantined: set[str] = set()
        self._lock = threading.Lock()

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    @property
    def strategy(self) -> SelectionStrategy:
        return self._strategy

    @property
    def quarantined(self) -> tuple[str, ...]:
        """Quarantined endpoints in configured order."""
        with self._lock:
            return tuple(e for e in self._endpoints if e in self._quarantined)

    # ------------------------------------------------------------------ #
    # Quarantine
    # ------------------------------------------------------------------ #

    def is_quarantined(self, endpoint: str) -> bool:
        with self._lock:
            return endpoint in self._quarantined

    def quarantine(self, endpoint: str) -> None:
        with self._lock:
            if endpoint not in self._endpoints or endpoint in self._quarantined:
                return
            self._quarantined.add(endpoint)
        get_output().debug(f"Endpoint quarantined: {endpoint}")

    def release(self, endpoint: str) -> bool:
        """Lift quarantine from *endpoint*.  Returns ``True`` if it was quarantined."""
        with self._lock:
            if endpoint not in self._quarantined:
                return False
            self._quarantined.discard(endpoint)
        get_output().debug(f"Endpoint recovered: {endpoint}")
        return True

    def clear_quarantine(self) -> None:
        with self._lock:
            self._quarantined.clear()

    # ------------------------------------------------------------------ #
    # Selection
    # ------------------------------------------------------------------ #

    def select(self) -> str:
        """Return the endpoint for the next attempt.

        Raises:
            ConfigurationError: If no endpoints are configured.
        """
        if not self._endpoints:
            raise ConfigurationError("No endpoints configured for failover")

        with self._lock:
            if all(e in self._quarantined for e in self._endpoints):
                self._quarantined.clear()

            if self._strategy == SelectionStrategy.ROUND_ROBIN:
                return self._next_round_robin()

            available = [e for e in self._endpoints if e not in self._quarantined]
            if self._strategy == SelectionStrategy.RANDOM:
                return self._rng.choice(available)
            return self._best_ranked(available)

    def _next_round_robin(self) -> str:
        count = len(self._endpoints)
        for offset in range(count):
            index = (self._cursor + offset) % count
            endpoint = self._endpoints[index]
            if endpoint not in self._quarantined:
                self._cursor = (index + 1) % count
                return endpoint
        raise AssertionError("quarantine cleared but no endpoint available")  # pragma: no cover

    def _best_ranked(self, available: list[str]) -> str:
        candidates = self._tracker.healthy(available) or available

        def latency(endpoint: str) -> float:
            observed = self._tracker.get(endpoint).last_latency
            return observed if observed is not None else 0.0

        # min() is stable, so equal latencies keep configured order.
        return min(candidates, key=latency)
