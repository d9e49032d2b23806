"""Multi-endpoint routing: health tracking and endpoint selection.

:class:`HealthTracker` keeps per-endpoint health fed by periodic probes and
request outcomes; :class:`EndpointSelector` uses it (together with its own
quarantine set) to choose where the next attempt goes.
"""

from fetchkit.routing.health import EndpointHealth, HealthState, HealthTracker
from fetchkit.routing.selector import EndpointSelector

__all__ = ["EndpointHealth", "EndpointSelector", "HealthState", "HealthTracker"]
