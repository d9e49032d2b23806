"""fetchkit -- asynchronous HTTP client with caching, retries and failover.

An :class:`~fetchkit.client.AsyncClient` answers requests from an adaptive
in-process cache (TTL, LRU eviction, tags, stale-while-revalidate) and sends
the rest to one of several equivalent endpoints, retrying with exponential
backoff and quarantining endpoints that keep failing.

Typical use::

    from fetchkit import AsyncClient, ClientConfig, FailoverConfig

    config = ClientConfig(failover=FailoverConfig(endpoints=["https://a", "https://b"]))
    async with AsyncClient(config) as client:
        resp = await client.get("/users", cache=True, cache_tags=["users"])

Modules:
    client: Request orchestrator, transports and responses.
    cache: Response cache engine and entries.
    routing: Endpoint health tracking and selection.
    models: Pydantic configuration and per-request option models.
    config: XDG-aware configuration files and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr output system with Rich support.
    app: Typer command line.
"""

__version__ = "0.1.0"

from fetchkit.client import AsyncClient, Response, SyntheticResponse, Transport  # noqa: E402
from fetchkit.exceptions import (  # noqa: E402
    CacheRevalidationError,
    ConfigurationError,
    ExhaustedRetriesError,
    FetchkitError,
    RequestCancelledError,
    StatusValidationError,
    TransportError,
)
from fetchkit.models import (  # noqa: E402
    CacheConfig,
    ClientConfig,
    FailoverConfig,
    HealthCheckConfig,
    RequestConfig,
    SelectionStrategy,
)

__all__ = [
    "AsyncClient",
    "CacheConfig",
    "CacheRevalidationError",
    "ClientConfig",
    "ConfigurationError",
    "ExhaustedRetriesError",
    "FailoverConfig",
    "FetchkitError",
    "HealthCheckConfig",
    "RequestCancelledError",
    "RequestConfig",
    "Response",
    "SelectionStrategy",
    "StatusValidationError",
    "SyntheticResponse",
    "Transport",
    "TransportError",
    "__version__",
]
