"""Canonical Pydantic models shared across all fetchkit modules.

This is the single source of truth for configuration shapes in the project.
The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory
and layered by :func:`~fetchkit.config.resolve_config`:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`HealthCheckConfig`,
    :class:`FailoverConfig`, and :class:`ClientConfig`.

**Per-call models** -- built by :class:`~fetchkit.client.AsyncClient` for
every request from keyword arguments layered over the client configuration:
    :class:`RequestOptions`.

All durations are in seconds.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SelectionStrategy(str, enum.Enum):
    """How :class:`~fetchkit.routing.EndpointSelector` picks a target endpoint."""

    ROUND_ROBIN = "round-robin"
    RANDOM = "random"
    HEALTH_RANKED = "health-ranked"


def default_validate_status(status: int) -> bool:
    """Default status validator: accept 2xx."""
    return 200 <= status < 300


# --- Configuration models ---


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every call made by a client."""

    timeout: float = Field(default=10.0, gt=0, description="Per-attempt timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=3, ge=0, description="Retries after the first attempt"
    )
    retry_delay: float = Field(
        default=1.0, ge=0, description="Base backoff delay; doubles every attempt"
    )
    max_retry_delay: Optional[float] = Field(
        default=None, ge=0, description="Upper bound for a single backoff delay (uncapped if unset)"
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )


class CacheConfig(BaseModel):
    """In-process response cache settings."""

    enabled: bool = Field(default=False, description="Cache eligible responses by default")
    ttl_seconds: float = Field(default=300.0, gt=0, description="Hard expiry of an entry")
    max_age_seconds: Optional[float] = Field(
        default=None, gt=0, description="Soft expiry after which an entry is stale"
    )
    stale_while_revalidate: bool = Field(
        default=False, description="Serve stale entries while refreshing in the background"
    )
    capacity: int = Field(default=100, ge=1, description="Maximum resident entries")
    sweep_interval: float = Field(
        default=60.0, gt=0, description="Seconds between expired-entry sweeps"
    )


class HealthCheckConfig(BaseModel):
    """Periodic endpoint probing settings."""

    enabled: Optional[bool] = Field(
        default=None,
        description="Run periodic probes; unset means on for the health-ranked strategy only",
    )
    interval: float = Field(default=30.0, gt=0, description="Seconds between probe rounds")
    timeout: float = Field(default=5.0, gt=0, description="Timeout of a single probe")
    path: str = Field(default="/health", description="Path appended to each endpoint")
    failure_threshold: int = Field(
        default=3, ge=1, description="Consecutive request failures that mark an endpoint unhealthy"
    )


class FailoverConfig(BaseModel):
    """Multi-endpoint routing settings."""

    endpoints: list[str] = Field(
        default_factory=list, description="Candidate base URLs, in preference order"
    )
    strategy: SelectionStrategy = SelectionStrategy.ROUND_ROBIN
    quarantine_threshold: int = Field(
        default=3, ge=1, description="Consecutive failures before an endpoint is quarantined"
    )
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)

    @field_validator("endpoints")
    @classmethod
    def _strip_trailing_slash(cls, value: list[str]) -> list[str]:
        return [endpoint.rstrip("/") for endpoint in value]

    @property
    def probes_enabled(self) -> bool:
        """Whether the periodic probe task should run."""
        if not self.endpoints:
            return False
        if self.health_check.enabled is None:
            return self.strategy == SelectionStrategy.HEALTH_RANKED
        return self.health_check.enabled


class ClientConfig(BaseModel):
    """Complete configuration of an :class:`~fetchkit.client.AsyncClient`.

    Persisted at ``~/.config/fetchkit/config.json`` and loaded by
    :func:`~fetchkit.config.load_client_config`. See
    :func:`~fetchkit.config.resolve_config` for the precedence chain.

    Example::

        ClientConfig(
            failover=FailoverConfig(
                endpoints=["https://a.example.com", "https://b.example.com"],
                strategy="health-ranked",
            ),
            cache=CacheConfig(enabled=True, ttl_seconds=60),
        )
    """

    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    failover: FailoverConfig = Field(default_factory=FailoverConfig)


# --- Per-call models ---


class RequestOptions(BaseModel):
    """Effective options of a single logical request.

    Built by :meth:`RequestOptions.resolve` from the keyword arguments of
    :meth:`~fetchkit.client.AsyncClient.request`; anything left unset falls
    back to the owning :class:`ClientConfig`.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    method: str = "GET"
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str | bytes] = None
    json_body: Any = None
    timeout: float = Field(gt=0)
    retries: int = Field(ge=0)
    retry_delay: float = Field(ge=0)
    max_retry_delay: Optional[float] = None
    cache: bool = False
    cache_time: float = Field(gt=0)
    cache_tags: tuple[str, ...] = ()
    stale_while_revalidate: bool = False
    cache_max_age: Optional[float] = None
    validate_status: Callable[[int], bool] = default_validate_status
    signal: Any = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def resolve(cls, config: ClientConfig, method: str, **overrides: Any) -> RequestOptions:
        """Layer per-call *overrides* (``None`` means unset) over *config*."""
        defaults: dict[str, Any] = {
            "timeout": config.request.timeout,
            "retries": config.request.max_retries,
            "retry_delay": config.request.retry_delay,
            "max_retry_delay": config.request.max_retry_delay,
            "cache": config.cache.enabled,
            "cache_time": config.cache.ttl_seconds,
            "stale_while_revalidate": config.cache.stale_while_revalidate,
            "cache_max_age": config.cache.max_age_seconds,
        }
        values = {k: v for k, v in overrides.items() if v is not None}
        headers = {**config.request.headers, **(values.pop("headers", None) or {})}
        if "cache_tags" in values:
            values["cache_tags"] = tuple(values["cache_tags"])
        return cls(method=method, headers=headers, **{**defaults, **values})

    def backoff(self, attempt: int) -> float:
        """Delay to wait after failed *attempt* (zero-indexed)."""
        delay = self.retry_delay * (2 ** attempt)
        if self.max_retry_delay is not None:
            delay = min(delay, self.max_retry_delay)
        return delay
