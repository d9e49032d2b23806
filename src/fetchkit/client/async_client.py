"""Asynchronous HTTP client with response caching and multi-endpoint failover.

This module provides :class:`AsyncClient`, the request orchestrator at the
centre of fetchkit.  For every outbound request it decides whether to answer
from the cache, serve a stale entry while refreshing it in the background, or
dispatch to a live endpoint with bounded retries:

1. **Cache lookup** -- cache-eligible requests (``GET``/``HEAD``/``OPTIONS``
   with caching enabled) consult :class:`~fetchkit.cache.ResponseCache`.  A
   fresh hit returns immediately; a stale hit marked stale-while-revalidate
   returns immediately *and* schedules one background refresh.
2. **Endpoint selection** -- relative paths are joined onto an endpoint chosen
   by :class:`~fetchkit.routing.EndpointSelector`; absolute URLs go out as given.
3. **Attempt** -- one call to the :class:`~fetchkit.client.transport.Transport`,
   bounded by the timeout and raced against the caller's cancellation signal.
   The status validator classifies the response.
4. **Retry with backoff** -- failed attempts count against the endpoint
   (quarantining it after repeated failures) and are retried after
   ``retry_delay * 2**attempt`` seconds until the budget is spent.
5. **Cache store** -- successful cache-eligible responses are snapshotted into
   the cache with the request's TTL, tags and staleness settings.

Every client owns its own cache, health tracker and selector.  Background work
(cache sweep, health probes, revalidations) is stopped by :meth:`AsyncClient.destroy`,
which ``async with`` calls on exit.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

import httpx

from fetchkit.cache import CacheValidator, ResponseCache, make_cache_key
from fetchkit.client.outcome import AttemptOutcome
from fetchkit.client.response import Response, SyntheticResponse
from fetchkit.client.transport import HttpxTransport, Transport
from fetchkit.exceptions import (
    CacheRevalidationError,
    ConfigurationError,
    ExhaustedRetriesError,
    FetchkitError,
    RequestCancelledError,
    StatusValidationError,
    TransportError,
)
from fetchkit.models import ClientConfig, RequestOptions
from fetchkit.output import get_output
from fetchkit.routing import EndpointSelector, HealthTracker

CACHEABLE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class _PreparedRequest:
    """Everything needed to (re)send one logical request."""

    target: str
    routed: bool
    headers: dict[str, str]
    body: Optional[bytes]


class AsyncClient:
    """Asynchronous HTTP client for API calls.

    Args:
        config: Client configuration.  Defaults to :class:`ClientConfig()`.
        transport: Transport performing single exchanges.  Defaults to an
            :class:`~fetchkit.client.transport.HttpxTransport` owned (and
            closed) by the client.
        dry_run: When ``True``, requests are printed to stderr and a
            synthetic 200 response is returned without network I/O.
        clock: Monotonic time source shared by the cache and health tracker.
        rng: Random source for the ``random`` selection strategy.

    Example::

        config = ClientConfig(failover=FailoverConfig(endpoints=["https://a", "https://b"]))
        async with AsyncClient(config) as client:
            response = await client.get("/users", cache=True, cache_tags=["users"])
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[Transport] = None,
        dry_run: bool = False,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._owns_transport = transport is None
        self._transport = transport or HttpxTransport(verify_ssl=self._config.request.verify_ssl)
        self._dry_run = dry_run
        self._clock = clock
        failover = self._config.failover
        self._cache = ResponseCache(self._config.cache, clock=clock)
        self._tracker = HealthTracker(failover.health_check, transport=self._transport, clock=clock)
        self._selector = EndpointSelector(
            failover.endpoints, failover.strategy, self._tracker, rng=rng,
        )
        self._revalidations: dict[str, asyncio.Task[None]] = {}
        self._started = False
        self._destroyed = False

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def health(self) -> HealthTracker:
        return self._tracker

    @property
    def selector(self) -> EndpointSelector:
        return self._selector

    # ------------------------------------------------------------------ #
    # Async context manager and lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncClient:
        self._ensure_started()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.destroy()

    def _ensure_started(self) -> None:
        """Start the cache sweep and, if enabled, health probes."""
        if self._started or self._destroyed:
            return
        self._started = True
        self._cache.start()
        if self._config.failover.probes_enabled:
            self._tracker.start(self._selector.endpoints)

    async def destroy(self) -> None:
        """Stop background timers, cancel revalidations and close the transport.

        Safe to call more than once.
        """
        if self._destroyed:
            return
        self._destroyed = True

        await self._cache.stop()
        await self._tracker.stop()

        pending = list(self._revalidations.values())
        self._revalidations.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._cache.clear()
        if self._owns_transport:
            await self._transport.aclose()

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        body: Optional[str | bytes] = None,
        json_body: Optional[Any] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        max_retry_delay: Optional[float] = None,
        cache: Optional[bool] = None,
        cache_time: Optional[float] = None,
        cache_tags: Optional[Iterable[str]] = None,
        stale_while_revalidate: Optional[bool] = None,
        cache_max_age: Optional[float] = None,
        validate_status: Optional[Callable[[int], bool]] = None,
        signal: Optional[asyncio.Event] = None,
    ) -> Response:
        """Send a request through the cache, the selector and the retry loop.

        Args:
            method: HTTP method.
            url: Absolute URL, or a path joined onto a configured endpoint.
            params: Query parameters merged into the URL.
            headers: Extra request headers.
            body: Raw request body.
            json_body: JSON-serialisable body (sets ``Content-Type``).
            timeout: Per-attempt timeout in seconds.
            retries: Retries after the first attempt.
            retry_delay: Base backoff delay in seconds.
            max_retry_delay: Cap for a single backoff delay.
            cache: Whether this request may be served from / stored in the cache.
            cache_time: Entry TTL in seconds.
            cache_tags: Tags for :meth:`delete_cache_by_tag`.
            stale_while_revalidate: Serve stale entries while refreshing.
            cache_max_age: Age after which the entry is stale.
            validate_status: Predicate accepting a status code (default 2xx).
            signal: Event that cancels the request when set.

        Returns:
            The :class:`~fetchkit.client.response.Response`.

        Raises:
            ConfigurationError: A relative path was given without endpoints.
            ExhaustedRetriesError: Every attempt failed.
            RequestCancelledError: *signal* was set.
        """
        options = RequestOptions.resolve(
            self._config,
            method,
            params=params,
            headers=headers,
            body=body,
            json_body=json_body,
            timeout=timeout,
            retries=retries,
            retry_delay=retry_delay,
            max_retry_delay=max_retry_delay,
            cache=cache,
            cache_time=cache_time,
            cache_tags=cache_tags,
            stale_while_revalidate=stale_while_revalidate,
            cache_max_age=cache_max_age,
            validate_status=validate_status,
            signal=signal,
        )
        return await self._send(url, options, failover=False)

    async def request_with_failover(self, path: str, method: str = "GET", **kwargs: Any) -> Response:
        """Send a request that must be routed across the configured endpoints.

        Accepts the same keyword arguments as :meth:`request`.

        Raises:
            ConfigurationError: If no endpoints are configured.
        """
        if not self._selector.endpoints:
            raise ConfigurationError("No endpoints configured for failover")
        options = RequestOptions.resolve(self._config, method, **kwargs)
        return await self._send(path, options, failover=True)

    async def get(self, url: str, **kwargs: Any) -> Response:
        """Send a GET request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Response:
        """Send a POST request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Response:
        """Send a PUT request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Response:
        """Send a PATCH request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Response:
        """Send a DELETE request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request("DELETE", url, **kwargs)

    async def head(self, url: str, **kwargs: Any) -> Response:
        """Send a HEAD request.  Keyword arguments are forwarded to :meth:`request`."""
        return await self.request("HEAD", url, **kwargs)

    async def all(self, requests: Iterable[str | Mapping[str, Any]]) -> list[Response]:
        """Send several requests concurrently and return responses in input order.

        Each item is either a URL (sent as GET) or a mapping with ``url``,
        optional ``method`` and any :meth:`request` keyword arguments.  The
        first failure propagates.
        """
        return list(await asyncio.gather(*(self._dispatch(item) for item in requests)))

    async def race(self, requests: Iterable[str | Mapping[str, Any]]) -> Response:
        """Send several requests concurrently and settle with the first to finish.

        Requests still in flight when the first one settles are cancelled.
        Items use the same shapes as :meth:`all`.
        """
        tasks = [asyncio.ensure_future(self._dispatch(item)) for item in requests]
        if not tasks:
            raise ValueError("race() needs at least one request")
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        winner = next(task for task in tasks if task in done)
        return winner.result()

    # ------------------------------------------------------------------ #
    # Cache and failover management
    # ------------------------------------------------------------------ #

    def get_cache_stats(self) -> dict[str, Any]:
        """Return the cache counters (see :meth:`ResponseCache.stats`)."""
        return self._cache.stats()

    def delete_cache_by_tag(self, tag: str) -> int:
        """Drop every cached response tagged *tag*; returns the number removed."""
        return self._cache.delete_by_tag(tag)

    def clear_cache(self) -> None:
        """Drop every cached response."""
        self._cache.clear()

    def get_failover_stats(self) -> dict[str, Any]:
        """Summarise endpoint health and quarantine.

        Returns:
            A ``dict`` with ``total_endpoints``, ``healthy_endpoints``
            (healthy and not quarantined), ``quarantined_endpoints``,
            ``strategy`` and a per-endpoint ``endpoints`` breakdown.
        """
        endpoints = self._selector.endpoints
        quarantined = set(self._selector.quarantined)
        details: dict[str, dict[str, Any]] = {}
        for endpoint in endpoints:
            record = self._tracker.get(endpoint)
            details[endpoint] = {
                "state": record.state.value,
                "last_latency": record.last_latency,
                "consecutive_failures": record.consecutive_failures,
                "quarantined": endpoint in quarantined,
            }
        healthy = [
            e for e in endpoints if self._tracker.is_healthy(e) and e not in quarantined
        ]
        return {
            "total_endpoints": len(endpoints),
            "healthy_endpoints": len(healthy),
            "quarantined_endpoints": len(quarantined),
            "strategy": self._selector.strategy.value,
            "endpoints": details,
        }

    # ------------------------------------------------------------------ #
    # Orchestration
    # ------------------------------------------------------------------ #

    async def _send(self, url: str, options: RequestOptions, failover: bool) -> Response:
        if options.signal is not None and options.signal.is_set():
            raise RequestCancelledError(0)
        if self._destroyed:
            raise RuntimeError("Client has been destroyed")
        self._ensure_started()

        prepared = self._prepare(url, options, failover)

        if self._dry_run:
            return self._print_dry_run(options, prepared)

        cache_key: Optional[str] = None
        if options.cache and options.method in CACHEABLE_METHODS:
            cache_key = make_cache_key(
                options.method, prepared.target,
                options.json_body if options.json_body is not None else options.body,
            )
            hit = self._cache.get(cache_key)
            if hit is not None:
                if not hit.is_stale:
                    get_output().debug(f"Cache hit: {options.method} {prepared.target}")
                    return hit.value
                if hit.should_revalidate:
                    get_output().debug(f"Serving stale: {options.method} {prepared.target}")
                    self._schedule_revalidation(cache_key, prepared, options, hit.value, hit.validator)
                    return hit.value

        response = await self._execute_with_retry(prepared, options)

        if cache_key is not None:
            self._store(cache_key, response, options)
        return response

    def _prepare(self, url: str, options: RequestOptions, failover: bool) -> _PreparedRequest:
        target = url
        if options.params:
            target = str(httpx.URL(url).copy_merge_params(options.params))

        routed = not _is_absolute(target)
        if routed and not self._selector.endpoints:
            raise ConfigurationError(
                f"Cannot resolve relative URL {url!r}: no endpoints configured"
            )
        if failover and not self._selector.endpoints:
            raise ConfigurationError("No endpoints configured for failover")
        if routed and not target.startswith("/"):
            target = f"/{target}"

        headers = dict(options.headers)
        names = {name.lower() for name in headers}
        if "accept" not in names:
            headers["Accept"] = "application/json"
        body: Optional[bytes] = None
        if options.json_body is not None:
            body = json.dumps(options.json_body).encode("utf-8")
            if "content-type" not in names:
                headers["Content-Type"] = "application/json"
        elif isinstance(options.body, str):
            body = options.body.encode("utf-8")
        elif options.body is not None:
            body = options.body

        return _PreparedRequest(target=target, routed=routed, headers=headers, body=body)

    async def _execute_with_retry(
        self,
        prepared: _PreparedRequest,
        options: RequestOptions,
        extra_headers: Optional[Mapping[str, str]] = None,
        accept_not_modified: bool = False,
    ) -> Response:
        """Run attempts until one succeeds or the retry budget is spent.

        Attempts are sequential.  The delay after failed attempt *n*
        (zero-indexed) is ``retry_delay * 2**n``, capped by
        ``max_retry_delay`` when set.
        """
        output = get_output()
        headers = {**prepared.headers, **(extra_headers or {})}
        total = options.retries + 1
        last_error: Optional[FetchkitError] = None

        for attempt in range(total):
            endpoint: Optional[str] = None
            url = prepared.target
            if prepared.routed:
                endpoint = self._selector.select()
                url = f"{endpoint}{prepared.target}"

            outcome = await self._attempt(
                url, headers, prepared.body, options, accept_not_modified,
            )

            if outcome.cancelled:
                raise RequestCancelledError(attempt + 1)

            if outcome.ok:
                assert outcome.response is not None
                if endpoint is not None:
                    self._tracker.record_success(endpoint, outcome.latency)
                    self._selector.release(endpoint)
                return outcome.response

            last_error = outcome.error
            if endpoint is not None:
                self._record_failure(endpoint, last_error)

            if attempt < options.retries:
                delay = options.backoff(attempt)
                output.debug(
                    f"{options.method} {url} failed: {last_error}, retrying in {delay:g}s "
                    f"(attempt {attempt + 1}/{total})"
                )
                if await _sleep_or_cancel(delay, options.signal):
                    raise RequestCancelledError(attempt + 1)

        assert last_error is not None
        raise ExhaustedRetriesError(last_error, total)

    async def _attempt(
        self,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
        options: RequestOptions,
        accept_not_modified: bool,
    ) -> AttemptOutcome:
        """Make one transport call and classify it."""
        started = self._clock()
        exchange = asyncio.wait_for(
            self._transport.send(options.method, url, headers, body, options.signal, options.timeout),
            timeout=options.timeout,
        )
        try:
            response = await _race_signal(exchange, options.signal)
        except asyncio.TimeoutError:
            return AttemptOutcome.failure(
                TransportError(f"Request timed out after {options.timeout:g}s: {url}", url=url)
            )
        except FetchkitError as exc:
            return AttemptOutcome.failure(exc)

        if response is None:
            return AttemptOutcome.aborted()

        latency = self._clock() - started
        if accept_not_modified and response.status_code == 304:
            return AttemptOutcome.success(response, latency)
        if not options.validate_status(response.status_code):
            return AttemptOutcome.failure(StatusValidationError(response), latency)
        return AttemptOutcome.success(response, latency)

    def _record_failure(self, endpoint: str, error: Optional[BaseException]) -> None:
        failures = self._tracker.record_failure(endpoint, error)
        threshold = self._config.failover.quarantine_threshold
        if failures >= threshold and not self._selector.is_quarantined(endpoint):
            self._selector.quarantine(endpoint)
            get_output().warning(
                f"Endpoint {endpoint} quarantined after {failures} consecutive failures"
            )

    # ------------------------------------------------------------------ #
    # Cache helpers
    # ------------------------------------------------------------------ #

    def _store(
        self,
        key: str,
        response: Response,
        options: RequestOptions,
        value: Optional[Response] = None,
    ) -> None:
        """Snapshot *response* into the cache under *key*.

        *value* replaces the stored payload (used when a ``304`` confirms
        the existing entry).
        """
        cache_control = (response.header("cache-control") or "").lower()
        if "no-store" in cache_control:
            return
        snapshot = value if value is not None else SyntheticResponse.snapshot(response)
        source = value if value is not None else response
        validator = CacheValidator(
            etag=response.header("etag") or source.header("etag"),
            last_modified=response.header("last-modified") or source.header("last-modified"),
        )
        self._cache.set(
            key,
            snapshot,
            ttl=options.cache_time,
            max_age=options.cache_max_age,
            tags=options.cache_tags,
            validator=validator or None,
            stale_while_revalidate=options.stale_while_revalidate,
        )

    def _schedule_revalidation(
        self,
        key: str,
        prepared: _PreparedRequest,
        options: RequestOptions,
        stale: Response,
        validator: Optional[CacheValidator],
    ) -> None:
        """Start one background refresh for *key* unless one is in flight."""
        running = self._revalidations.get(key)
        if running is not None and not running.done():
            return

        refresh = options.model_copy(update={"cache": False, "signal": None})
        task = asyncio.get_running_loop().create_task(
            self._revalidate(key, prepared, refresh, stale, validator),
            name=f"fetchkit-revalidate-{key[:12]}",
        )
        self._revalidations[key] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._revalidations.get(key) is done:
                del self._revalidations[key]

        task.add_done_callback(_forget)

    async def _revalidate(
        self,
        key: str,
        prepared: _PreparedRequest,
        options: RequestOptions,
        stale: Response,
        validator: Optional[CacheValidator],
    ) -> None:
        conditional = validator.conditional_headers() if validator else {}
        try:
            response = await self._execute_with_retry(
                prepared, options, extra_headers=conditional, accept_not_modified=bool(conditional),
            )
        except Exception as exc:
            # Background refreshes never raise; the stale entry stays until expiry.
            get_output().warning(str(CacheRevalidationError(key, exc)))
            return

        if response.status_code == 304:
            self._store(key, response, options, value=stale)
        else:
            self._store(key, response, options)
        get_output().debug(f"Revalidated: {options.method} {prepared.target}")

    # ------------------------------------------------------------------ #
    # Misc helpers
    # ------------------------------------------------------------------ #

    def _dispatch(self, item: str | Mapping[str, Any]) -> Any:
        if isinstance(item, str):
            return self.get(item)
        kwargs = dict(item)
        url = kwargs.pop("url")
        method = kwargs.pop("method", "GET")
        return self.request(method, url, **kwargs)

    def _print_dry_run(self, options: RequestOptions, prepared: _PreparedRequest) -> Response:
        """Print request details to stderr and return a synthetic 200 response."""
        output = get_output()
        target = prepared.target
        if prepared.routed:
            target = f"{{endpoint}}{target}  (endpoints: {', '.join(self._selector.endpoints)})"
        output.info(f"[dry-run] {options.method} {target}")

        for key, value in prepared.headers.items():
            output.info(f"  Header: {key}: {value}")
        if options.json_body is not None:
            output.info(f"  Body (JSON): {json.dumps(options.json_body, indent=2)}")
        elif prepared.body is not None:
            output.info(f"  Body: {prepared.body.decode('utf-8', errors='replace')}")

        return SyntheticResponse(
            status_code=200,
            json={"dry_run": True, "message": "Request was not sent"},
        )


def _is_absolute(url: str) -> bool:
    return url.startswith(("http://", "https://"))


async def _race_signal(exchange: Any, signal: Optional[asyncio.Event]) -> Optional[Response]:
    """Await *exchange*, abandoning it if *signal* fires first.

    Returns ``None`` when the signal won.
    """
    if signal is None:
        return await exchange

    send = asyncio.ensure_future(exchange)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({send, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (send, waiter):
            if not task.done():
                task.cancel()
        await asyncio.gather(send, waiter, return_exceptions=True)

    if send.cancelled():
        return None
    return send.result()


async def _sleep_or_cancel(delay: float, signal: Optional[asyncio.Event]) -> bool:
    """Sleep for *delay* seconds; return ``True`` if *signal* fired meanwhile."""
    if signal is None:
        await asyncio.sleep(delay)
        return False
    if signal.is_set():
        return True
    try:
        await asyncio.wait_for(signal.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True
