"""ResilientClient — timeout-bounded, retrying HTTP requests over httpx."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from src.core.clock import Clock, default_clock
from src.core.config import BackoffStrategy, ClientConfig, get_settings
from src.errors import (
    AppError,
    ErrorKind,
    NetworkDetails,
    NetworkFailure,
    api_error,
    authentication_error,
    network_error,
    validation_error,
)
from src.resilience.cache import AuthToken, ResponseCache
from src.resilience.circuit_breaker import CircuitBreaker, CircuitState

logger = structlog.stdlib.get_logger()

ErrorCallback = Callable[[AppError], Awaitable[None] | None]


class ClientStats(BaseModel):
    """Counters exposed by ``ResilientClient.stats()``."""

    total_requests: int = 0
    errors: int = 0
    retries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    active_requests: int = 0
    error_rate: float = 0.0


def backoff_delay(strategy: BackoffStrategy, base_secs: float, retry_number: int) -> float:
    """Seconds to wait before retry number *retry_number* (1-based)."""
    if strategy == BackoffStrategy.FIXED:
        return base_secs
    if strategy == BackoffStrategy.EXPONENTIAL:
        return base_secs * (2 ** (retry_number - 1))
    return base_secs * retry_number


class ResilientClient:
    """HTTP client with per-attempt timeouts, retry with backoff and caching.

    - Network-level failures (transport errors, timeouts) are retried up to
      ``retry_attempts`` extra times.
    - Non-2xx responses raise an API AppError immediately and are never
      retried: the service was reachable and said no.
    - 2xx bodies are decoded as JSON; an undecodable body raises a
      VALIDATION AppError on field ``body``.

    Retries assume the request is idempotent. Pass ``retry_attempts=0`` for
    anything that is not.

    Usage::

        async with ResilientClient(config, breaker=breaker) as client:
            user = await client.request("/users/1")
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        breaker: CircuitBreaker | None = None,
        on_error: ErrorCallback | None = None,
        clock: Clock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or get_settings().client
        self._breaker = breaker
        self._on_error = on_error
        self._clock = clock or default_clock()
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._semaphore = asyncio.Semaphore(max(1, self._config.max_concurrent_requests))
        self._cache = ResponseCache(
            self._config.cache_ttl_ms / 1000.0,
            clock=self._clock,
            max_entries=self._config.cache_max_entries,
        )
        self._token = AuthToken(clock=self._clock)

        self._total_requests = 0
        self._errors = 0
        self._retries = 0
        self._active = 0

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def connected(self) -> bool:
        return self._http is not None and not self._http.is_closed

    @property
    def breaker(self) -> CircuitBreaker | None:
        return self._breaker

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def connect(self) -> None:
        """Create the underlying httpx client."""
        self._get_http()

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._config.base_url,
                headers={"Content-Type": "application/json", **self._config.headers},
                timeout=httpx.Timeout(self._config.timeout_ms / 1000.0),
                transport=self._transport,
            )
        return self._http

    async def __aenter__(self) -> ResilientClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Token / cache / stats ─────────────────────────────────────

    def set_auth_token(self, token: str, expires_in_ms: int | None = None) -> None:
        self._token.set(token, expires_in_ms)

    def clear_auth_token(self) -> None:
        self._token.clear()

    def clear_cache(self, pattern: str | None = None) -> int:
        return self._cache.clear(pattern)

    def stats(self) -> ClientStats:
        error_rate = (
            (self._errors / self._total_requests) * 100.0 if self._total_requests else 0.0
        )
        return ClientStats(
            total_requests=self._total_requests,
            errors=self._errors,
            retries=self._retries,
            cache_hits=self._cache.hits,
            cache_misses=self._cache.misses,
            active_requests=self._active,
            error_rate=round(error_rate, 2),
        )

    # ── Requests ──────────────────────────────────────────────────

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request(path, method="GET", **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        kwargs.setdefault("retry_attempts", 0)
        return await self.request(path, method="POST", **kwargs)

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cache: bool | None = None,
        cache_ttl_ms: int | None = None,
        retry_attempts: int | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON payload.

        Args:
            path: Path relative to ``base_url``.
            method: HTTP method.
            cache: Cache the payload. Defaults to True for GET; ignored for
                other methods.
            cache_ttl_ms: Per-call cache TTL override.
            retry_attempts: Per-call override of the configured retry count.

        Raises:
            AppError: NETWORK after retries are exhausted, API on a non-2xx
                response, VALIDATION on an undecodable body, AUTHENTICATION
                when a configured token has expired, CIRCUIT_OPEN when the
                breaker fails fast.
        """
        method = method.upper()
        use_cache = method == "GET" and cache is not False
        cache_key = ResponseCache.key_for(method, path, params)
        self._total_requests += 1

        if use_cache:
            found, data = self._cache.get(cache_key)
            if found:
                return data

        retries = self._config.retry_attempts if retry_attempts is None else retry_attempts

        async def send() -> Any:
            return await self._send_with_retry(method, path, json, params, headers, retries)

        try:
            if self._token.is_set and not self._token.valid:
                raise authentication_error(
                    "Auth token is invalid or expired",
                    context={"path": path, "method": method},
                )
            if self._breaker is not None:
                data = await self._breaker.execute(send)
            else:
                data = await send()
        except AppError as err:
            self._errors += 1
            await self._report(err)
            raise

        if use_cache and (self._breaker is None or self._breaker.state == CircuitState.CLOSED):
            ttl = cache_ttl_ms / 1000.0 if cache_ttl_ms is not None else None
            self._cache.set(cache_key, data, ttl)
        return data

    async def _send_with_retry(
        self,
        method: str,
        path: str,
        json: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        retries: int,
    ) -> Any:
        total_attempts = 1 + max(retries, 0)
        base_delay = self._config.retry_delay_ms / 1000.0
        attempt = 0

        while True:
            if attempt > 0:
                self._retries += 1
                delay = backoff_delay(self._config.backoff, base_delay, attempt)
                logger.info(
                    "request_retry",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    delay_secs=delay,
                )
                await self._clock.sleep(delay)
            try:
                return await self._attempt(method, path, json, params, headers)
            except AppError as err:
                if err.kind != ErrorKind.NETWORK:
                    raise
                logger.warning(
                    "request_attempt_failed",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    of=total_attempts,
                    error=err,
                )
                attempt += 1
                if attempt >= total_attempts:
                    raise self._exhausted(err, method, path, total_attempts)

    def _exhausted(self, last: AppError, method: str, path: str, attempts: int) -> AppError:
        reason = (
            last.details.reason
            if isinstance(last.details, NetworkDetails)
            else NetworkFailure.UNKNOWN
        )
        return network_error(
            f"{method} {path} failed after {attempts} attempt(s): {last.message}",
            reason=reason,
            url=self._url(path),
            attempts=attempts,
            cause=last.cause or last,
            context={"method": method, "path": path},
        )

    async def _attempt(
        self,
        method: str,
        path: str,
        json: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> Any:
        http = self._get_http()
        merged = {**self._token.header(), **(headers or {})}
        timeout_secs = self._config.timeout_ms / 1000.0
        url = self._url(path)

        async with self._semaphore:
            self._active += 1
            try:
                response = await asyncio.wait_for(
                    http.request(method, path, json=json, params=params, headers=merged),
                    timeout=timeout_secs,
                )
            except (TimeoutError, httpx.TimeoutException) as exc:
                raise network_error(
                    f"{method} {path} timed out after {self._config.timeout_ms}ms",
                    reason=NetworkFailure.TIMEOUT,
                    url=url,
                    cause=exc,
                ) from exc
            except httpx.TransportError as exc:
                raise network_error(
                    f"{method} {path} failed: {exc}",
                    reason=NetworkFailure.CONNECTION,
                    url=url,
                    cause=exc,
                ) from exc
            finally:
                self._active -= 1

        if not response.is_success:
            raise api_error(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                endpoint=path,
                context={"method": method, "url": url},
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise validation_error(
                f"{method} {path} returned a malformed payload",
                field="body",
                value=response.text[:200],
                cause=exc,
                context={"method": method, "url": url},
            ) from exc

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _report(self, err: AppError) -> None:
        if self._on_error is None:
            return
        try:
            result = self._on_error(err)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("client_error_callback_failed", error_code=err.code)
