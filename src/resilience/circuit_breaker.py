"""CircuitBreaker — failure counting state machine with fallback dispatch."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from src.core.clock import Clock, default_clock
from src.core.config import CircuitBreakerConfig
from src.errors import NetworkFailure, circuit_open_error, network_error

logger = structlog.stdlib.get_logger()

T = TypeVar("T")

Fallback = Callable[[], Awaitable[Any] | Any]


class CircuitState(StrEnum):
    """Breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitStatus(BaseModel):
    """Read-only snapshot returned by ``get_status()``."""

    model_config = ConfigDict(frozen=True)

    state: CircuitState
    failures: int
    last_failure_time: float | None = None


class CircuitBreaker:
    """Guards a resource: stops calling it after repeated failures.

    Transitions are CLOSED→OPEN once ``failure_threshold`` failures pile up,
    OPEN→HALF_OPEN after ``timeout_threshold_ms``, then HALF_OPEN→CLOSED on a
    successful trial or HALF_OPEN→OPEN on a failed one. Only one trial call
    runs at a time; concurrent callers fail fast while it is in flight.

    Usage::

        breaker = CircuitBreaker(config, fallback=lambda: {"cached": True})
        data = await breaker.execute(lambda: client.request("/users"))
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        fallback: Fallback | None = None,
        *,
        name: str = "default",
        clock: Clock | None = None,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._fallback = fallback
        self._name = name
        self._clock = clock or default_clock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False
        self._generation = 0
        self._lock = asyncio.Lock()

    # ── Properties ────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def get_status(self) -> CircuitStatus:
        return CircuitStatus(
            state=self._state,
            failures=self._failure_count,
            last_failure_time=self._last_failure_time,
        )

    # ── Execution ─────────────────────────────────────────────────

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* through the breaker.

        While OPEN (or while a HALF_OPEN trial is in flight) the operation is
        not invoked: the fallback result is returned if one is configured,
        otherwise a CIRCUIT_OPEN AppError is raised. Failures are always
        re-raised; the failure that opens the circuit also invokes the
        fallback first.

        An outcome only moves the state machine if nothing transitioned the
        breaker since the call was admitted (the HALF_OPEN trial excepted).
        """
        async with self._lock:
            admitted, is_trial, generation = self._admit()

        if not admitted:
            return await self._reject()

        try:
            result = await self._invoke(operation)
        except Exception:
            async with self._lock:
                opened = self._on_failure(is_trial, generation)
            if opened and self._fallback is not None:
                await self._notify_fallback(self._fallback)
            raise
        except BaseException:
            # Cancellation is not a verdict on the resource; free the trial slot.
            if is_trial:
                async with self._lock:
                    self._trial_in_flight = False
                    self._transition(CircuitState.OPEN)
            raise

        async with self._lock:
            self._on_success(is_trial, generation)
        return result

    def reset(self) -> None:
        """Force the breaker back to CLOSED with a clean failure count."""
        self._failure_count = 0
        self._last_failure_time = None
        self._trial_in_flight = False
        self._transition(CircuitState.CLOSED)

    # ── State mutation (called with the lock held) ────────────────

    def _admit(self) -> tuple[bool, bool, int]:
        """Return (admitted, is_trial, generation) for a new call."""
        if self._state == CircuitState.OPEN:
            if self._remaining_open_secs() > 0:
                return False, False, self._generation
            self._transition(CircuitState.HALF_OPEN)
            self._trial_in_flight = True
            return True, True, self._generation

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                return False, False, self._generation
            self._trial_in_flight = True
            return True, True, self._generation

        return True, False, self._generation

    def _on_success(self, is_trial: bool, generation: int) -> None:
        if is_trial:
            self._trial_in_flight = False
        elif generation != self._generation:
            logger.debug("circuit_stale_outcome", breaker=self._name, outcome="success")
            return
        self._failure_count = 0
        self._transition(CircuitState.CLOSED)

    def _on_failure(self, is_trial: bool, generation: int) -> bool:
        """Count a failure; return True if this failure opened the circuit."""
        now = self._clock.now()
        if is_trial:
            self._trial_in_flight = False
        elif generation != self._generation:
            logger.debug("circuit_stale_outcome", breaker=self._name, outcome="failure")
            return False

        period = self._config.monitoring_period_ms / 1000.0
        if (
            self._state == CircuitState.CLOSED
            and period > 0
            and self._last_failure_time is not None
            and now - self._last_failure_time > period
        ):
            self._failure_count = 0

        self._failure_count += 1
        self._last_failure_time = now

        if (
            self._state == CircuitState.HALF_OPEN
            or self._failure_count >= self._config.failure_threshold
        ):
            was_open = self._state == CircuitState.OPEN
            self._transition(CircuitState.OPEN)
            return not was_open
        return False

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        self._generation += 1
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "circuit_state_changed",
            breaker=self._name,
            old_state=old_state.value,
            new_state=new_state.value,
            failures=self._failure_count,
        )

    # ── Helpers ───────────────────────────────────────────────────

    def _remaining_open_secs(self) -> float:
        if self._last_failure_time is None:
            return 0.0
        timeout = self._config.timeout_threshold_ms / 1000.0
        return max(0.0, timeout - (self._clock.now() - self._last_failure_time))

    async def _invoke(self, operation: Callable[[], Awaitable[T]]) -> T:
        timeout_ms = self._config.call_timeout_ms
        if timeout_ms <= 0:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000.0)
        except TimeoutError as exc:
            raise network_error(
                f"Call through breaker {self._name!r} timed out after {timeout_ms}ms",
                reason=NetworkFailure.TIMEOUT,
                cause=exc,
                context={"breaker": self._name},
            ) from exc

    async def _reject(self) -> Any:
        if self._fallback is not None:
            logger.debug("circuit_fallback", breaker=self._name, state=self._state.value)
            return await _call(self._fallback)
        raise circuit_open_error(
            f"Circuit {self._name!r} is {self._state.value}; failing fast",
            state=self._state.value,
            failures=self._failure_count,
            retry_after=self._remaining_open_secs(),
            context={"breaker": self._name},
        )

    async def _notify_fallback(self, fallback: Fallback) -> None:
        """Invoke the fallback when the circuit opens; the original error still propagates."""
        try:
            await _call(fallback)
        except Exception:
            logger.exception("circuit_fallback_failed", breaker=self._name)


async def _call(fallback: Fallback) -> Any:
    result = fallback()
    if asyncio.iscoroutine(result):
        result = await result
    return result
