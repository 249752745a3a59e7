"""Tests for CircuitBreaker — transitions, fallback, single trial, timeouts."""

from __future__ import annotations

import asyncio

import pytest

from src.core.clock import ManualClock
from src.core.config import CircuitBreakerConfig
from src.errors import AppError, ErrorKind, NetworkFailure
from src.resilience.circuit_breaker import CircuitBreaker, CircuitState


# ── Helpers ─────────────────────────────────────────────────────


def _cfg(**overrides: object) -> CircuitBreakerConfig:
    defaults: dict[str, object] = {
        "failure_threshold": 3,
        "timeout_threshold_ms": 1000,
    }
    defaults.update(overrides)
    return CircuitBreakerConfig(**defaults)  # type: ignore[arg-type]


class Operation:
    """Async operation whose outcome is scripted per call."""

    def __init__(self, fail: bool = False, result: object = "ok") -> None:
        self.fail = fail
        self.result = result
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        if self.fail:
            raise ConnectionError("boom")
        return self.result


async def _fail_n(breaker: CircuitBreaker, op: Operation, n: int) -> None:
    for _ in range(n):
        with pytest.raises(ConnectionError):
            await breaker.execute(op)


# ── Closed state ────────────────────────────────────────────────


class TestClosed:
    async def test_success_passes_through(self) -> None:
        breaker = CircuitBreaker(_cfg(), clock=ManualClock())
        assert await breaker.execute(Operation(result=42)) == 42
        assert breaker.state == CircuitState.CLOSED

    async def test_failure_reraised_and_counted(self) -> None:
        breaker = CircuitBreaker(_cfg(), clock=ManualClock(start=10.0))
        await _fail_n(breaker, Operation(fail=True), 1)
        status = breaker.get_status()
        assert status.state == CircuitState.CLOSED
        assert status.failures == 1
        assert status.last_failure_time == 10.0

    async def test_success_resets_failure_count(self) -> None:
        breaker = CircuitBreaker(_cfg(), clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 2)
        await breaker.execute(Operation())
        assert breaker.failure_count == 0

    async def test_threshold_opens(self) -> None:
        breaker = CircuitBreaker(_cfg(), clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 3)
        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 3

    async def test_monitoring_period_expires_old_failures(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(monitoring_period_ms=500), clock=clock)
        op = Operation(fail=True)
        await _fail_n(breaker, op, 2)
        clock.advance(1.0)
        await _fail_n(breaker, op, 1)
        assert breaker.failure_count == 1
        assert breaker.state == CircuitState.CLOSED


# ── Open state ──────────────────────────────────────────────────


class TestOpen:
    async def test_open_fails_fast_without_calling(self) -> None:
        breaker = CircuitBreaker(_cfg(), clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 3)

        op = Operation()
        with pytest.raises(AppError) as exc_info:
            await breaker.execute(op)
        assert exc_info.value.kind == ErrorKind.CIRCUIT_OPEN
        assert exc_info.value.details.retry_after == pytest.approx(1.0)  # type: ignore[union-attr]
        assert op.calls == 0

    async def test_fallback_served_while_open(self) -> None:
        calls: list[str] = []

        def fallback() -> str:
            calls.append("fallback")
            return "cached"

        breaker = CircuitBreaker(_cfg(), fallback=fallback, clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 2)
        assert calls == []

        # The failure that trips the breaker invokes the fallback but still propagates.
        await _fail_n(breaker, Operation(fail=True), 1)
        assert breaker.state == CircuitState.OPEN
        assert calls == ["fallback"]

        op = Operation()
        assert await breaker.execute(op) == "cached"
        assert op.calls == 0
        assert calls == ["fallback", "fallback"]

    async def test_async_fallback(self) -> None:
        async def fallback() -> str:
            return "async-cached"

        breaker = CircuitBreaker(_cfg(failure_threshold=1), fallback=fallback, clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 1)
        assert await breaker.execute(Operation()) == "async-cached"

    async def test_failing_fallback_keeps_original_error(self) -> None:
        def fallback() -> str:
            raise RuntimeError("fallback broke")

        breaker = CircuitBreaker(_cfg(failure_threshold=1), fallback=fallback, clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 1)
        assert breaker.state == CircuitState.OPEN

    async def test_half_open_after_timeout(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(), clock=clock)
        await _fail_n(breaker, Operation(fail=True), 3)
        clock.advance(1.0)

        op = Operation()
        assert await breaker.execute(op) == "ok"
        assert op.calls == 1
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_failed_trial_reopens(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(), clock=clock)
        await _fail_n(breaker, Operation(fail=True), 3)
        clock.advance(1.5)

        await _fail_n(breaker, Operation(fail=True), 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.get_status().last_failure_time == 1.5

        with pytest.raises(AppError):
            await breaker.execute(Operation())

    async def test_reset_closes(self) -> None:
        breaker = CircuitBreaker(_cfg(), clock=ManualClock())
        await _fail_n(breaker, Operation(fail=True), 3)
        breaker.reset()
        assert breaker.get_status().state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert await breaker.execute(Operation()) == "ok"


# ── Half-open trial ─────────────────────────────────────────────


class TestHalfOpenTrial:
    async def test_only_one_trial_in_flight(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(), clock=clock)
        await _fail_n(breaker, Operation(fail=True), 3)
        clock.advance(1.0)

        release = asyncio.Event()
        trial_calls = 0

        async def slow_trial() -> str:
            nonlocal trial_calls
            trial_calls += 1
            await release.wait()
            return "recovered"

        trial = asyncio.create_task(breaker.execute(slow_trial))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        second = Operation()
        with pytest.raises(AppError) as exc_info:
            await breaker.execute(second)
        assert exc_info.value.kind == ErrorKind.CIRCUIT_OPEN
        assert second.calls == 0

        release.set()
        assert await trial == "recovered"
        assert trial_calls == 1
        assert breaker.state == CircuitState.CLOSED

    async def test_cancelled_trial_frees_slot(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(), clock=clock)
        await _fail_n(breaker, Operation(fail=True), 3)
        clock.advance(1.0)

        async def hang() -> None:
            await asyncio.Event().wait()

        task = asyncio.create_task(breaker.execute(hang))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert breaker.state == CircuitState.OPEN

        # Timeout measured from the last failure, which is still in the past.
        assert await breaker.execute(Operation()) == "ok"


# ── Outcomes of calls admitted before a transition ──────────────


class Gate:
    """Async operation that blocks until released, then succeeds or fails."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.release = asyncio.Event()

    async def __call__(self) -> str:
        await self.release.wait()
        if self.fail:
            raise ConnectionError("late failure")
        return "late"


class TestStaleOutcomes:
    async def test_late_success_does_not_close_open_circuit(self) -> None:
        breaker = CircuitBreaker(_cfg(failure_threshold=1), clock=ManualClock())
        slow = Gate()
        task = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)

        await _fail_n(breaker, Operation(fail=True), 1)
        assert breaker.state == CircuitState.OPEN

        slow.release.set()
        assert await task == "late"
        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 1

        op = Operation()
        with pytest.raises(AppError):
            await breaker.execute(op)
        assert op.calls == 0

    async def test_late_success_does_not_end_trial(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(failure_threshold=1), clock=clock)
        slow = Gate()
        stale = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)

        await _fail_n(breaker, Operation(fail=True), 1)
        clock.advance(1.0)
        trial_gate = Gate()
        trial = asyncio.create_task(breaker.execute(trial_gate))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        slow.release.set()
        await stale
        assert breaker.state == CircuitState.HALF_OPEN

        trial_gate.release.set()
        await trial
        assert breaker.state == CircuitState.CLOSED

    async def test_late_failure_does_not_reopen_during_trial(self) -> None:
        clock = ManualClock()
        breaker = CircuitBreaker(_cfg(failure_threshold=1), clock=clock)
        slow = Gate(fail=True)
        stale = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)

        await _fail_n(breaker, Operation(fail=True), 1)
        clock.advance(1.0)
        trial_gate = Gate()
        trial = asyncio.create_task(breaker.execute(trial_gate))
        await asyncio.sleep(0)

        slow.release.set()
        with pytest.raises(ConnectionError):
            await stale
        assert breaker.state == CircuitState.HALF_OPEN

        trial_gate.release.set()
        assert await trial == "late"
        assert breaker.state == CircuitState.CLOSED


# ── Call timeout ────────────────────────────────────────────────


class TestCallTimeout:
    async def test_timeout_counts_as_failure(self) -> None:
        breaker = CircuitBreaker(_cfg(call_timeout_ms=10), clock=ManualClock())

        async def hang() -> None:
            await asyncio.sleep(5)

        with pytest.raises(AppError) as exc_info:
            await breaker.execute(hang)
        err = exc_info.value
        assert err.kind == ErrorKind.NETWORK
        assert err.details.reason == NetworkFailure.TIMEOUT  # type: ignore[union-attr]
        assert breaker.failure_count == 1
