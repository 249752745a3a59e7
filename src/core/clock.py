"""Injectable clocks so time-based logic can be driven deterministically."""

from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock time (epoch seconds) and async sleeping."""

    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Real time, backed by ``time.time`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


class ManualClock:
    """Clock that only moves when told to.

    ``sleep()`` advances the clock by the requested amount and yields to the
    event loop once, so retry/backoff loops complete without real waiting.

    Usage::

        clock = ManualClock(start=1000.0)
        breaker = CircuitBreaker(config, clock=clock)
        clock.advance(61.0)
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        self._now += seconds

    def set(self, timestamp: float) -> None:
        self._now = timestamp

    async def sleep(self, seconds: float) -> None:
        seconds = max(seconds, 0.0)
        self.sleeps.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)


_DEFAULT_CLOCK = SystemClock()


def default_clock() -> Clock:
    """Shared SystemClock instance used when no clock is injected."""
    return _DEFAULT_CLOCK
