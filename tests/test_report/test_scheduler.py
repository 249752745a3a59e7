"""Tests for ReportScheduler — immediate emission and the background loop."""

from __future__ import annotations

import asyncio
import json

from src.core.clock import ManualClock
from src.errors import network_error
from src.monitor.channels import NotificationChannel
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.error_monitor import ErrorMonitor
from src.monitor.types import AlertMessage, Severity
from src.report.generator import ErrorReportGenerator
from src.report.scheduler import ReportScheduler


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    def __init__(self) -> None:
        self.sent: list[AlertMessage] = []

    async def send(self, msg: AlertMessage) -> bool:
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        pass


def _scheduler(
    monitor: ErrorMonitor, clock: ManualClock, **kw: object
) -> tuple[ReportScheduler, FakeChannel]:
    channel = FakeChannel()
    scheduler = ReportScheduler(
        ErrorReportGenerator(monitor, clock=clock),
        AlertDispatcher([channel]),
        clock=clock,
        **kw,  # type: ignore[arg-type]
    )
    return scheduler, channel


# ── emit_now ────────────────────────────────────────────────────


class TestEmitNow:
    async def test_quiet_period_is_info(self) -> None:
        clock = ManualClock(start=10_000.0)
        scheduler, channel = _scheduler(ErrorMonitor(clock=clock), clock)

        report = await scheduler.emit_now()

        assert report.metadata.total_errors == 0
        [msg] = channel.sent
        assert msg.title == "ERROR_REPORT"
        assert msg.severity == Severity.INFO
        assert msg.body == "No recommendations"
        assert msg.fields["total_errors"] == "0"
        assert "top_error" not in msg.fields

    async def test_summary_fields_and_rendered_report(self) -> None:
        clock = ManualClock(start=10_000.0)
        monitor = ErrorMonitor(clock=clock)
        for ts in (9_000.0, 9_500.0):
            await monitor.record_error(network_error("down", timestamp=ts))
        scheduler, channel = _scheduler(monitor, clock, lookback_secs=3600)

        await scheduler.emit_now()

        [msg] = channel.sent
        # A single error type dominates, which always produces a recommendation.
        assert msg.severity == Severity.WARNING
        assert msg.fields["top_error"] == "NETWORK_ERROR (2, 100.0%)"
        assert scheduler.last_report is not None
        assert scheduler.last_report.metadata.time_from == 6_400.0
        assert scheduler.last_rendered is not None
        assert json.loads(scheduler.last_rendered)["metadata"]["total_errors"] == 2

    async def test_report_format(self) -> None:
        clock = ManualClock(start=10_000.0)
        scheduler, _ = _scheduler(ErrorMonitor(clock=clock), clock, format="html")
        await scheduler.emit_now()
        assert scheduler.last_rendered is not None
        assert scheduler.last_rendered.startswith("<!DOCTYPE html>")


# ── Loop ────────────────────────────────────────────────────────


class TestLoop:
    async def test_start_and_stop(self) -> None:
        clock = ManualClock(start=10_000.0)
        scheduler, channel = _scheduler(ErrorMonitor(clock=clock), clock, interval_secs=60)

        await scheduler.start()
        assert scheduler.running
        for _ in range(10):
            await asyncio.sleep(0)
        await scheduler.stop()

        assert not scheduler.running
        assert len(channel.sent) >= 1
        assert clock.sleeps[0] == 60

    async def test_start_is_idempotent(self) -> None:
        clock = ManualClock(start=10_000.0)
        scheduler, _ = _scheduler(ErrorMonitor(clock=clock), clock)
        await scheduler.start()
        task = scheduler._task
        await scheduler.start()
        assert scheduler._task is task
        await scheduler.stop()

    async def test_stop_without_start(self) -> None:
        clock = ManualClock()
        scheduler, _ = _scheduler(ErrorMonitor(clock=clock), clock)
        await scheduler.stop()
        assert not scheduler.running
