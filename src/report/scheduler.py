"""Scheduled error report generation."""

from __future__ import annotations

import asyncio

import structlog

from src.core.clock import Clock, default_clock
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.types import AlertMessage, Severity
from src.report.generator import ErrorReportGenerator, render
from src.report.types import ErrorReport, ReportConfig, ReportFormat

logger = structlog.get_logger(__name__)


class ReportScheduler:
    """Background task that generates an error report every *interval_secs*.

    Each run renders the report in *format* (kept as ``last_rendered``) and
    dispatches a summary AlertMessage.

    Usage::

        scheduler = ReportScheduler(generator, dispatcher, interval_secs=3600)
        await scheduler.start()
        # ...
        await scheduler.stop()
    """

    def __init__(
        self,
        generator: ErrorReportGenerator,
        dispatcher: AlertDispatcher,
        interval_secs: float = 24 * 60 * 60,
        lookback_secs: float = 24 * 60 * 60,
        format: ReportFormat | str = ReportFormat.JSON,
        clock: Clock | None = None,
    ) -> None:
        self._generator = generator
        self._dispatcher = dispatcher
        self._interval_secs = interval_secs
        self._lookback_secs = lookback_secs
        self._format = ReportFormat(format)
        self._clock = clock or default_clock()
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self.last_report: ErrorReport | None = None
        self.last_rendered: str | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def emit_now(self) -> ErrorReport:
        """Generate and dispatch a report immediately."""
        config = ReportConfig.lookback(
            self._lookback_secs, now=self._clock.now(), format=self._format
        )
        report = self._generator.collect(config)
        self.last_report = report
        self.last_rendered = render(report, self._format)
        await self._dispatcher.send(_build_summary(report))
        return report

    # ── Internal loop ───────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self._clock.sleep(self._interval_secs)
                await self.emit_now()
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception("report_loop_error")


def _build_summary(report: ErrorReport) -> AlertMessage:
    meta = report.metadata
    fields: dict[str, str] = {
        "total_errors": str(meta.total_errors),
        "unique_error_types": str(meta.unique_error_types),
    }
    if report.summary.most_frequent_errors:
        top = report.summary.most_frequent_errors[0]
        fields["top_error"] = f"{top.type} ({top.count}, {top.percentage}%)"
    if report.recovery is not None:
        fields["recovery"] = f"{report.recovery.successes}/{report.recovery.attempts}"

    body = "\n".join(report.recommendations) or "No recommendations"
    return AlertMessage(
        severity=Severity.WARNING if report.recommendations else Severity.INFO,
        title="ERROR_REPORT",
        body=body,
        fields=fields,
        source_event_type="ERROR_REPORT",
        timestamp=meta.generated_at,
        raw=report.metadata.model_dump(mode="json"),
    )
