"""Central alert dispatcher — routes errors and recovery events to channels with throttling."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from src.errors import AppError
from src.monitor.channels import NotificationChannel
from src.monitor.formatters import (
    format_alert_metric,
    format_app_error,
    format_health_report,
    format_recovery_attempt,
)
from src.monitor.types import AlertMessage, ErrorMetric, Severity

if TYPE_CHECKING:
    from src.recovery.types import HealthReport, RecoveryAttempt

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """Routes errors, fired alert rules and recovery events to notification channels.

    - Every message is logged via *decision_logger* (full model dump).
    - DEBUG messages are log-only — never sent to channels.
    - INFO/WARNING messages are dispatched subject to per-source-type throttling.
    - CRITICAL messages bypass the throttle and are dispatched immediately.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        throttle_secs: float = 30.0,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._throttle_secs = throttle_secs
        # Tracks the last dispatch time per source_event_type.
        self._last_sent: dict[str, float] = {}

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    # ── Callback entry points ───────────────────────────────────

    async def on_app_error(self, err: AppError) -> None:
        await self._handle(format_app_error(err))

    async def on_alert_metric(self, metric: ErrorMetric) -> None:
        """AlertRule action: notify that an error threshold was crossed."""
        await self._handle(format_alert_metric(metric))

    async def on_recovery_attempt(self, attempt: RecoveryAttempt) -> None:
        await self._handle(format_recovery_attempt(attempt))

    async def on_health_report(self, report: HealthReport) -> None:
        await self._handle(format_health_report(report))

    # ── Direct send (used by the report scheduler, etc.) ────────

    async def send(self, msg: AlertMessage) -> None:
        """Dispatch an AlertMessage directly (bypasses throttle)."""
        self._log_decision(msg)
        await self._dispatch_to_channels(msg)

    # ── Internal routing ────────────────────────────────────────

    async def _handle(self, msg: AlertMessage) -> None:
        self._log_decision(msg)

        if msg.severity == Severity.DEBUG:
            return

        if msg.severity == Severity.CRITICAL:
            self._last_sent[msg.source_event_type] = time.monotonic()
            await self._dispatch_to_channels(msg)
            return

        now = time.monotonic()
        last = self._last_sent.get(msg.source_event_type, -float("inf"))
        if now - last < self._throttle_secs:
            return

        self._last_sent[msg.source_event_type] = now
        await self._dispatch_to_channels(msg)

    def _log_decision(self, msg: AlertMessage) -> None:
        decision_logger.info(
            "decision",
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            source_event_type=msg.source_event_type,
            fields=msg.fields,
            raw=msg.raw,
        )

    async def _dispatch_to_channels(self, msg: AlertMessage) -> None:
        for ch in self._channels:
            try:
                await ch.send(msg)
            except Exception:
                logger.exception(
                    "channel_dispatch_error",
                    channel=type(ch).__name__,
                    title=msg.title,
                )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
