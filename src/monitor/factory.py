"""Convenience factory for wiring the monitoring stack."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.core.clock import Clock
from src.core.config import AlertRuleConfig, Settings
from src.monitor.channels import (
    DiscordChannel,
    LogChannel,
    NotificationChannel,
    WebhookChannel,
)
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.error_monitor import ErrorMonitor
from src.monitor.handler import ErrorHandler
from src.monitor.types import AlertAction, AlertRule, ErrorMetric

if TYPE_CHECKING:
    from src.recovery.orchestrator import RecoveryOrchestrator


@dataclass
class MonitorStack:
    monitor: ErrorMonitor
    dispatcher: AlertDispatcher
    handler: ErrorHandler

    async def close(self) -> None:
        await self.dispatcher.close()


def create_monitor_stack(
    settings: Settings,
    orchestrator: RecoveryOrchestrator | None = None,
    clock: Clock | None = None,
) -> MonitorStack:
    """Build monitor + dispatcher + handler from config.

    Alert rules declared under ``monitor.alert_rules`` notify the dispatcher;
    rules with ``recover: true`` also run *orchestrator* recovery. When an
    orchestrator is given its recovery attempts are dispatched as alerts.
    """
    alerts = settings.alerts
    channels: list[NotificationChannel] = []

    if alerts.log_channel:
        channels.append(LogChannel())

    if alerts.webhook.enabled:
        channels.append(WebhookChannel(alerts.webhook))

    if alerts.discord.enabled:
        channels.append(DiscordChannel(alerts.discord))

    dispatcher = AlertDispatcher(
        channels=channels,
        throttle_secs=alerts.throttle_secs,
    )
    monitor = ErrorMonitor(settings.monitor, clock=clock)

    for rule_cfg in settings.monitor.alert_rules:
        monitor.add_alert_rule(
            AlertRule(
                error_type=rule_cfg.error_type,
                threshold=rule_cfg.threshold,
                time_window_ms=rule_cfg.time_window_ms,
                action=_rule_action(rule_cfg, dispatcher, orchestrator),
                name=rule_cfg.name,
            )
        )

    if orchestrator is not None:
        orchestrator.on_attempt(dispatcher.on_recovery_attempt)

    handler = ErrorHandler(monitor, dispatcher)
    return MonitorStack(monitor=monitor, dispatcher=dispatcher, handler=handler)


def _rule_action(
    rule_cfg: AlertRuleConfig,
    dispatcher: AlertDispatcher,
    orchestrator: RecoveryOrchestrator | None,
) -> AlertAction:
    if not rule_cfg.recover or orchestrator is None:
        return dispatcher.on_alert_metric

    recover = orchestrator.as_alert_action()

    async def _notify_and_recover(metric: ErrorMetric) -> None:
        await dispatcher.on_alert_metric(metric)
        await recover(metric)

    return _notify_and_recover
