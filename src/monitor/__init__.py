"""Error monitoring, alerting, and decision logging subsystem."""

from src.monitor.channels import (
    DiscordChannel,
    LogChannel,
    NotificationChannel,
    WebhookChannel,
)
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.error_monitor import ErrorMonitor
from src.monitor.factory import MonitorStack, create_monitor_stack
from src.monitor.formatters import (
    format_alert_metric,
    format_app_error,
    format_health_report,
    format_recovery_attempt,
)
from src.monitor.handler import ErrorHandler, monitored
from src.monitor.types import (
    AlertAction,
    AlertMessage,
    AlertRule,
    ErrorMetric,
    Occurrence,
    Severity,
    Trend,
    TrendAnalysis,
)

__all__ = [
    "AlertAction",
    "AlertDispatcher",
    "AlertMessage",
    "AlertRule",
    "DiscordChannel",
    "ErrorHandler",
    "ErrorMetric",
    "ErrorMonitor",
    "LogChannel",
    "MonitorStack",
    "NotificationChannel",
    "Occurrence",
    "Severity",
    "Trend",
    "TrendAnalysis",
    "WebhookChannel",
    "create_monitor_stack",
    "format_alert_metric",
    "format_app_error",
    "format_health_report",
    "format_recovery_attempt",
    "monitored",
]
