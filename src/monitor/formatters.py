"""Pure functions that convert errors, alerts and recovery events into AlertMessage objects."""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.errors import AppError
from src.monitor.types import AlertMessage, ErrorMetric, Severity

if TYPE_CHECKING:
    from src.recovery.types import HealthReport, RecoveryAttempt

# ── Severity mappings ───────────────────────────────────────────

_HEALTH_SEVERITY: dict[str, Severity] = {
    "healthy": Severity.DEBUG,
    "degraded": Severity.WARNING,
    "unhealthy": Severity.CRITICAL,
}


# ── Formatters ──────────────────────────────────────────────────


def format_app_error(err: AppError) -> AlertMessage:
    """Convert an AppError to an AlertMessage."""
    fields: dict[str, str] = {
        "code": err.code,
        "severity": err.severity.value,
        "status_code": str(err.status_code),
    }
    for key, value in err.details.model_dump(exclude_none=True).items():
        fields[key] = str(value)
    for key, value in err.context.items():
        fields.setdefault(f"ctx.{key}", str(value))

    return AlertMessage(
        severity=Severity.from_error_severity(err.severity),
        title=err.code,
        body=err.message,
        fields=fields,
        source_event_type=f"APP_ERROR:{err.code}",
        timestamp=err.timestamp,
        raw=err.to_dict(),
    )


def format_alert_metric(metric: ErrorMetric) -> AlertMessage:
    """Convert the metric of a fired alert rule to an AlertMessage."""
    fields: dict[str, str] = {
        "count": str(metric.count),
        "first_occurred": f"{metric.first_occurred:.3f}",
        "last_occurred": f"{metric.last_occurred:.3f}",
        "average_interval": f"{metric.average_interval:.3f}s",
    }
    for severity, count in sorted(metric.severities.items()):
        fields[f"severity.{severity}"] = str(count)

    severity = Severity.CRITICAL if metric.severities.get("critical") else Severity.WARNING
    return AlertMessage(
        severity=severity,
        title=f"ERROR_THRESHOLD: {metric.error_type}",
        body=f"{metric.count} {metric.error_type} errors in the retention window",
        fields=fields,
        source_event_type=f"ALERT_RULE:{metric.error_type}",
        timestamp=metric.last_occurred,
        raw=metric.model_dump(mode="json"),
    )


def format_recovery_attempt(attempt: RecoveryAttempt) -> AlertMessage:
    """Convert a finished recovery run to an AlertMessage."""
    fields: dict[str, str] = {
        "reason": attempt.reason,
        "actions": ", ".join(attempt.actions) or "-",
        "duration": f"{attempt.duration_secs:.3f}s",
    }
    if attempt.failed_action:
        fields["failed_action"] = attempt.failed_action
    if attempt.rolled_back:
        fields["rolled_back"] = ", ".join(attempt.rolled_back)

    if attempt.success:
        severity = Severity.INFO
        title = "RECOVERY_SUCCEEDED"
        body = f"Recovery for {attempt.reason} completed"
    else:
        severity = Severity.CRITICAL
        title = "RECOVERY_FAILED"
        body = f"Recovery for {attempt.reason} failed at {attempt.failed_action}"

    return AlertMessage(
        severity=severity,
        title=title,
        body=body,
        fields=fields,
        source_event_type=title,
        timestamp=attempt.timestamp,
        raw=attempt.model_dump(mode="json"),
    )


def format_health_report(report: HealthReport) -> AlertMessage:
    """Convert a HealthReport to an AlertMessage."""
    overall = str(report.overall_health)
    fields: dict[str, str] = {"overall_health": overall}
    if report.failed_checks:
        fields["failed_checks"] = ", ".join(report.failed_checks)
    if report.recommendations:
        fields["recommendations"] = ", ".join(report.recommendations)

    return AlertMessage(
        severity=_HEALTH_SEVERITY.get(overall, Severity.WARNING),
        title=f"HEALTH_{overall.upper()}",
        body=f"{len(report.failed_checks)} of {len(report.results)} health checks failed",
        fields=fields,
        source_event_type="HEALTH_CHECK",
        timestamp=report.checked_at,
        raw=report.model_dump(mode="json"),
    )
