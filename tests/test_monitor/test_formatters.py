"""Tests for formatters — errors, alert metrics and recovery events to AlertMessage."""

from __future__ import annotations

from src.errors import api_error, database_error, network_error, validation_error
from src.monitor.formatters import (
    format_alert_metric,
    format_app_error,
    format_health_report,
    format_recovery_attempt,
)
from src.monitor.types import ErrorMetric, Severity
from src.recovery.types import CheckResult, HealthReport, OverallHealth, RecoveryAttempt


class TestFormatAppError:
    def test_severity_mapping(self) -> None:
        assert format_app_error(validation_error("x", field="f")).severity == Severity.DEBUG
        assert format_app_error(api_error("x", status_code=409, endpoint="/")).severity == (
            Severity.INFO
        )
        assert format_app_error(network_error("x")).severity == Severity.WARNING
        assert format_app_error(
            database_error("x", "connect", "main", can_retry=False)
        ).severity == Severity.CRITICAL

    def test_fields_include_details_and_context(self) -> None:
        err = api_error("nope", status_code=404, endpoint="/users/1", context={"user": "u1"})
        msg = format_app_error(err)
        assert msg.title == "API_ERROR"
        assert msg.body == "nope"
        assert msg.fields["status_code"] == "404"
        assert msg.fields["endpoint"] == "/users/1"
        assert msg.fields["ctx.user"] == "u1"
        assert msg.source_event_type == "APP_ERROR:API_ERROR"

    def test_timestamp_and_raw(self) -> None:
        err = network_error("x", timestamp=1234.0)
        msg = format_app_error(err)
        assert msg.timestamp == 1234.0
        assert msg.raw["code"] == "NETWORK_ERROR"


class TestFormatAlertMetric:
    def _metric(self, **kw: object) -> ErrorMetric:
        defaults: dict[str, object] = {
            "error_type": "DB_ERROR",
            "count": 12,
            "first_occurred": 100.0,
            "last_occurred": 160.0,
            "average_interval": 5.4545,
            "severities": {"high": 12},
        }
        defaults.update(kw)
        return ErrorMetric(**defaults)  # type: ignore[arg-type]

    def test_basic(self) -> None:
        msg = format_alert_metric(self._metric())
        assert msg.severity == Severity.WARNING
        assert msg.title == "ERROR_THRESHOLD: DB_ERROR"
        assert msg.fields["count"] == "12"
        assert msg.fields["severity.high"] == "12"
        assert msg.timestamp == 160.0

    def test_critical_occurrences_escalate(self) -> None:
        msg = format_alert_metric(self._metric(severities={"high": 10, "critical": 2}))
        assert msg.severity == Severity.CRITICAL


class TestFormatRecovery:
    def test_success(self) -> None:
        attempt = RecoveryAttempt(
            reason="manual", timestamp=5.0, actions=["a", "b"], success=True, duration_secs=0.25,
        )
        msg = format_recovery_attempt(attempt)
        assert msg.severity == Severity.INFO
        assert msg.title == "RECOVERY_SUCCEEDED"
        assert msg.fields["actions"] == "a, b"
        assert "failed_action" not in msg.fields

    def test_failure(self) -> None:
        attempt = RecoveryAttempt(
            reason="alert:DB_ERROR",
            timestamp=5.0,
            actions=["a"],
            success=False,
            failed_action="b",
            rolled_back=["a"],
        )
        msg = format_recovery_attempt(attempt)
        assert msg.severity == Severity.CRITICAL
        assert msg.title == "RECOVERY_FAILED"
        assert msg.fields["failed_action"] == "b"
        assert msg.fields["rolled_back"] == "a"


class TestFormatHealthReport:
    def test_unhealthy(self) -> None:
        report = HealthReport(
            overall_health=OverallHealth.UNHEALTHY,
            failed_checks=["database"],
            recommendations=["reconnect_database"],
            results=[
                CheckResult(name="database", passed=False, priority=9),
                CheckResult(name="cache", passed=True),
            ],
            checked_at=42.0,
        )
        msg = format_health_report(report)
        assert msg.severity == Severity.CRITICAL
        assert msg.title == "HEALTH_UNHEALTHY"
        assert msg.body == "1 of 2 health checks failed"
        assert msg.fields["recommendations"] == "reconnect_database"

    def test_healthy_is_debug(self) -> None:
        msg = format_health_report(HealthReport(overall_health=OverallHealth.HEALTHY))
        assert msg.severity == Severity.DEBUG
