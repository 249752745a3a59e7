"""ErrorReportGenerator — summarise recorded errors as JSON, CSV or HTML."""

from __future__ import annotations

import csv
import datetime
import io
from collections import Counter
from html import escape as html_escape
from typing import TYPE_CHECKING

import structlog

from src.core.clock import Clock, default_clock
from src.monitor.error_monitor import ErrorMonitor
from src.monitor.types import Trend
from src.report.types import (
    ErrorReport,
    FrequentError,
    RecoverySummary,
    ReportConfig,
    ReportFormat,
    ReportMetadata,
    ReportSummary,
)

if TYPE_CHECKING:
    from src.recovery.orchestrator import RecoveryOrchestrator

logger = structlog.stdlib.get_logger()

NOISY_TOTAL_THRESHOLD = 1000
DOMINANT_TYPE_PCT = 50.0
CRITICAL_COUNT_THRESHOLD = 10

_SEVERITIES = ("low", "medium", "high", "critical")
_HOUR_SECS = 3600


class ErrorReportGenerator:
    """Builds ErrorReports from an ErrorMonitor (and optionally recovery history).

    Usage::

        generator = ErrorReportGenerator(monitor, orchestrator)
        config = ReportConfig.lookback(86400, now=time.time(), format="html")
        html = generator.generate(config)
    """

    def __init__(
        self,
        monitor: ErrorMonitor,
        orchestrator: RecoveryOrchestrator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._monitor = monitor
        self._orchestrator = orchestrator
        self._clock = clock or default_clock()

    def collect(self, config: ReportConfig) -> ErrorReport:
        """Aggregate occurrences recorded within ``[time_from, time_to]``.

        Occurrences older than the monitor's retention window are already gone;
        a range reaching past it is reported as-is with a warning.
        """
        horizon = self._clock.now() - self._monitor.retention_secs
        if config.time_from < horizon:
            logger.warning(
                "report_range_exceeds_retention",
                time_from=config.time_from,
                retained_from=horizon,
            )
        occurrences = self._monitor.occurrences(since=config.time_from, until=config.time_to)
        total = len(occurrences)
        by_type = Counter(o.error_type for o in occurrences)

        most_frequent = [
            FrequentError(
                type=error_type,
                count=count,
                percentage=round(count / total * 100, 2) if total else 0.0,
            )
            for error_type, count in sorted(by_type.items(), key=lambda kv: (-kv[1], kv[0]))
        ][: config.top_n]

        summary = ReportSummary()
        if config.include_metrics:
            severities = Counter(o.severity.value for o in occurrences)
            summary = ReportSummary(
                most_frequent_errors=most_frequent,
                errors_by_hour=_errors_by_hour(
                    [o.timestamp for o in occurrences], config.time_from, config.time_to
                ),
                severity_distribution={s: severities.get(s, 0) for s in _SEVERITIES},
            )

        trends = []
        if config.include_trends:
            window_ms = int((config.time_to - config.time_from) * 1000)
            if window_ms > 0:
                trends = [
                    self._monitor.analyze_trends(t, window_ms, end=config.time_to)
                    for t in sorted(by_type)
                ]

        recovery = None
        if self._orchestrator is not None:
            attempts = [
                a
                for a in self._orchestrator.get_recovery_history(limit=1_000_000)
                if config.time_from <= a.timestamp <= config.time_to
            ]
            successes = sum(1 for a in attempts if a.success)
            recovery = RecoverySummary(
                attempts=len(attempts),
                successes=successes,
                failures=len(attempts) - successes,
            )

        report = ErrorReport(
            metadata=ReportMetadata(
                generated_at=self._clock.now(),
                time_from=config.time_from,
                time_to=config.time_to,
                total_errors=total,
                unique_error_types=len(by_type),
            ),
            summary=summary,
            trends=trends,
            recovery=recovery,
        )
        if config.include_recommendations:
            critical = sum(1 for o in occurrences if o.severity.value == "critical")
            report.recommendations = build_recommendations(
                total, most_frequent, critical, trends
            )

        logger.info(
            "report_collected",
            total_errors=total,
            unique_error_types=len(by_type),
            recommendations=len(report.recommendations),
        )
        return report

    def generate(self, config: ReportConfig) -> str:
        """Collect and render in ``config.format``."""
        return render(self.collect(config), config.format)


def render(report: ErrorReport, format: ReportFormat | str = ReportFormat.JSON) -> str:
    fmt = ReportFormat(format)
    if fmt == ReportFormat.HTML:
        return render_html(report)
    if fmt == ReportFormat.CSV:
        return render_csv(report)
    return render_json(report)


def build_recommendations(
    total: int,
    most_frequent: list[FrequentError],
    critical_count: int,
    trends: list,
) -> list[str]:
    recommendations: list[str] = []
    if total > NOISY_TOTAL_THRESHOLD:
        recommendations.append(
            f"{total} errors recorded; review log levels and reduce error noise."
        )
    if most_frequent and most_frequent[0].percentage > DOMINANT_TYPE_PCT:
        top = most_frequent[0]
        recommendations.append(
            f"{top.type} accounts for {top.percentage}% of errors; prioritise fixing it."
        )
    if critical_count > CRITICAL_COUNT_THRESHOLD:
        recommendations.append(
            f"{critical_count} critical errors recorded; urgent response required."
        )
    for trend in trends:
        if trend.trend == Trend.DEGRADING:
            recommendations.append(
                f"{trend.error_type} is trending up ({trend.change_rate:+.0%}); investigate it."
            )
    return recommendations


def _errors_by_hour(timestamps: list[float], time_from: float, time_to: float) -> dict[str, int]:
    buckets: dict[str, int] = {}
    hour = int(time_from // _HOUR_SECS) * _HOUR_SECS
    while hour <= time_to:
        buckets[_hour_key(hour)] = 0
        hour += _HOUR_SECS
    for ts in timestamps:
        key = _hour_key(ts)
        buckets[key] = buckets.get(key, 0) + 1
    return buckets


def _hour_key(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.UTC).strftime("%Y-%m-%dT%H")


def _iso(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.UTC).isoformat(timespec="seconds")


# ── Renderers ───────────────────────────────────────────────────


def render_json(report: ErrorReport) -> str:
    return report.model_dump_json(indent=2)


def render_csv(report: ErrorReport) -> str:
    """Most-frequent errors as CSV, one row per error type."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["error_type", "count", "percentage"])
    for item in report.summary.most_frequent_errors:
        writer.writerow([item.type, item.count, item.percentage])
    return buf.getvalue()


def render_html(report: ErrorReport) -> str:
    meta = report.metadata
    rows = "".join(
        f"<tr><td>{html_escape(e.type)}</td><td>{e.count}</td><td>{e.percentage}%</td></tr>"
        for e in report.summary.most_frequent_errors
    )
    severities = "".join(
        f'<li class="sev-{html_escape(name)}">{html_escape(name.title())}: {count}</li>'
        for name, count in report.summary.severity_distribution.items()
    )
    trends = "".join(
        f"<tr><td>{html_escape(t.error_type)}</td><td>{t.trend.value}</td>"
        f"<td>{t.change_rate:+.0%}</td><td>{t.prediction:g}</td></tr>"
        for t in report.trends
    )

    sections = [
        f"""<div class="header">
<h1>Error Report</h1>
<p>Generated: {_iso(meta.generated_at)}</p>
<p>Period: {_iso(meta.time_from)} to {_iso(meta.time_to)}</p>
</div>""",
        f"""<div class="section">
<h2>Summary</h2>
<ul>
<li>Total errors: {meta.total_errors}</li>
<li>Unique error types: {meta.unique_error_types}</li>
</ul>
</div>""",
        f"""<div class="section">
<h2>Most Frequent Errors</h2>
<table>
<thead><tr><th>Error type</th><th>Count</th><th>Share</th></tr></thead>
<tbody>{rows}</tbody>
</table>
</div>""",
        f"""<div class="section">
<h2>Severity Distribution</h2>
<ul>{severities}</ul>
</div>""",
    ]
    if report.trends:
        sections.append(
            f"""<div class="section">
<h2>Trends</h2>
<table>
<thead><tr><th>Error type</th><th>Trend</th><th>Change</th><th>Prediction</th></tr></thead>
<tbody>{trends}</tbody>
</table>
</div>"""
        )
    if report.recovery is not None:
        sections.append(
            f"""<div class="section">
<h2>Recovery</h2>
<p>{report.recovery.successes} of {report.recovery.attempts} recovery attempts succeeded.</p>
</div>"""
        )
    if report.recommendations:
        items = "".join(f"<li>{html_escape(r)}</li>" for r in report.recommendations)
        sections.append(
            f"""<div class="section">
<h2>Recommendations</h2>
<ul>{items}</ul>
</div>"""
        )

    body = "\n".join(sections)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Error Report</title>
<style>
body {{ font-family: Arial, sans-serif; margin: 20px; line-height: 1.6; }}
.header {{ background: #f4f4f4; padding: 20px; border-radius: 5px; }}
.section {{ margin-bottom: 30px; }}
table {{ width: 100%; border-collapse: collapse; }}
th, td {{ border: 1px solid #ddd; padding: 8px; text-align: left; }}
.sev-critical, .sev-high {{ color: #d32f2f; }}
.sev-medium {{ color: #f57c00; }}
.sev-low {{ color: #388e3c; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""
