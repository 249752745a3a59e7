"""Error reports — aggregation, rendering and scheduled delivery."""

from src.report.generator import (
    ErrorReportGenerator,
    build_recommendations,
    render,
    render_csv,
    render_html,
    render_json,
)
from src.report.scheduler import ReportScheduler
from src.report.types import (
    ErrorReport,
    FrequentError,
    RecoverySummary,
    ReportConfig,
    ReportFormat,
    ReportMetadata,
    ReportSummary,
)

__all__ = [
    "ErrorReport",
    "ErrorReportGenerator",
    "FrequentError",
    "RecoverySummary",
    "ReportConfig",
    "ReportFormat",
    "ReportMetadata",
    "ReportScheduler",
    "ReportSummary",
    "build_recommendations",
    "render",
    "render_csv",
    "render_html",
    "render_json",
]
