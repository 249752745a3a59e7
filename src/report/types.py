"""Report configuration and report data model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from src.monitor.types import TrendAnalysis


class ReportFormat(StrEnum):
    JSON = "json"
    HTML = "html"
    CSV = "csv"


class ReportConfig(BaseModel):
    """What to include in a report and over which time range (epoch seconds)."""

    time_from: float
    time_to: float
    include_metrics: bool = True
    include_trends: bool = True
    include_recommendations: bool = True
    format: ReportFormat = ReportFormat.JSON
    top_n: int = 10

    @model_validator(mode="after")
    def _check_range(self) -> ReportConfig:
        if self.time_to < self.time_from:
            raise ValueError("time_to must not be before time_from")
        return self

    @classmethod
    def lookback(
        cls,
        seconds: float,
        now: float,
        format: ReportFormat | str = ReportFormat.JSON,
    ) -> ReportConfig:
        return cls(time_from=now - seconds, time_to=now, format=ReportFormat(format))


class FrequentError(BaseModel):
    type: str
    count: int
    percentage: float


class ReportMetadata(BaseModel):
    generated_at: float
    time_from: float
    time_to: float
    total_errors: int
    unique_error_types: int


class ReportSummary(BaseModel):
    most_frequent_errors: list[FrequentError] = Field(default_factory=list)
    # "YYYY-MM-DDTHH" (UTC) → count
    errors_by_hour: dict[str, int] = Field(default_factory=dict)
    severity_distribution: dict[str, int] = Field(default_factory=dict)


class RecoverySummary(BaseModel):
    attempts: int = 0
    successes: int = 0
    failures: int = 0


class ErrorReport(BaseModel):
    metadata: ReportMetadata
    summary: ReportSummary
    trends: list[TrendAnalysis] = Field(default_factory=list)
    recovery: RecoverySummary | None = None
    recommendations: list[str] = Field(default_factory=list)
