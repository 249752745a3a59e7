"""Domain types for the monitoring / alerting subsystem."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field

from src.errors import ErrorSeverity


class Severity(IntEnum):
    """Alert severity — ordered so comparisons work naturally."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    CRITICAL = 3

    @classmethod
    def from_error_severity(cls, severity: ErrorSeverity) -> Severity:
        return _FROM_ERROR_SEVERITY[severity]


_FROM_ERROR_SEVERITY: dict[ErrorSeverity, Severity] = {
    ErrorSeverity.LOW: Severity.DEBUG,
    ErrorSeverity.MEDIUM: Severity.INFO,
    ErrorSeverity.HIGH: Severity.WARNING,
    ErrorSeverity.CRITICAL: Severity.CRITICAL,
}


class AlertMessage(BaseModel):
    """Normalised alert ready for dispatch to channels."""

    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    source_event_type: str = ""
    timestamp: float = Field(default_factory=time.time)
    raw: dict[str, Any] = Field(default_factory=dict)


class Occurrence(NamedTuple):
    """One recorded error: when it happened and how severe it was."""

    error_type: str
    timestamp: float
    severity: ErrorSeverity


class ErrorMetric(BaseModel):
    """Aggregate view of one error type over the retention window.

    ``average_interval`` is in seconds:
    ``(last_occurred - first_occurred) / max(count - 1, 1)``.
    """

    error_type: str
    count: int
    first_occurred: float
    last_occurred: float
    average_interval: float
    severities: dict[str, int] = Field(default_factory=dict)


AlertAction = Callable[[ErrorMetric], Awaitable[None] | None]


@dataclass
class AlertRule:
    """Fire *action* when *threshold* errors of *error_type* land in the window."""

    error_type: str
    threshold: int
    time_window_ms: int
    action: AlertAction
    name: str = ""

    @property
    def key(self) -> tuple[str, int]:
        return (self.error_type, self.time_window_ms)

    @property
    def label(self) -> str:
        return self.name or f"{self.error_type}>={self.threshold}/{self.time_window_ms}ms"


class Trend(StrEnum):
    """Direction of an error rate over a window."""

    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class TrendAnalysis(BaseModel):
    """Result of ``ErrorMonitor.analyze_trends``.

    ``change_rate`` is the fractional change of the second-half rate over the
    first-half rate; ``prediction`` is the extrapolated count for the next
    half window.
    """

    error_type: str
    trend: Trend
    change_rate: float
    prediction: float
    first_half_count: int = 0
    second_half_count: int = 0
