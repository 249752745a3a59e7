"""Domain types for health checks and recovery actions."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, Field


@dataclass
class HealthCheck:
    """A boolean probe of one dependency.

    A check that raises or exceeds ``timeout_ms`` counts as failed. Checks
    with ``priority`` at or above the orchestrator's critical priority make
    the overall health ``unhealthy`` when they fail.
    """

    name: str
    check: Callable[[], Awaitable[bool]]
    priority: int = 1
    timeout_ms: int | None = None


@dataclass
class RecoveryAction:
    """A reversible remediation step.

    ``dependencies`` names actions that must run first. Names that do not
    refer to a registered action (e.g. a health check name) only inform
    recommendations and are ignored for ordering.
    """

    name: str
    execute: Callable[[], Awaitable[bool]]
    rollback: Callable[[], Awaitable[None]] | None = None
    dependencies: list[str] = field(default_factory=list)


class OverallHealth(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckResult(BaseModel):
    name: str
    passed: bool
    priority: int = 1
    error: str = ""


class HealthReport(BaseModel):
    """Outcome of ``RecoveryOrchestrator.perform_health_check``."""

    overall_health: OverallHealth
    failed_checks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    results: list[CheckResult] = Field(default_factory=list)
    checked_at: float = Field(default_factory=time.time)


class RecoveryAttempt(BaseModel):
    """History record of one ``execute_recovery`` run."""

    reason: str
    timestamp: float
    actions: list[str] = Field(default_factory=list)
    success: bool
    duration_secs: float = 0.0
    failed_action: str | None = None
    rolled_back: list[str] = Field(default_factory=list)
