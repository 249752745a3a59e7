"""Recovery subsystem — health checks and dependency-ordered remediation."""

from src.recovery.orchestrator import RecoveryAttemptCallback, RecoveryOrchestrator
from src.recovery.types import (
    CheckResult,
    HealthCheck,
    HealthReport,
    OverallHealth,
    RecoveryAction,
    RecoveryAttempt,
)

__all__ = [
    "CheckResult",
    "HealthCheck",
    "HealthReport",
    "OverallHealth",
    "RecoveryAction",
    "RecoveryAttempt",
    "RecoveryAttemptCallback",
    "RecoveryOrchestrator",
]
