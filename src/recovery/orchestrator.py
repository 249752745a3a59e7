"""RecoveryOrchestrator — health checks, dependency-ordered recovery, rollback."""

from __future__ import annotations

import asyncio
import re
from collections import deque
from collections.abc import Awaitable, Callable

import structlog

from src.core.clock import Clock, default_clock
from src.core.config import RecoveryConfig
from src.errors import dependency_cycle_error
from src.monitor.types import AlertAction, ErrorMetric
from src.recovery.types import (
    CheckResult,
    HealthCheck,
    HealthReport,
    OverallHealth,
    RecoveryAction,
    RecoveryAttempt,
)

logger = structlog.stdlib.get_logger()

RecoveryAttemptCallback = Callable[[RecoveryAttempt], Awaitable[None] | None]

_NAME_SPLIT = re.compile(r"[\s_\-.:/]+")
_GENERIC_TOKENS = frozenset({"check", "health", "action", "recovery", "probe"})


class RecoveryOrchestrator:
    """Runs health checks and executes recovery actions in dependency order.

    Usage::

        orch = RecoveryOrchestrator()
        orch.add_health_check(HealthCheck("database", check_db, priority=9))
        orch.add_recovery_action(RecoveryAction("reconnect_database", reconnect))
        orch.add_recovery_action(
            RecoveryAction("warm_cache", warm, rollback=drop, dependencies=["reconnect_database"])
        )
        report = await orch.perform_health_check()
        if report.overall_health != OverallHealth.HEALTHY:
            await orch.execute_recovery("health check failed")
    """

    def __init__(self, config: RecoveryConfig | None = None, clock: Clock | None = None) -> None:
        self._config = config or RecoveryConfig()
        self._clock = clock or default_clock()
        self._checks: dict[str, HealthCheck] = {}
        self._actions: dict[str, RecoveryAction] = {}
        self._history: deque[RecoveryAttempt] = deque(maxlen=self._config.max_history)
        self._lock = asyncio.Lock()
        self._callbacks: list[RecoveryAttemptCallback] = []

    # ── Properties ────────────────────────────────────────────────

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    @property
    def health_checks(self) -> list[str]:
        return list(self._checks)

    @property
    def recovery_actions(self) -> list[str]:
        return list(self._actions)

    def on_attempt(self, callback: RecoveryAttemptCallback) -> None:
        """Register a callback invoked with every finished RecoveryAttempt."""
        self._callbacks.append(callback)

    # ── Registration ──────────────────────────────────────────────

    def add_health_check(self, health_check: HealthCheck) -> None:
        """Register a check; an existing check with the same name is replaced."""
        self._checks[health_check.name] = health_check

    def add_recovery_action(self, action: RecoveryAction) -> None:
        """Register an action, rejecting it if it would close a dependency cycle.

        Raises:
            AppError: DEPENDENCY_CYCLE. The registry is left unchanged.
        """
        graph = {name: list(a.dependencies) for name, a in self._actions.items()}
        graph[action.name] = list(action.dependencies)
        cycle = _find_cycle(graph, action.name)
        if cycle is not None:
            raise dependency_cycle_error(action.name, cycle)
        self._actions[action.name] = action

    def execution_order(self) -> list[str]:
        """Registered action names, dependencies first (registration order breaks ties)."""
        resolved: list[str] = []
        visited: set[str] = set()

        def visit(name: str) -> None:
            if name in visited or name not in self._actions:
                return
            visited.add(name)
            for dep in self._actions[name].dependencies:
                visit(dep)
            resolved.append(name)

        for name in self._actions:
            visit(name)
        return resolved

    # ── Health ────────────────────────────────────────────────────

    async def perform_health_check(self) -> HealthReport:
        """Run every health check concurrently and summarise the results."""
        checks = list(self._checks.values())
        results: list[CheckResult] = list(
            await asyncio.gather(*(self._run_check(c) for c in checks))
        )

        failed = [r for r in results if not r.passed]
        if not failed:
            overall = OverallHealth.HEALTHY
        elif len(failed) == len(results) or any(
            r.priority >= self._config.critical_priority for r in failed
        ):
            overall = OverallHealth.UNHEALTHY
        else:
            overall = OverallHealth.DEGRADED

        recommendations: list[str] = []
        for result in failed:
            for action in self._actions.values():
                if action.name in recommendations:
                    continue
                if result.name in action.dependencies or _names_related(
                    result.name, action.name
                ):
                    recommendations.append(action.name)

        report = HealthReport(
            overall_health=overall,
            failed_checks=[r.name for r in failed],
            recommendations=recommendations,
            results=results,
            checked_at=self._clock.now(),
        )
        logger.info(
            "health_check_completed",
            overall_health=overall.value,
            failed_checks=report.failed_checks,
            recommendations=recommendations,
        )
        return report

    async def _run_check(self, health_check: HealthCheck) -> CheckResult:
        timeout_ms = health_check.timeout_ms or self._config.health_check_timeout_ms
        error = ""
        try:
            passed = bool(
                await asyncio.wait_for(health_check.check(), timeout=timeout_ms / 1000.0)
            )
        except TimeoutError:
            passed = False
            error = f"timed out after {timeout_ms}ms"
        except Exception as exc:
            passed = False
            error = str(exc) or type(exc).__name__

        if not passed:
            logger.warning("health_check_failed", check=health_check.name, error=error)
        return CheckResult(
            name=health_check.name,
            passed=passed,
            priority=health_check.priority,
            error=error,
        )

    # ── Recovery ──────────────────────────────────────────────────

    async def execute_recovery(self, reason: str) -> bool:
        """Run all recovery actions in dependency order.

        Stops at the first action that returns False or raises, rolls back
        every action that already succeeded (newest first) and returns False.
        Concurrent calls are serialised.
        """
        async with self._lock:
            started = self._clock.now()
            executed: list[RecoveryAction] = []
            failed_action: str | None = None

            logger.info("recovery_started", reason=reason, actions=len(self._actions))
            for name in self.execution_order():
                action = self._actions[name]
                try:
                    ok = bool(await action.execute())
                except Exception:
                    logger.exception("recovery_action_error", action=name, reason=reason)
                    ok = False

                if not ok:
                    failed_action = name
                    logger.error("recovery_action_failed", action=name, reason=reason)
                    break
                executed.append(action)

            rolled_back: list[str] = []
            if failed_action is not None:
                rolled_back = await self._rollback(executed)

            attempt = RecoveryAttempt(
                reason=reason,
                timestamp=started,
                actions=[a.name for a in executed],
                success=failed_action is None,
                duration_secs=max(0.0, self._clock.now() - started),
                failed_action=failed_action,
                rolled_back=rolled_back,
            )
            self._history.append(attempt)

        logger.info(
            "recovery_finished",
            reason=reason,
            success=attempt.success,
            actions=attempt.actions,
            failed_action=failed_action,
        )
        await self._emit(attempt)
        return attempt.success

    def get_recovery_history(self, limit: int = 10) -> list[RecoveryAttempt]:
        """The last *limit* attempts, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._history))[:limit]

    def as_alert_action(self) -> AlertAction:
        """An AlertRule action that triggers recovery for the alerting error type.

        Alerts raised while a recovery is already running (typically by errors
        the recovery actions themselves report) are logged and skipped; the
        run lock is not reentrant.
        """

        async def _recover(metric: ErrorMetric) -> None:
            reason = f"alert:{metric.error_type}"
            if self.in_progress:
                logger.info("recovery_skipped_in_progress", reason=reason)
                return
            await self.execute_recovery(reason)

        return _recover

    # ── Internal ──────────────────────────────────────────────────

    async def _rollback(self, executed: list[RecoveryAction]) -> list[str]:
        rolled_back: list[str] = []
        for action in reversed(executed):
            if action.rollback is None:
                continue
            try:
                await action.rollback()
                rolled_back.append(action.name)
            except Exception:
                logger.exception("recovery_rollback_failed", action=action.name)
        return rolled_back

    async def _emit(self, attempt: RecoveryAttempt) -> None:
        for cb in self._callbacks:
            try:
                result = cb(attempt)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("recovery_callback_error", reason=attempt.reason)


def _find_cycle(graph: dict[str, list[str]], start: str) -> list[str] | None:
    """Return a dependency cycle reachable from *start*, e.g. ["a", "b", "a"]."""
    path: list[str] = []
    on_path: set[str] = set()
    done: set[str] = set()

    def visit(node: str) -> list[str] | None:
        if node in on_path:
            return path[path.index(node):] + [node]
        if node in done or node not in graph:
            return None
        on_path.add(node)
        path.append(node)
        for dep in graph[node]:
            found = visit(dep)
            if found is not None:
                return found
        path.pop()
        on_path.discard(node)
        done.add(node)
        return None

    return visit(start)


def _names_related(check_name: str, action_name: str) -> bool:
    """Heuristic link between a health check and a recovery action by name."""
    check = check_name.lower()
    action = action_name.lower()
    if check in action or action in check:
        return True
    check_tokens = {t for t in _NAME_SPLIT.split(check) if t} - _GENERIC_TOKENS
    action_tokens = {t for t in _NAME_SPLIT.split(action) if t} - _GENERIC_TOKENS
    return bool(check_tokens & action_tokens)
