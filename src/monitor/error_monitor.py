"""ErrorMonitor — time-windowed error metrics, alert rules and trend analysis.

Every recorded error lands in a bounded, timestamp-ordered ring keyed by its
error code. Errors may be recorded out of order (``err.timestamp`` is set
when the error is built), so occurrences are inserted by timestamp and the
oldest is dropped once a ring holds ``max_samples_per_type``. Rings are
pruned lazily of occurrences older than the retention window on each
``record_error`` call.
"""

from __future__ import annotations

import asyncio
import bisect

import structlog

from src.core.clock import Clock, default_clock
from src.core.config import MonitorConfig
from src.errors import from_exception
from src.monitor.types import (
    AlertRule,
    ErrorMetric,
    Occurrence,
    Trend,
    TrendAnalysis,
)

logger = structlog.stdlib.get_logger()


class ErrorMonitor:
    """Aggregates errors per type and fires alert rules.

    Usage::

        monitor = ErrorMonitor(config)
        monitor.add_alert_rule(AlertRule(
            error_type="NETWORK_ERROR", threshold=3, time_window_ms=60_000,
            action=dispatcher.on_alert_metric,
        ))
        await monitor.record_error(err)
        monitor.get_metrics("NETWORK_ERROR")
    """

    def __init__(self, config: MonitorConfig | None = None, clock: Clock | None = None) -> None:
        self._config = config or MonitorConfig()
        self._clock = clock or default_clock()
        self._rings: dict[str, list[Occurrence]] = {}
        self._rules: list[AlertRule] = []
        self._last_fired: dict[tuple[str, int], float] = {}
        self._total_recorded = 0

    # ── Properties ────────────────────────────────────────────────

    @property
    def total_recorded(self) -> int:
        """Errors recorded since construction (not pruned)."""
        return self._total_recorded

    @property
    def retention_secs(self) -> float:
        return self._config.retention_ms / 1000.0

    @property
    def error_types(self) -> list[str]:
        return [t for t, ring in self._rings.items() if ring]

    @property
    def rules(self) -> list[AlertRule]:
        return list(self._rules)

    # ── Recording ─────────────────────────────────────────────────

    async def record_error(self, err: BaseException) -> ErrorMetric | None:
        """Record an error, update its metric and evaluate matching alert rules.

        Never raises: a failure inside recording or inside an alert action is
        logged and swallowed. Returns the updated metric, or None when the
        error fell outside the retention window.
        """
        try:
            app_err = from_exception(err)
            error_type = app_err.code
            now = self._clock.now()

            ring = self._rings.setdefault(error_type, [])
            occurrence = Occurrence(error_type, app_err.timestamp, app_err.severity)
            bisect.insort(ring, occurrence, key=_by_timestamp)
            if len(ring) > self._config.max_samples_per_type:
                del ring[0]
            self._total_recorded += 1

            self._prune(now)
            metric = self._build_metric(error_type)
        except Exception:
            logger.exception("record_error_failed")
            return None

        if metric is None:
            return None

        await self._evaluate_rules(error_type, metric, now)
        return metric

    def add_alert_rule(self, rule: AlertRule) -> None:
        """Register a rule; one with the same (error_type, time_window) is replaced."""
        for i, existing in enumerate(self._rules):
            if existing.key == rule.key:
                self._rules[i] = rule
                return
        self._rules.append(rule)

    def remove_alert_rule(self, error_type: str, time_window_ms: int) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.key != (error_type, time_window_ms)]
        self._last_fired.pop((error_type, time_window_ms), None)
        return len(self._rules) != before

    def reset(self) -> None:
        """Forget all recorded occurrences and alert debounce state."""
        self._rings.clear()
        self._last_fired.clear()
        self._total_recorded = 0

    # ── Queries ───────────────────────────────────────────────────

    def get_metrics(self, error_type: str | None = None) -> list[ErrorMetric]:
        """Metrics for one error type, or for every type seen."""
        types = [error_type] if error_type is not None else list(self._rings)
        metrics: list[ErrorMetric] = []
        for t in types:
            metric = self._build_metric(t)
            if metric is not None:
                metrics.append(metric)
        return metrics

    def occurrences(
        self,
        error_type: str | None = None,
        since: float | None = None,
        until: float | None = None,
    ) -> list[Occurrence]:
        """Raw occurrences (oldest first), optionally filtered by type and time."""
        rings = (
            [self._rings.get(error_type, [])]
            if error_type is not None
            else list(self._rings.values())
        )
        result = [
            occ
            for ring in rings
            for occ in ring
            if (since is None or occ.timestamp >= since)
            and (until is None or occ.timestamp <= until)
        ]
        result.sort(key=lambda o: o.timestamp)
        return result

    def count_within(self, error_type: str, window_ms: int) -> int:
        """Occurrences of *error_type* in the window ending now."""
        ring = self._rings.get(error_type)
        if not ring:
            return 0
        cutoff = self._clock.now() - window_ms / 1000.0
        return _count_since(ring, cutoff)

    def analyze_trends(
        self, error_type: str, window_ms: int, end: float | None = None
    ) -> TrendAnalysis:
        """Compare the error rate in the two halves of the window ending at *end*
        (default now).

        The trend is ``degrading`` when the second-half rate exceeds the
        first-half rate by more than the noise threshold, ``improving`` when
        it falls by more than that, else ``stable``. With fewer than
        ``trend_min_samples`` occurrences in the window the trend is stable.
        """
        now = self._clock.now() if end is None else end
        window = window_ms / 1000.0
        start = now - window
        mid = now - window / 2.0

        ring = self._rings.get(error_type, [])
        stamps = [o.timestamp for o in ring if start < o.timestamp <= now]
        first = sum(1 for ts in stamps if ts < mid)
        second = len(stamps) - first

        if len(stamps) < self._config.trend_min_samples:
            return TrendAnalysis(
                error_type=error_type,
                trend=Trend.STABLE,
                change_rate=0.0,
                prediction=float(second),
                first_half_count=first,
                second_half_count=second,
            )

        # Equal-length halves, so comparing counts compares rates.
        if first == 0:
            change = 1.0 if second > 0 else 0.0
        else:
            change = (second - first) / first

        noise = self._config.trend_noise_pct / 100.0
        if change > noise:
            trend = Trend.DEGRADING
        elif change < -noise:
            trend = Trend.IMPROVING
        else:
            trend = Trend.STABLE

        return TrendAnalysis(
            error_type=error_type,
            trend=trend,
            change_rate=round(change, 4),
            prediction=float(max(0, second + (second - first))),
            first_half_count=first,
            second_half_count=second,
        )

    # ── Internal ──────────────────────────────────────────────────

    def _prune(self, now: float) -> None:
        cutoff = now - self._config.retention_ms / 1000.0
        for error_type in list(self._rings):
            ring = self._rings[error_type]
            del ring[: bisect.bisect_left(ring, cutoff, key=_by_timestamp)]
            if not ring:
                del self._rings[error_type]

    def _build_metric(self, error_type: str) -> ErrorMetric | None:
        ring = self._rings.get(error_type)
        if not ring:
            return None
        count = len(ring)
        first = ring[0].timestamp
        last = ring[-1].timestamp
        severities: dict[str, int] = {}
        for occ in ring:
            severities[occ.severity.value] = severities.get(occ.severity.value, 0) + 1
        return ErrorMetric(
            error_type=error_type,
            count=count,
            first_occurred=first,
            last_occurred=last,
            average_interval=(last - first) / max(count - 1, 1),
            severities=severities,
        )

    async def _evaluate_rules(self, error_type: str, metric: ErrorMetric, now: float) -> None:
        ring = self._rings.get(error_type)
        if not ring:
            return
        for rule in [r for r in self._rules if r.error_type == error_type]:
            window = rule.time_window_ms / 1000.0
            last_fired = self._last_fired.get(rule.key)
            # Debounce: at most one firing per window.
            if last_fired is not None and now - last_fired < window:
                continue
            if _count_since(ring, now - window) < rule.threshold:
                continue

            self._last_fired[rule.key] = now
            logger.warning(
                "alert_rule_fired",
                rule=rule.label,
                error_type=error_type,
                count=metric.count,
                threshold=rule.threshold,
            )
            try:
                result = rule.action(metric)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("alert_action_failed", rule=rule.label, error_type=error_type)


def _by_timestamp(occ: Occurrence) -> float:
    return occ.timestamp


def _count_since(ring: list[Occurrence], cutoff: float) -> int:
    """Occurrences strictly after *cutoff* in a timestamp-ordered ring."""
    return len(ring) - bisect.bisect_right(ring, cutoff, key=_by_timestamp)
