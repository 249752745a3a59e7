#!/usr/bin/env python3
"""Resilience demo — wires client, breaker, monitor and recovery end to end.

Requests go to ``client.base_url`` from the config. With ``--simulate`` an
in-process transport answers instead, failing a share of requests so the
retry loop, circuit breaker, alert rules and recovery all get exercised.

Usage::

    # Simulated upstream, 40% failures
    python -m scripts.demo --simulate --failure-rate 0.4

    # Custom config file, console logs
    python -m scripts.demo --config config/settings.yaml --log-format console

    # Write an HTML report
    python -m scripts.demo --simulate --report-format html --report-out report.html
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from pathlib import Path

import httpx
import structlog

from src.core.clock import default_clock
from src.core.config import load_settings
from src.core.logging import setup_logging
from src.errors import AppError
from src.monitor.factory import create_monitor_stack
from src.monitor.types import AlertRule
from src.recovery.orchestrator import RecoveryOrchestrator
from src.recovery.types import HealthCheck, RecoveryAction
from src.report.generator import ErrorReportGenerator
from src.report.scheduler import ReportScheduler
from src.report.types import ReportConfig
from src.resilience.circuit_breaker import CircuitBreaker, CircuitState
from src.resilience.client import ResilientClient

logger = structlog.get_logger(__name__)


def _simulated_transport(failure_rate: float, seed: int | None) -> httpx.MockTransport:
    rng = random.Random(seed)

    def handler(request: httpx.Request) -> httpx.Response:
        roll = rng.random()
        if roll < failure_rate / 2:
            raise httpx.ConnectError("simulated connection reset", request=request)
        if roll < failure_rate:
            return httpx.Response(503, json={"error": "unavailable"})
        return httpx.Response(200, json={"path": request.url.path, "ok": True})

    return httpx.MockTransport(handler)


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    setup_logging(level=args.log_level, fmt=args.log_format, config=settings.logging)
    clock = default_clock()

    # ── Recovery ─────────────────────────────────────────────────
    orchestrator = RecoveryOrchestrator(settings.recovery, clock=clock)
    stack = create_monitor_stack(settings, orchestrator=orchestrator, clock=clock)

    breaker = CircuitBreaker(settings.circuit_breaker, name="upstream", clock=clock)
    transport = _simulated_transport(args.failure_rate, args.seed) if args.simulate else None
    client = ResilientClient(
        settings.client,
        breaker=breaker,
        on_error=stack.handler.handle,
        clock=clock,
        transport=transport,
    )

    async def upstream_reachable() -> bool:
        return breaker.state != CircuitState.OPEN

    async def reset_upstream_breaker() -> bool:
        breaker.reset()
        return True

    async def flush_cache() -> bool:
        client.clear_cache()
        return True

    orchestrator.add_health_check(HealthCheck("upstream", upstream_reachable, priority=9))
    orchestrator.add_recovery_action(
        RecoveryAction("reset_upstream_breaker", reset_upstream_breaker)
    )
    orchestrator.add_recovery_action(
        RecoveryAction("flush_cache", flush_cache, dependencies=["reset_upstream_breaker"])
    )

    if not settings.monitor.alert_rules:
        stack.monitor.add_alert_rule(
            AlertRule(
                error_type="CIRCUIT_OPEN_ERROR",
                threshold=3,
                time_window_ms=60_000,
                action=orchestrator.as_alert_action(),
                name="circuit_open_burst",
            )
        )

    generator = ErrorReportGenerator(stack.monitor, orchestrator, clock=clock)
    scheduler: ReportScheduler | None = None
    if settings.report.enabled:
        scheduler = ReportScheduler(
            generator,
            stack.dispatcher,
            interval_secs=settings.report.interval_secs,
            lookback_secs=settings.report.lookback_secs,
            format=settings.report.format,
            clock=clock,
        )
        await scheduler.start()

    logger.info(
        "demo_starting",
        base_url=settings.client.base_url,
        simulate=args.simulate,
        requests=args.requests,
    )

    # ── Traffic ──────────────────────────────────────────────────
    ok = failed = 0
    async with client:
        for i in range(args.requests):
            try:
                await client.request(f"/items/{i % 7}", cache=False)
                ok += 1
            except AppError:
                failed += 1

            if (i + 1) % 10 == 0:
                report = await orchestrator.perform_health_check()
                await stack.dispatcher.on_health_report(report)

    # ── Report ───────────────────────────────────────────────────
    if scheduler is not None:
        await scheduler.stop()
    config = ReportConfig.lookback(
        settings.report.lookback_secs, now=clock.now(), format=args.report_format
    )
    rendered = generator.generate(config)
    if args.report_out:
        Path(args.report_out).write_text(rendered)
        logger.info("report_written", path=args.report_out, format=args.report_format)
    else:
        print(rendered)

    stats = client.stats()
    logger.info(
        "demo_finished",
        succeeded=ok,
        failed=failed,
        retries=stats.retries,
        error_rate=stats.error_rate,
        breaker=breaker.get_status().state.value,
        recoveries=len(orchestrator.get_recovery_history()),
    )
    await stack.close()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Exercise the resilience stack against a real or simulated upstream.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument("--log-format", default=None, help="json or console")
    parser.add_argument("--requests", type=int, default=50, help="Requests to send")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Answer requests in-process instead of calling client.base_url",
    )
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=0.3,
        help="Share of simulated requests that fail (0-1)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for --simulate")
    parser.add_argument(
        "--report-format",
        choices=["json", "html", "csv"],
        default="json",
    )
    parser.add_argument("--report-out", default=None, help="Write the report to this file")
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
