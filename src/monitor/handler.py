"""ErrorHandler — single entry point that logs, records and forwards errors."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import structlog

from src.errors import AppError, ErrorSeverity, from_exception
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.error_monitor import ErrorMonitor

logger = structlog.stdlib.get_logger()

P = ParamSpec("P")
T = TypeVar("T")

ErrorHook = Callable[[AppError], Awaitable[None] | None]

_LOG_METHODS: dict[ErrorSeverity, str] = {
    ErrorSeverity.LOW: "info",
    ErrorSeverity.MEDIUM: "warning",
    ErrorSeverity.HIGH: "error",
    ErrorSeverity.CRITICAL: "error",
}


class ErrorHandler:
    """Normalises any exception and fans it out to log, monitor and alerts.

    Usage::

        handler = ErrorHandler(monitor, dispatcher)
        client = ResilientClient(config, on_error=handler.handle)
        fetch = monitored(fetch_orders, handler)
    """

    def __init__(
        self,
        monitor: ErrorMonitor,
        dispatcher: AlertDispatcher | None = None,
        on_error: ErrorHook | None = None,
    ) -> None:
        self._monitor = monitor
        self._dispatcher = dispatcher
        self._on_error = on_error
        self._handled = 0

    @property
    def monitor(self) -> ErrorMonitor:
        return self._monitor

    @property
    def handled(self) -> int:
        return self._handled

    async def handle(self, err: BaseException) -> AppError:
        """Log, record and forward *err*. Never raises; returns the normalised error."""
        app_err = from_exception(err)
        self._handled += 1

        log = getattr(logger, _LOG_METHODS[app_err.severity])
        log("app_error", error=app_err)

        await self._monitor.record_error(app_err)

        if self._dispatcher is not None:
            try:
                await self._dispatcher.on_app_error(app_err)
            except Exception:
                logger.exception("error_dispatch_failed", code=app_err.code)

        if self._on_error is not None:
            try:
                result = self._on_error(app_err)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("error_hook_failed", code=app_err.code)

        return app_err


def monitored(
    operation: Callable[P, Awaitable[T]],
    handler: ErrorHandler,
) -> Callable[P, Awaitable[T]]:
    """Wrap an async callable so every failure is reported to *handler* and re-raised."""

    @functools.wraps(operation)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await operation(*args, **kwargs)
        except Exception as exc:
            await handler.handle(exc)
            raise

    return wrapper
