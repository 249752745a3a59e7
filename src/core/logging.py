"""Structured logging setup using structlog.

AppErrors passed as ``error=`` are flattened into ``error``, ``error_code``,
``error_severity`` and ``error_context`` keys by :func:`expand_app_errors`.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from src.core.config import LoggingConfig, get_settings


def expand_app_errors(
    _logger: Any, _method: str, event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Replace an ``error=`` AppError with its code, severity and context.

    Any exception exposing ``to_dict()`` is expanded; other values are left
    untouched so plain ``error=str(exc)`` calls keep working.
    """
    err = event_dict.get("error")
    if isinstance(err, BaseException) and callable(getattr(err, "to_dict", None)):
        record = err.to_dict()
        event_dict["error"] = record.get("message", str(err))
        event_dict.setdefault("error_code", record.get("code"))
        event_dict.setdefault("error_severity", record.get("severity"))
        if record.get("context"):
            event_dict.setdefault("error_context", record["context"])
    return event_dict


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    config: LoggingConfig | None = None,
) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Explicit *level* / *fmt* win over *config*, which defaults to the
    ``logging`` section of the loaded settings.
    """
    config = config or get_settings().logging
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)

    if (fmt or config.format) == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            expand_app_errors,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    # ResilientClient logs its own retries; per-request transport logs are noise.
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
