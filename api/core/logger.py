"""Structured logging for the streaks service (structlog over stdlib logging).

Environment:
    LOG_LEVEL   DEBUG/INFO/WARNING/... (default INFO)
    LOG_FORMAT  "json" or "console"; unset means json when telemetry is on

Event names are dotted and lower case (``streak.archived``,
``streak_record.corrupt``); everything else goes in key-value fields.

Usage:
    from core import get_logger
    logger = get_logger(__name__)
    logger.info("streak.activity.recorded", owner_id="abc", current_streak=3)
"""

import logging
import os
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars
from structlog.types import EventDict, Processor

_TELEMETRY_ENABLED = bool(os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING"))

# Libraries that log every statement or request at INFO
_NOISY_LOGGERS = ("uvicorn.access", "aiosqlite", "sqlalchemy.engine")

__all__ = [
    "bind_contextvars",
    "clear_contextvars",
    "configure_logging",
    "get_logger",
]


def _add_trace_ids(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Attach the current OpenTelemetry trace/span ids, when there is a span."""
    if not _TELEMETRY_ENABLED:
        return event_dict

    from opentelemetry import trace

    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _drop_color_message(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    # uvicorn duplicates every message with ANSI codes under this key
    event_dict.pop("color_message", None)
    return event_dict


def _use_json() -> bool:
    log_format = os.environ.get("LOG_FORMAT", "").lower()
    if log_format in ("json", "console"):
        return log_format == "json"
    return _TELEMETRY_ENABLED


def _level() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def _pre_chain() -> list[Processor]:
    """Processors shared by structlog loggers and stdlib (third-party) loggers."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _drop_color_message,
        _add_trace_ids,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging() -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Safe to call more than once (the app and the CLI both call it); the root
    logger's stream handlers are replaced each time.
    """
    pre_chain = _pre_chain()

    renderer: Processor
    if _use_json():
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    # Exporter handlers (e.g. OpenTelemetry's LoggingHandler) are not streams
    for existing in list(root.handlers):
        if isinstance(existing, logging.StreamHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(_level())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)
