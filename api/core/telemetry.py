"""Telemetry: request timing, canonical log lines, and operation tracing.

OpenTelemetry is only imported when APPLICATIONINSIGHTS_CONNECTION_STRING is
set; otherwise every helper here is a cheap pass-through.
"""

import asyncio
import os
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any, ParamSpec, TypeVar, cast

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logger import clear_contextvars, get_logger
from core.wide_event import clear_wide_event, get_wide_event, init_wide_event

logger = get_logger(__name__)

TELEMETRY_ENABLED = bool(os.getenv("APPLICATIONINSIGHTS_CONNECTION_STRING"))

SERVICE_NAME = os.getenv("SERVICE_NAME", "learning-streaks-api")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "0.1.0")

SLOW_REQUEST_MS = 1000

if TELEMETRY_ENABLED:
    from opentelemetry import trace
    from opentelemetry.trace import Status, StatusCode

    tracer = trace.get_tracer(__name__)
else:
    trace = None
    tracer = None
    Status = None
    StatusCode = None

P = ParamSpec("P")
R = TypeVar("R")


class RequestTimingMiddleware:
    """Times each request and emits one wide event at the end of it.

    - Errors and slow requests are always logged
    - Streak writes (anything with an owner_id) are always logged
    - Fast successful reads without an owner are dropped
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        request_id = str(uuid.uuid4())

        wide_event = init_wide_event()
        wide_event["service_name"] = SERVICE_NAME
        wide_event["service_version"] = SERVICE_VERSION
        wide_event["request_id"] = request_id
        wide_event["http_method"] = method
        wide_event["http_path"] = path

        response_status: int | None = None

        def _finish(**fields: Any) -> None:
            duration_ms = (time.perf_counter() - start_time) * 1000
            route = scope.get("route")
            event = get_wide_event()
            event["http_route"] = getattr(route, "path", None) or path
            event["duration_ms"] = round(duration_ms, 2)
            event.update(fields)

            should_emit = (
                response_status is None
                or response_status >= 400
                or duration_ms > SLOW_REQUEST_MS
                or event.get("owner_id")
            )
            if should_emit:
                logger.info("request.completed", **event)

            clear_wide_event()
            clear_contextvars()

        async def send_wrapper(message: Message) -> None:
            nonlocal response_status

            if message.get("type") == "http.response.start":
                response_status = int(message.get("status", 0))
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                duration_ms = (time.perf_counter() - start_time) * 1000
                headers.append(
                    (b"x-request-duration-ms", f"{duration_ms:.2f}".encode())
                )
                headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers

            elif message.get("type") == "http.response.body" and not message.get(
                "more_body", False
            ):
                _finish(
                    http_status_code=response_status,
                    outcome=(
                        "success"
                        if response_status and response_status < 400
                        else "error"
                    ),
                )

            await send(message)

        try:
            if TELEMETRY_ENABLED and tracer:
                with tracer.start_as_current_span(
                    f"{method} {path}",
                    attributes={
                        "http.method": method,
                        "http.route": path,
                        "request.id": request_id,
                        "service.name": SERVICE_NAME,
                    },
                ):
                    await self.app(scope, receive, send_wrapper)
                    return

            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            _finish(outcome="exception", exception_type=type(exc).__name__)
            raise


@contextmanager
def _operation_span(operation_name: str) -> Iterator[None]:
    """Span around one operation; exceptions are recorded and re-raised."""
    if not TELEMETRY_ENABLED or tracer is None:
        yield
        return

    start_time = time.perf_counter()
    with tracer.start_as_current_span(
        operation_name, attributes={"operation.name": operation_name}
    ) as span:
        try:
            yield
        except Exception as e:
            span.set_attribute("operation.success", False)
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
        else:
            span.set_attribute("operation.success", True)
        finally:
            span.set_attribute(
                "operation.duration_ms", (time.perf_counter() - start_time) * 1000
            )


def track_operation(operation_name: str):
    """Decorator tracing a business operation (sync or async) as one span."""

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        if asyncio.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                with _operation_span(operation_name):
                    return await func(*args, **kwargs)

            return cast(Callable[P, R], async_wrapper)

        @wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with _operation_span(operation_name):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator


def add_custom_attribute(key: str, value: str | int | float | bool) -> None:
    """Add a custom attribute to the current span."""
    if not TELEMETRY_ENABLED or trace is None:
        return

    span = trace.get_current_span()
    if span:
        span.set_attribute(key, value)


def log_business_event(
    name: str, value: float, properties: dict[str, str] | None = None
) -> None:
    """Log a structured business event (e.g. a milestone reached).

    Emits a structured log line, not an OpenTelemetry metric.
    """
    if not TELEMETRY_ENABLED:
        return

    logger.info("business.event", event_name=name, value=value, **(properties or {}))
