"""Request-scoped wide event for canonical log lines.

Routes and services add context to one dict per request; RequestTimingMiddleware
(core/telemetry.py) creates it at request start and logs it once at the end.

Usage:
    from core.wide_event import set_wide_event_fields

    set_wide_event_fields(owner_id=owner_id, activity_type="journal_entry")
    set_wide_event_nested("streak", current=4, longest=9)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any]] = ContextVar("wide_event")


def init_wide_event() -> dict[str, Any]:
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Returns an empty dict outside a request."""
    try:
        return _wide_event.get()
    except LookupError:
        return {}


def set_wide_event_fields(**kwargs: Any) -> None:
    """No-op outside request context (CLI, tests without the fixture)."""
    event = _wide_event.get(None)
    if event is not None:
        event.update(kwargs)


def set_wide_event_nested(category: str, **kwargs: Any) -> None:
    """Set fields under a nested key, e.g. {"streak": {"current": 4}}."""
    event = _wide_event.get(None)
    if event is None:
        return
    event.setdefault(category, {}).update(kwargs)


def clear_wide_event() -> None:
    _wide_event.set({})
