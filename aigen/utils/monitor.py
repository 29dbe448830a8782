"""Request-scoped monitoring context shared with service logs."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True, slots=True)
class MonitorContext:
    user_id: Optional[str] = None
    app_id: Optional[str] = None


_current: ContextVar[Optional[MonitorContext]] = ContextVar("monitor_context", default=None)


def current_monitor_context() -> MonitorContext:
    return _current.get() or MonitorContext()


@contextmanager
def monitor_context(*, user_id: Optional[str] = None, app_id: Optional[str] = None) -> Iterator[MonitorContext]:
    """Bind a monitor context for the duration of the block."""

    context = MonitorContext(user_id=user_id, app_id=app_id)
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)
