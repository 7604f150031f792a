# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.observability.events",
#   "purpose": "Throttle telemetry event envelope and sink registry.",
#   "sections": [
#     {
#       "id": "throttleevent",
#       "name": "ThrottleEvent",
#       "anchor": "class-throttleevent",
#       "kind": "class"
#     },
#     {
#       "id": "eventsink",
#       "name": "EventSink",
#       "anchor": "class-eventsink",
#       "kind": "class"
#     },
#     {
#       "id": "run-scope",
#       "name": "run_scope",
#       "anchor": "function-run-scope",
#       "kind": "function"
#     },
#     {
#       "id": "registered",
#       "name": "registered",
#       "anchor": "function-registered",
#       "kind": "function"
#     },
#     {
#       "id": "emit-event",
#       "name": "emit_event",
#       "anchor": "function-emit-event",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Throttle telemetry events and the sink registry.

Every event shares one envelope:
  - ts: UTC ISO 8601 timestamp
  - type: ``throttle.*`` event type (schedule, drop, prune, emit, lifecycle, config)
  - level: DEBUG|INFO|WARN|ERROR
  - run_id: correlates the events of one run (see :func:`run_scope`)
  - throttle: normalised operator name
  - payload: event-specific fields

Events go to whichever sinks are registered; with none registered, emitting
only builds the envelope.
"""

from __future__ import annotations

import contextvars
import json
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

_run_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "throttle_run_id", default=None
)


@dataclass(frozen=True)
class ThrottleEvent:
    """One telemetry record."""

    type: str
    level: str
    throttle: str
    run_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    ts: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "type": self.type,
            "level": self.level,
            "run_id": self.run_id,
            "throttle": self.throttle,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class EventSink(Protocol):
    """Anything that accepts events."""

    def emit(self, event: ThrottleEvent) -> None:
        ...


# ============================================================================
# Run correlation
# ============================================================================


@lru_cache(maxsize=1)
def _process_run_id() -> str:
    return str(uuid.uuid4())


def current_run_id() -> str:
    """Run id of the innermost :func:`run_scope`, else one id per process."""
    return _run_id_var.get() or _process_run_id()


@contextmanager
def run_scope(run_id: Optional[str] = None) -> Iterator[str]:
    """Tag every event emitted inside the block with one run id.

    Example:
        >>> with run_scope() as run_id:
        ...     report = simulate(arrivals, config)
    """
    token = _run_id_var.set(run_id or str(uuid.uuid4()))
    try:
        yield _run_id_var.get()
    finally:
        _run_id_var.reset(token)


# ============================================================================
# Sinks
# ============================================================================

_sinks: List[EventSink] = []

S = TypeVar("S", bound=EventSink)


def register_sink(sink: EventSink) -> None:
    if sink not in _sinks:
        _sinks.append(sink)


def unregister_sink(sink: EventSink) -> None:
    if sink in _sinks:
        _sinks.remove(sink)


def clear_sinks() -> None:
    _sinks.clear()


@contextmanager
def registered(sink: S) -> Iterator[S]:
    """Register ``sink`` for the duration of the block."""
    register_sink(sink)
    try:
        yield sink
    finally:
        unregister_sink(sink)


def emit_event(
    type: str,
    *,
    level: str = "INFO",
    throttle: str = "default",
    payload: Optional[Dict[str, Any]] = None,
) -> ThrottleEvent:
    """Build an event and hand it to every registered sink.

    A failing sink is logged and skipped; the others still receive the event.

    Raises:
        ValueError: If type is empty or level is unknown
    """
    if not type:
        raise ValueError("Event type is required")
    if level not in LEVELS:
        raise ValueError(f"Invalid level: {level!r}; must be one of {'|'.join(LEVELS)}")

    event = ThrottleEvent(
        type=type,
        level=level,
        throttle=throttle,
        run_id=current_run_id(),
        payload=dict(payload or {}),
    )
    for sink in list(_sinks):
        try:
            sink.emit(event)
        except Exception:
            logger.error("Event sink %s failed", sink.__class__.__name__, exc_info=True)
    return event


__all__ = [
    "LEVELS",
    "ThrottleEvent",
    "EventSink",
    "current_run_id",
    "run_scope",
    "register_sink",
    "unregister_sink",
    "clear_sinks",
    "registered",
    "emit_event",
]
