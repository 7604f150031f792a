# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.observability.__init__",
#   "purpose": "Structured throttle telemetry: event envelope and sinks.",
#   "sections": []
# }
# === /NAVMAP ===

"""Structured throttle telemetry.

Events are built by :func:`emit_event` and fanned out to whichever sinks have
been registered. Nothing is registered by default.

Example:
    >>> from lossless_throttle.observability import JsonlEventWriter, registered
    >>> with JsonlEventWriter("throttle-events.jsonl") as writer, registered(writer):
    ...     await consume(throttle(source()))
"""

from lossless_throttle.observability.events import (
    LEVELS,
    EventSink,
    ThrottleEvent,
    clear_sinks,
    current_run_id,
    emit_event,
    register_sink,
    registered,
    run_scope,
    unregister_sink,
)
from lossless_throttle.observability.sinks import EventRecorder, JsonlEventWriter

__all__ = [
    "LEVELS",
    "ThrottleEvent",
    "EventSink",
    "emit_event",
    "current_run_id",
    "run_scope",
    "register_sink",
    "unregister_sink",
    "clear_sinks",
    "registered",
    "EventRecorder",
    "JsonlEventWriter",
]
