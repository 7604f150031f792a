# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.observability.sinks",
#   "purpose": "Event sinks used by simulations and the CLI.",
#   "sections": [
#     {
#       "id": "eventrecorder",
#       "name": "EventRecorder",
#       "anchor": "class-eventrecorder",
#       "kind": "class"
#     },
#     {
#       "id": "jsonleventwriter",
#       "name": "JsonlEventWriter",
#       "anchor": "class-jsonleventwriter",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Event sinks used by simulations and the CLI.

- EventRecorder: keeps matching events in memory (``SimulationReport.events``)
- JsonlEventWriter: appends events to a JSONL file (``simulate --events``)
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from types import TracebackType
from typing import Dict, List, Optional, TextIO, Type, Union

from lossless_throttle.observability.events import ThrottleEvent

logger = logging.getLogger(__name__)


class EventRecorder:
    """In-memory capture of ``throttle.*`` events, optionally for one operator."""

    def __init__(self, *, throttle: Optional[str] = None, prefix: str = "throttle.") -> None:
        self.throttle = throttle
        self.prefix = prefix
        self.events: List[ThrottleEvent] = []

    def emit(self, event: ThrottleEvent) -> None:
        if not event.type.startswith(self.prefix):
            return
        if self.throttle is not None and event.throttle != self.throttle:
            return
        self.events.append(event)

    def by_type(self, event_type: str) -> List[ThrottleEvent]:
        return [event for event in self.events if event.type == event_type]

    def types(self) -> List[str]:
        return [event.type for event in self.events]

    def counts(self) -> Dict[str, int]:
        """Events per type, in order of first appearance."""
        return dict(Counter(self.types()))

    def clear(self) -> None:
        self.events.clear()


class JsonlEventWriter:
    """Append events to a JSONL file, one object per line.

    The file (and its parent directory) is created on the first event, so a
    run that emits nothing leaves no file behind.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.written = 0
        self._handle: Optional[TextIO] = None

    def emit(self, event: ThrottleEvent) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        self._handle.write(event.to_json() + "\n")
        self._handle.flush()
        self.written += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug("Wrote %d events to %s", self.written, self.path)

    def __enter__(self) -> "JsonlEventWriter":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()


__all__ = ["EventRecorder", "JsonlEventWriter"]
