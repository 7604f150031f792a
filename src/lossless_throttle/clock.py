# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.clock",
#   "purpose": "Injectable wall-clock capability for deterministic scheduling.",
#   "sections": [
#     {"id": "clock", "name": "Clock", "anchor": "class-clock", "kind": "class"},
#     {"id": "systemclock", "name": "SystemClock", "anchor": "class-systemclock", "kind": "class"},
#     {"id": "manualclock", "name": "ManualClock", "anchor": "class-manualclock", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Clock capability threaded through the scheduler.

The scheduler never reads ambient time: callers hand it ``now`` from a
``Clock``. Production code uses :class:`SystemClock`; tests and the simulator
use :class:`ManualClock`, whose time only moves when told to.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

__all__ = ["Clock", "SystemClock", "ManualClock"]


@runtime_checkable
class Clock(Protocol):
    """Source of wall-clock time in integer milliseconds since the epoch."""

    def now_ms(self) -> int:
        ...


class SystemClock:
    """Wall clock backed by :func:`time.time`."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def __repr__(self) -> str:
        return "SystemClock()"


class ManualClock:
    """Deterministic clock for tests and simulations."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now_ms = int(start_ms)

    def now_ms(self) -> int:
        return self._now_ms

    def advance(self, delta_ms: int) -> int:
        """Move time forward by ``delta_ms`` and return the new reading."""
        if delta_ms < 0:
            raise ValueError(f"ManualClock cannot move backwards (delta={delta_ms})")
        self._now_ms += int(delta_ms)
        return self._now_ms

    def set(self, now_ms: int) -> None:
        if now_ms < self._now_ms:
            raise ValueError(f"ManualClock cannot move backwards ({self._now_ms} -> {now_ms})")
        self._now_ms = int(now_ms)

    def __repr__(self) -> str:
        return f"ManualClock(now_ms={self._now_ms})"
