# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.scheduler",
#   "purpose": "Pure reducer that turns arrivals into planned, time-stamped emissions.",
#   "sections": [
#     {
#       "id": "emissionstate",
#       "name": "EmissionState",
#       "anchor": "class-emissionstate",
#       "kind": "class"
#     },
#     {
#       "id": "plannedemission",
#       "name": "PlannedEmission",
#       "anchor": "class-plannedemission",
#       "kind": "class"
#     },
#     {
#       "id": "is-within-current-period",
#       "name": "is_within_current_period",
#       "anchor": "function-is-within-current-period",
#       "kind": "function"
#     },
#     {
#       "id": "prune-queue",
#       "name": "prune_queue",
#       "anchor": "function-prune-queue",
#       "kind": "function"
#     },
#     {
#       "id": "schedule-payload",
#       "name": "schedule_payload",
#       "anchor": "function-schedule-payload",
#       "kind": "function"
#     },
#     {
#       "id": "throttlesettings",
#       "name": "ThrottleSettings",
#       "anchor": "class-throttlesettings",
#       "kind": "class"
#     },
#     {
#       "id": "scheduler",
#       "name": "Scheduler",
#       "anchor": "class-scheduler",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Scheduling reducer for the lossless throttle.

For every arriving payload the scheduler folds the current queue of planned
emissions into a new one:

1. **Prune** every planned emission whose ``emit_time <= now - period``.
2. **Capacity check**: when ``max_buffer`` is set and the pruned queue already
   holds that many items, the pruned queue is returned and the payload is
   discarded. This is the only discard path.
3. **Append** a new planned emission. An empty queue means nothing is being
   throttled, so the payload fires with no delay. Otherwise it is planned
   ``rate`` after the *head* of the queue.

Head anchoring means every follower within one period shares the same planned
``emit_time`` (the head's plus ``rate``); ties keep queue order. The planned
time drives pruning only. Actual spacing between deliveries comes from the
operator running each ``delay_ms`` after the previous delivery completes.

Queues are immutable tuples, so the reducer is pure: the same inputs always
produce the same queue and the caller's queue is never modified.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Generic, Optional, Protocol, Tuple, TypeVar

T = TypeVar("T")

__all__ = [
    "EmissionState",
    "PlannedEmission",
    "Queue",
    "is_within_current_period",
    "prune_queue",
    "schedule_payload",
    "Scheduler",
    "ThrottleSettings",
]


class EmissionState(str, Enum):
    """Lifecycle tag of a planned emission."""

    PENDING = "pending"
    EMITTED = "emitted"


@dataclass(frozen=True)
class PlannedEmission(Generic[T]):
    """One queued payload and the metadata of its throttling.

    Attributes:
        delay_ms: Milliseconds between scheduling and delivery
        emit_time: Epoch milliseconds at which the payload becomes due
        payload: The throttled value, opaque to the scheduler
        state: ``PENDING`` until the executor hands it out, then ``EMITTED``
    """

    delay_ms: int
    emit_time: int
    payload: T
    state: EmissionState = EmissionState.PENDING

    @property
    def scheduled(self) -> bool:
        """Whether the executor has already initiated emission."""
        return self.state is EmissionState.EMITTED

    @property
    def delay_seconds(self) -> float:
        """``delay_ms`` in the unit ``asyncio.sleep`` expects."""
        return self.delay_ms / 1000

    def mark_emitted(self) -> "PlannedEmission[T]":
        return replace(self, state=EmissionState.EMITTED)


Queue = Tuple[PlannedEmission[Any], ...]


def is_within_current_period(now: int, period_ms: int) -> Callable[[PlannedEmission[Any]], bool]:
    """Return a predicate keeping planned emissions newer than ``now - period``."""
    cutoff = now - period_ms
    return lambda item: item.emit_time > cutoff


def prune_queue(queue: Queue, now: int, period_ms: int) -> Queue:
    """Drop planned emissions that fell out of the rolling period."""
    return tuple(filter(is_within_current_period(now, period_ms), queue))


def schedule_payload(
    queue: Queue,
    payload: T,
    now: int,
    *,
    rate_ms: int,
    period_ms: int,
    max_buffer: Optional[int] = None,
) -> Queue:
    """Fold one arrival into the queue.

    Args:
        queue: Current queue (possibly empty), oldest first
        payload: The arriving value
        now: Current wall-clock time in epoch milliseconds
        rate_ms: Spacing applied to followers of the queue head
        period_ms: Look-back window for pruning
        max_buffer: Optional queue capacity

    Returns:
        The pruned queue with the new planned emission appended, or the pruned
        queue alone when it is at capacity.
    """
    current = prune_queue(queue, now, period_ms)

    if max_buffer is not None and len(current) >= max_buffer:
        return current

    if current:
        planned = PlannedEmission(
            delay_ms=rate_ms,
            emit_time=current[0].emit_time + rate_ms,
            payload=payload,
        )
    else:
        planned = PlannedEmission(delay_ms=0, emit_time=now, payload=payload)
    return current + (planned,)


class ThrottleSettings(Protocol):
    """Anything carrying the three scheduling parameters."""

    rate_ms: int
    period_ms: int
    max_buffer: Optional[int]


class Scheduler(Generic[T]):
    """``schedule_payload`` bound to fixed rate, period and capacity."""

    def __init__(self, rate_ms: int, period_ms: int, max_buffer: Optional[int] = None) -> None:
        self.rate_ms = rate_ms
        self.period_ms = period_ms
        self.max_buffer = max_buffer

    @classmethod
    def from_config(cls, settings: ThrottleSettings) -> "Scheduler[T]":
        return cls(settings.rate_ms, settings.period_ms, settings.max_buffer)

    @staticmethod
    def initial() -> Queue:
        return ()

    def schedule(self, queue: Queue, incoming: T, now: int) -> Queue:
        return schedule_payload(
            queue,
            incoming,
            now,
            rate_ms=self.rate_ms,
            period_ms=self.period_ms,
            max_buffer=self.max_buffer,
        )

    def __repr__(self) -> str:
        return (
            f"Scheduler(rate_ms={self.rate_ms}, period_ms={self.period_ms}, "
            f"max_buffer={self.max_buffer})"
        )
