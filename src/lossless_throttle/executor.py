# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.executor",
#   "purpose": "At-most-once hand-out of the newest planned emission.",
#   "sections": [
#     {"id": "executionresult", "name": "ExecutionResult", "anchor": "class-executionresult", "kind": "class"},
#     {"id": "execute-schedule", "name": "execute_schedule", "anchor": "function-execute-schedule", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Executor stage: decide what the latest queue update should emit.

The executor looks at the tail of the queue the scheduler just produced. A
``PENDING`` tail is handed out exactly once: the returned queue carries its
``EMITTED`` copy, so re-evaluating that queue yields nothing. An ``EMITTED``
tail means the scheduler did not append anything (the payload was dropped at
capacity) or the same state is being processed twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from lossless_throttle.scheduler import EmissionState, PlannedEmission, Queue

T = TypeVar("T")

__all__ = ["ExecutionResult", "execute_schedule"]


@dataclass(frozen=True)
class ExecutionResult(Generic[T]):
    """Queue after execution plus the emission to deliver, if any."""

    queue: Queue
    emission: Optional[PlannedEmission[T]] = None

    @property
    def emitted(self) -> bool:
        return self.emission is not None


def execute_schedule(queue: Queue) -> ExecutionResult[Any]:
    """Mark the tail of ``queue`` as emitted and return it for delivery.

    Returns an empty result when the queue is empty or its tail has already
    been emitted.
    """
    if not queue:
        return ExecutionResult(queue=queue)

    tail = queue[-1]
    if tail.state is EmissionState.EMITTED:
        return ExecutionResult(queue=queue)

    emitted = tail.mark_emitted()
    return ExecutionResult(queue=queue[:-1] + (emitted,), emission=emitted)
