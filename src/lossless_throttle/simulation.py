# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.simulation",
#   "purpose": "Virtual-time replay of arrival timelines through the throttle.",
#   "sections": [
#     {
#       "id": "simulatedemission",
#       "name": "SimulatedEmission",
#       "anchor": "class-simulatedemission",
#       "kind": "class"
#     },
#     {
#       "id": "simulationreport",
#       "name": "SimulationReport",
#       "anchor": "class-simulationreport",
#       "kind": "class"
#     },
#     {
#       "id": "simulate",
#       "name": "simulate",
#       "anchor": "function-simulate",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Virtual-time replay of arrival timelines.

:func:`simulate` pushes a list of arrival offsets through the same
``LosslessThrottle.admit``/``advance`` path the async operator uses, driven by
a :class:`~lossless_throttle.clock.ManualClock`, and computes when each
emission would be delivered. Delivery follows the operator: an emission's
delay starts when the previous emission was delivered, or at its own arrival
if the stream was idle.

Useful for choosing ``rate``/``period``/``max_buffer`` before deploying, and
for checking scheduling properties without real timers.

Example:
    >>> from lossless_throttle.config import load_config
    >>> report = simulate([0, 100, 200], load_config(rate=3000, period=1000))
    >>> [row.delivered_ms for row in report.rows]
    [0, 3100, 6100]
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from lossless_throttle.clock import ManualClock
from lossless_throttle.config import ThrottleConfig
from lossless_throttle.instrumentation import ThrottleStats, telemetry_name
from lossless_throttle.observability import EventRecorder, ThrottleEvent, registered
from lossless_throttle.operator import FilterFn, LosslessThrottle

Arrival = Union[int, Tuple[int, Any]]

OUTCOME_SCHEDULED = "scheduled"
OUTCOME_DROPPED = "dropped"
OUTCOME_FILTERED = "filtered"

__all__ = [
    "SimulatedEmission",
    "SimulationReport",
    "simulate",
    "OUTCOME_SCHEDULED",
    "OUTCOME_DROPPED",
    "OUTCOME_FILTERED",
]


@dataclass(frozen=True)
class SimulatedEmission:
    """What happened to one arrival."""

    index: int
    arrival_ms: int
    payload: Any
    outcome: str
    delay_ms: Optional[int] = None
    planned_ms: Optional[int] = None
    delivered_ms: Optional[int] = None

    @property
    def latency_ms(self) -> Optional[int]:
        if self.delivered_ms is None:
            return None
        return self.delivered_ms - self.arrival_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "arrival_ms": self.arrival_ms,
            "payload": self.payload,
            "outcome": self.outcome,
            "delay_ms": self.delay_ms,
            "planned_ms": self.planned_ms,
            "delivered_ms": self.delivered_ms,
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True)
class SimulationReport:
    config: ThrottleConfig
    rows: Tuple[SimulatedEmission, ...]
    stats: ThrottleStats = field(default_factory=ThrottleStats)
    events: Tuple[ThrottleEvent, ...] = ()

    @property
    def delivered(self) -> List[SimulatedEmission]:
        """Rows that reach the consumer, in delivery order."""
        return [row for row in self.rows if row.outcome == OUTCOME_SCHEDULED]

    @property
    def dropped(self) -> List[SimulatedEmission]:
        return [row for row in self.rows if row.outcome == OUTCOME_DROPPED]

    def delivery_gaps(self) -> List[int]:
        """Milliseconds between consecutive deliveries."""
        times = [row.delivered_ms for row in self.delivered if row.delivered_ms is not None]
        return [later - earlier for earlier, later in zip(times, times[1:])]

    def max_latency_ms(self) -> int:
        latencies = [row.latency_ms for row in self.delivered if row.latency_ms is not None]
        return max(latencies, default=0)

    def event_counts(self) -> Dict[str, int]:
        """Telemetry events recorded during the replay, per type."""
        return dict(Counter(event.type for event in self.events))


def _normalise_arrivals(arrivals: Iterable[Arrival]) -> List[Tuple[int, Any]]:
    normalised: List[Tuple[int, Any]] = []
    for index, arrival in enumerate(arrivals):
        if isinstance(arrival, tuple):
            at, payload = arrival
        else:
            at, payload = arrival, index
        normalised.append((int(at), payload))
    return normalised


def simulate(
    arrivals: Iterable[Arrival],
    config: ThrottleConfig,
    *,
    filter_fn: Optional[FilterFn] = None,
) -> SimulationReport:
    """Replay arrivals through the throttle in virtual time.

    Args:
        arrivals: Non-decreasing arrival times in ms, either bare ints (the
            payload is then the arrival index) or ``(arrival_ms, payload)``
        config: Throttle configuration to evaluate
        filter_fn: Optional legacy predicate

    Returns:
        Report with one row per arrival, the operator counters, and the
        telemetry events the replay produced

    Raises:
        ValueError: If arrival times decrease
    """
    timeline = _normalise_arrivals(arrivals)
    clock = ManualClock(start_ms=timeline[0][0] if timeline else 0)
    with registered(EventRecorder(throttle=telemetry_name(config.name))) as recorder:
        throttle: LosslessThrottle[Any] = LosslessThrottle(config, filter_fn=filter_fn, clock=clock)
        rows = _replay(throttle, clock, timeline)

    return SimulationReport(
        config=config,
        rows=tuple(rows),
        stats=throttle.stats,
        events=tuple(recorder.events),
    )


def _replay(
    throttle: LosslessThrottle[Any],
    clock: ManualClock,
    timeline: List[Tuple[int, Any]],
) -> List[SimulatedEmission]:
    queue = throttle.scheduler.initial()
    last_delivery: Optional[int] = None
    rows: List[SimulatedEmission] = []

    for index, (arrival_ms, payload) in enumerate(timeline):
        if arrival_ms < clock.now_ms():
            raise ValueError(
                f"Arrival times must be non-decreasing: {arrival_ms} after {clock.now_ms()}"
            )
        clock.set(arrival_ms)

        if not throttle.admit(payload):
            rows.append(SimulatedEmission(index, arrival_ms, payload, OUTCOME_FILTERED))
            continue

        queue, emission = throttle.advance(queue, payload)
        if emission is None:
            rows.append(SimulatedEmission(index, arrival_ms, payload, OUTCOME_DROPPED))
            continue

        start = arrival_ms if last_delivery is None else max(arrival_ms, last_delivery)
        delivered = start + emission.delay_ms
        last_delivery = delivered
        throttle.stats.emitted += 1
        rows.append(
            SimulatedEmission(
                index,
                arrival_ms,
                payload,
                OUTCOME_SCHEDULED,
                delay_ms=emission.delay_ms,
                planned_ms=emission.emit_time,
                delivered_ms=delivered,
            )
        )

    return rows
