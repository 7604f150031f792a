# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.__init__",
#   "purpose": "Lossless rate-limiting scheduler for async streams.",
#   "sections": []
# }
# === /NAVMAP ===

"""Lossless rate-limiting scheduler for async streams.

Unlike throttle/sample operators that discard values arriving too quickly,
this operator re-times them: every payload is delivered, in arrival order, and
consecutive deliveries are at least ``rate`` apart while throttling is active.
An optional ``max_buffer`` caps memory; only then may payloads be dropped.

Architecture:
- scheduler: pure fold producing planned emissions (prune, capacity, append)
- executor: at-most-once hand-out of the newest planned emission
- operator: async-iterator wiring with sequential, cancellable delivery
- config: validated, immutable configuration with env overrides
- instrumentation / observability: counters, structured events, and sinks
- simulation / cli: virtual-time replay for tuning rate and period

Example:
    >>> from lossless_throttle import lossless_throttle
    >>> throttle = lossless_throttle(rate="3s", period="1s", max_buffer=100)
    >>> async for payload in throttle(source()):
    ...     await send(payload)
"""

from lossless_throttle.clock import Clock, ManualClock, SystemClock
from lossless_throttle.config import (
    ThrottleConfig,
    config_advisories,
    get_schema_summary,
    load_config,
    parse_duration,
)
from lossless_throttle.errors import InvalidConfiguration, LosslessThrottleError
from lossless_throttle.executor import ExecutionResult, execute_schedule
from lossless_throttle.instrumentation import ThrottleStats
from lossless_throttle.operator import LosslessThrottle, lossless_throttle
from lossless_throttle.scheduler import (
    EmissionState,
    PlannedEmission,
    Queue,
    Scheduler,
    prune_queue,
    schedule_payload,
)
from lossless_throttle.simulation import SimulatedEmission, SimulationReport, simulate

__all__ = [
    # Operator
    "LosslessThrottle",
    "lossless_throttle",
    # Core
    "EmissionState",
    "PlannedEmission",
    "Queue",
    "Scheduler",
    "schedule_payload",
    "prune_queue",
    "ExecutionResult",
    "execute_schedule",
    # Config
    "ThrottleConfig",
    "load_config",
    "parse_duration",
    "config_advisories",
    "get_schema_summary",
    # Clock
    "Clock",
    "SystemClock",
    "ManualClock",
    # Errors
    "LosslessThrottleError",
    "InvalidConfiguration",
    # Telemetry & simulation
    "ThrottleStats",
    "simulate",
    "SimulatedEmission",
    "SimulationReport",
]
