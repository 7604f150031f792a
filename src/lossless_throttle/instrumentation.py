# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.instrumentation",
#   "purpose": "Throttle counters and telemetry helpers.",
#   "sections": [
#     {
#       "id": "throttlestats",
#       "name": "ThrottleStats",
#       "anchor": "class-throttlestats",
#       "kind": "class"
#     },
#     {
#       "id": "emit-safe",
#       "name": "_emit_safe",
#       "anchor": "function-emit-safe",
#       "kind": "function"
#     },
#     {
#       "id": "emit-schedule-event",
#       "name": "emit_schedule_event",
#       "anchor": "function-emit-schedule-event",
#       "kind": "function"
#     },
#     {
#       "id": "emit-drop-event",
#       "name": "emit_drop_event",
#       "anchor": "function-emit-drop-event",
#       "kind": "function"
#     },
#     {
#       "id": "emit-prune-event",
#       "name": "emit_prune_event",
#       "anchor": "function-emit-prune-event",
#       "kind": "function"
#     },
#     {
#       "id": "emit-delivery-event",
#       "name": "emit_delivery_event",
#       "anchor": "function-emit-delivery-event",
#       "kind": "function"
#     },
#     {
#       "id": "emit-lifecycle-event",
#       "name": "emit_lifecycle_event",
#       "anchor": "function-emit-lifecycle-event",
#       "kind": "function"
#     },
#     {
#       "id": "emit-config-event",
#       "name": "emit_config_event",
#       "anchor": "function-emit-config-event",
#       "kind": "function"
#     },
#     {
#       "id": "log-throttle-stats",
#       "name": "log_throttle_stats",
#       "anchor": "function-log-throttle-stats",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Throttle counters and telemetry helpers.

Every helper builds a small payload keyed by the operator name and hands it to
:func:`lossless_throttle.observability.events.emit_event`. Telemetry failures
are logged and never reach the stream being throttled.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from lossless_throttle.observability.events import emit_event

logger = logging.getLogger(__name__)


@dataclass
class ThrottleStats:
    """Running counters for one operator instance.

    Counters accumulate across every stream the operator throttles. When a
    stream ends early (error or cancellation) its undelivered emissions move to
    ``discarded``, so ``pending`` only counts work still in flight.
    """

    received: int = 0
    filtered: int = 0
    scheduled: int = 0
    dropped: int = 0
    pruned: int = 0
    emitted: int = 0
    discarded: int = 0
    queue_depth: int = 0

    @property
    def pending(self) -> int:
        """Scheduled payloads neither delivered nor discarded by a closed stream."""
        return self.scheduled - self.emitted - self.discarded

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        data["pending"] = self.pending
        return data


def telemetry_name(name: Optional[str]) -> str:
    """Normalise an operator name for use as the event `throttle` field."""
    return (name or "default").strip().lower()[:80] or "default"


def _emit_safe(
    type: str,
    *,
    level: str,
    payload: Dict[str, Any],
    throttle: str,
) -> None:
    """Emit the event, swallowing telemetry errors."""
    try:
        emit_event(type, level=level, throttle=throttle, payload=payload)
    except Exception:  # pragma: no cover - telemetry must not raise
        logger.debug("throttle telemetry emission failed", exc_info=True)


def emit_schedule_event(
    *,
    name: Optional[str],
    delay_ms: int,
    emit_time: int,
    queue_depth: int,
) -> None:
    """Emit event when a payload is planned for emission."""
    throttle = telemetry_name(name)
    _emit_safe(
        "throttle.schedule",
        level="DEBUG",
        payload={
            "delay_ms": int(delay_ms),
            "emit_time": int(emit_time),
            "queue_depth": int(queue_depth),
            "throttled": delay_ms > 0,
        },
        throttle=throttle,
    )


def emit_drop_event(
    *,
    name: Optional[str],
    max_buffer: Optional[int],
    queue_depth: int,
) -> None:
    """Emit event when a payload is discarded because the queue is full."""
    throttle = telemetry_name(name)
    _emit_safe(
        "throttle.drop",
        level="WARN",
        payload={
            "max_buffer": max_buffer,
            "queue_depth": int(queue_depth),
            "reason": "capacity",
        },
        throttle=throttle,
    )


def emit_prune_event(*, name: Optional[str], pruned: int, queue_depth: int) -> None:
    """Emit event when planned emissions age out of the rolling period."""
    throttle = telemetry_name(name)
    _emit_safe(
        "throttle.prune",
        level="DEBUG",
        payload={
            "pruned": int(pruned),
            "queue_depth": int(queue_depth),
        },
        throttle=throttle,
    )


def emit_delivery_event(
    *,
    name: Optional[str],
    delay_ms: int,
    waited_ms: Optional[float] = None,
) -> None:
    """Emit event when a payload is handed to the downstream consumer."""
    throttle = telemetry_name(name)
    payload: Dict[str, Any] = {
        "delay_ms": int(delay_ms),
    }
    if waited_ms is not None:
        payload["waited_ms"] = float(waited_ms)
    _emit_safe("throttle.emit", level="DEBUG", payload=payload, throttle=throttle)


def emit_lifecycle_event(
    *,
    name: Optional[str],
    state: str,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit a stream lifecycle transition (start, complete, error, cancel)."""
    throttle = telemetry_name(name)
    payload: Dict[str, Any] = {"state": state}
    if details:
        payload.update(details)
    _emit_safe(
        "throttle.lifecycle",
        level="ERROR" if state == "error" else "INFO",
        payload=payload,
        throttle=throttle,
    )


def emit_config_event(
    *,
    name: Optional[str],
    config: Dict[str, Any],
    advisories: List[str],
) -> None:
    """Emit static information about an operator's configuration."""
    throttle = telemetry_name(name)
    _emit_safe(
        "throttle.config",
        level="WARN" if advisories else "INFO",
        payload={"config": config, "advisories": list(advisories)},
        throttle=throttle,
    )


def log_throttle_stats(stats: ThrottleStats, *, name: Optional[str] = None) -> None:
    """Log the latest throttle counters (debug-level helper)."""
    logger.debug(
        "throttle stats",
        extra={"throttle": telemetry_name(name), "stats": stats.to_dict()},
    )


__all__ = [
    "ThrottleStats",
    "telemetry_name",
    "emit_schedule_event",
    "emit_drop_event",
    "emit_prune_event",
    "emit_delivery_event",
    "emit_lifecycle_event",
    "emit_config_event",
    "log_throttle_stats",
]
