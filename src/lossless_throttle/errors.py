# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.errors",
#   "purpose": "Define the exception hierarchy used by the throttle package",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across the throttle scheduler, operator, and CLI.

The core scheduling functions never raise during normal operation. The only
failure the package itself produces is a rejected configuration, which is
reported at construction time so a misconfigured operator never produces a
nonsensical schedule. Upstream errors are not wrapped: they reach the consumer
as the exact exception object the source raised.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "LosslessThrottleError",
    "InvalidConfiguration",
]


class LosslessThrottleError(RuntimeError):
    """Base exception for throttle configuration and orchestration failures."""


class InvalidConfiguration(LosslessThrottleError, ValueError):
    """Raised when ``rate``, ``period``, or ``max_buffer`` are not usable."""

    def __init__(self, message: str, *, fields: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.fields = tuple(fields or ())
