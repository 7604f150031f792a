# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.config",
#   "purpose": "Throttle configuration model, duration parsing, and environment overrides.",
#   "sections": [
#     {
#       "id": "parse-duration",
#       "name": "parse_duration",
#       "anchor": "function-parse-duration",
#       "kind": "function"
#     },
#     {
#       "id": "format-duration",
#       "name": "format_duration",
#       "anchor": "function-format-duration",
#       "kind": "function"
#     },
#     {
#       "id": "throttleconfig",
#       "name": "ThrottleConfig",
#       "anchor": "class-throttleconfig",
#       "kind": "class"
#     },
#     {
#       "id": "throttleenvironment",
#       "name": "ThrottleEnvironment",
#       "anchor": "class-throttleenvironment",
#       "kind": "class"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     },
#     {
#       "id": "config-advisories",
#       "name": "config_advisories",
#       "anchor": "function-config-advisories",
#       "kind": "function"
#     },
#     {
#       "id": "get-schema-summary",
#       "name": "get_schema_summary",
#       "anchor": "function-get-schema-summary",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Throttle configuration: durations, validation, and environment overrides.

The operator is configured once, at construction, and the configuration is
immutable for its lifetime. Durations are stored in integer milliseconds but
may be written in a human-readable form.

Design:
- **Human-readable input**: ``"250ms"``, ``"3s"``, ``"2 minutes"`` or plain ints
- **Structured output**: ``ThrottleConfig(rate_ms=3000, period_ms=1000)``
- **Fail fast**: non-positive values raise ``InvalidConfiguration``
- **Environment overrides**: ``LOSSLESS_THROTTLE_RATE`` and friends fill in
  any option the caller did not pass explicitly

Example:
    >>> from lossless_throttle.config import load_config
    >>> config = load_config(rate="3s", period="1s", max_buffer=100)
    >>> config.rate_ms, config.period_ms, config.max_buffer
    (3000, 1000, 100)
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lossless_throttle.errors import InvalidConfiguration

# ============================================================================
# Constants
# ============================================================================

DURATION_MS = {
    "millisecond": 1,
    "second": 1_000,
    "minute": 60 * 1_000,
    "hour": 60 * 60 * 1_000,
}

DURATION_ALIASES = {
    "": "millisecond",
    "ms": "millisecond",
    "msec": "millisecond",
    "s": "second",
    "sec": "second",
    "m": "minute",
    "min": "minute",
    "h": "hour",
    "hr": "hour",
}

ENV_PREFIX = "LOSSLESS_THROTTLE_"

_DURATION_PATTERN = re.compile(r"^(\d+)\s*([a-zA-Z]*)$")


# ============================================================================
# Duration Parsing
# ============================================================================


def _normalise_unit(unit: str) -> Optional[str]:
    unit = unit.lower()
    if unit in DURATION_ALIASES:
        return DURATION_ALIASES[unit]
    if unit in DURATION_MS:
        return unit
    if unit.endswith("s"):
        singular = unit[:-1]
        if singular in DURATION_MS:
            return singular
        if singular in DURATION_ALIASES and singular:
            return DURATION_ALIASES[singular]
    return None


def parse_duration(spec: Union[int, str]) -> int:
    """Parse a duration into integer milliseconds.

    Format: ``"{amount}{unit}"`` where unit is ms/second/minute/hour (or a
    short alias). A bare number is read as milliseconds.

    Examples:
        "250ms"      → 250
        "3s"         → 3000
        "2 minutes"  → 120000
        1500         → 1500

    Args:
        spec: Duration string or integer milliseconds

    Returns:
        Duration in milliseconds

    Raises:
        ValueError: If spec format is invalid or the unit is unknown
    """
    if isinstance(spec, bool):
        raise ValueError(f"Invalid duration: {spec!r}")
    if isinstance(spec, int):
        return spec

    text = str(spec).strip()
    match = _DURATION_PATTERN.match(text)
    if not match:
        raise ValueError(
            f"Invalid duration: {spec!r}. Expected format: '250ms', '3s', '2 minutes', etc."
        )

    amount_str, unit_str = match.groups()
    unit = _normalise_unit(unit_str)
    if unit is None:
        raise ValueError(
            f"Unknown duration unit: {unit_str!r}. Supported: {list(DURATION_MS.keys())}"
        )
    return int(amount_str) * DURATION_MS[unit]


def format_duration(ms: int) -> str:
    """Render milliseconds using the largest unit that divides them evenly."""
    if ms and ms % DURATION_MS["hour"] == 0:
        return f"{ms // DURATION_MS['hour']}h"
    if ms and ms % DURATION_MS["minute"] == 0:
        return f"{ms // DURATION_MS['minute']}min"
    if ms and ms % DURATION_MS["second"] == 0:
        return f"{ms // DURATION_MS['second']}s"
    return f"{ms}ms"


# ============================================================================
# Data Models
# ============================================================================


class ThrottleConfig(BaseModel):
    """Validated, immutable operator configuration.

    Attributes:
        rate_ms: Minimum spacing between consecutive emissions once throttling
            is active
        period_ms: Rolling look-back window; planned emissions older than this
            are pruned before the queue is inspected
        max_buffer: Optional hard cap on the queue length; at capacity new
            payloads are dropped
        name: Label attached to log records and telemetry events
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    rate_ms: int = Field(
        gt=0,
        validation_alias=AliasChoices("rate_ms", "rate"),
        description="Minimum milliseconds between consecutive emissions",
    )
    period_ms: int = Field(
        gt=0,
        validation_alias=AliasChoices("period_ms", "period"),
        description="Rolling window (ms) used to decide which planned emissions are current",
    )
    max_buffer: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("max_buffer", "maxBuffer"),
        description="Hard cap on queue length; overflow payloads are dropped",
    )
    name: str = Field(
        default="default",
        min_length=1,
        description="Telemetry label for this operator instance",
    )

    @field_validator("rate_ms", "period_ms", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> Any:
        """Accept human-readable duration strings."""
        if isinstance(v, bool):
            raise ValueError("duration must be an integer or a duration string, not a bool")
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("max_buffer", mode="before")
    @classmethod
    def reject_bool_buffer(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("max_buffer must be a positive integer, not a bool")
        return v

    @property
    def bounded(self) -> bool:
        """Whether the queue has a hard capacity."""
        return self.max_buffer is not None

    def describe(self) -> Dict[str, Any]:
        """Return the settings as a JSON-friendly dict (for telemetry)."""
        return {
            "name": self.name,
            "rate_ms": self.rate_ms,
            "period_ms": self.period_ms,
            "max_buffer": self.max_buffer,
        }

    def __str__(self) -> str:
        buffer = "unbounded" if self.max_buffer is None else f"max_buffer={self.max_buffer}"
        return (
            f"{self.name}: rate={format_duration(self.rate_ms)} "
            f"period={format_duration(self.period_ms)} {buffer}"
        )


class ThrottleEnvironment(BaseSettings):
    """Environment-provided defaults (``LOSSLESS_THROTTLE_*``)."""

    rate: Optional[str] = None
    period: Optional[str] = None
    max_buffer: Optional[int] = None
    name: Optional[str] = None
    log_level: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, case_sensitive=False, extra="ignore")


# ============================================================================
# Loading
# ============================================================================


def _error_fields(exc: ValidationError) -> List[str]:
    fields: List[str] = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ())) or "config"
        if loc not in fields:
            fields.append(loc)
    return fields


def load_config(
    rate: Union[int, str, None] = None,
    period: Union[int, str, None] = None,
    *,
    max_buffer: Optional[int] = None,
    name: Optional[str] = None,
    use_env: bool = False,
) -> ThrottleConfig:
    """Build a ``ThrottleConfig``, failing fast on invalid input.

    Explicit arguments win; with ``use_env=True`` any argument left as ``None``
    is filled from the ``LOSSLESS_THROTTLE_*`` environment variables.

    Raises:
        InvalidConfiguration: If a value is missing, malformed, or not positive
    """
    values: Dict[str, Any] = {}
    try:
        if use_env:
            env = ThrottleEnvironment()
            values.update(
                env.model_dump(exclude_none=True, include={"rate", "period", "max_buffer", "name"})
            )

        explicit = {"rate": rate, "period": period, "max_buffer": max_buffer, "name": name}
        values.update({key: value for key, value in explicit.items() if value is not None})
        return ThrottleConfig(**values)
    except ValidationError as exc:
        fields = _error_fields(exc)
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'config'}: {err.get('msg')}"
            for err in exc.errors()
        )
        raise InvalidConfiguration(
            f"Invalid throttle configuration: {messages}", fields=fields
        ) from exc


def config_advisories(config: ThrottleConfig) -> List[str]:
    """List the documented operator-misuse risks this configuration carries."""
    advisories: List[str] = []
    if config.max_buffer is None:
        advisories.append(
            "max_buffer is unset: the queue grows without bound if producers sustain "
            f"more than one payload per {format_duration(config.rate_ms)}"
        )
    if config.period_ms < config.rate_ms:
        advisories.append(
            f"period ({format_duration(config.period_ms)}) is shorter than rate "
            f"({format_duration(config.rate_ms)}): payloads arriving more than one period "
            "apart are never throttled, so emissions can be closer together than rate"
        )
    return advisories


def get_schema_summary() -> Dict[str, Any]:
    """Get summary of the configuration schema for documentation."""
    return {
        "duration_format": "{amount}{unit}",
        "duration_units": "ms, second/sec/s, minute/min/m, hour/hr/h (bare numbers are ms)",
        "examples": ["250ms", "3s", "2 minutes", "1500"],
        "options": {
            "rate": "minimum spacing between consecutive emissions",
            "period": "rolling look-back window for pruning planned emissions",
            "max_buffer": "optional hard cap on queue length (overflow is dropped)",
        },
        "environment_prefix": ENV_PREFIX,
    }


__all__ = [
    "DURATION_MS",
    "ENV_PREFIX",
    "ThrottleConfig",
    "ThrottleEnvironment",
    "parse_duration",
    "format_duration",
    "load_config",
    "config_advisories",
    "get_schema_summary",
]
