# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.cli.app",
#   "purpose": "Typer commands for simulating and checking throttle configurations.",
#   "sections": [
#     {
#       "id": "format-table",
#       "name": "_format_table",
#       "anchor": "function-format-table",
#       "kind": "function"
#     },
#     {
#       "id": "main",
#       "name": "main",
#       "anchor": "function-main",
#       "kind": "function"
#     },
#     {
#       "id": "simulate-cmd",
#       "name": "simulate_cmd",
#       "anchor": "function-simulate-cmd",
#       "kind": "function"
#     },
#     {
#       "id": "check-cmd",
#       "name": "check_cmd",
#       "anchor": "function-check-cmd",
#       "kind": "function"
#     },
#     {
#       "id": "schema-cmd",
#       "name": "schema_cmd",
#       "anchor": "function-schema-cmd",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Command-line tools for tuning a lossless throttle.

Provides:
- simulate - Replay arrival offsets and show delays, planned and delivery times
- check    - Validate a configuration and list its misuse advisories
- schema   - Print the accepted configuration formats
"""

import json
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Sequence

import typer

from lossless_throttle.config import (
    ThrottleConfig,
    ThrottleEnvironment,
    config_advisories,
    format_duration,
    get_schema_summary,
    load_config,
)
from lossless_throttle.errors import InvalidConfiguration
from lossless_throttle.logging_utils import setup_logging
from lossless_throttle.observability import JsonlEventWriter, registered, run_scope
from lossless_throttle.simulation import simulate

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="lossless-throttle",
    help="Plan and inspect lossless throttling schedules",
    no_args_is_help=True,
)


# ============================================================================
# Helper Functions
# ============================================================================


def _format_table(rows: Sequence[Sequence[Any]], headers: list[str]) -> str:
    """Format rows as a plain-text table."""
    rows = list(rows)
    if not rows:
        return "(no arrivals)"

    widths = [len(h) for h in headers]
    for row in rows:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(str(val)))

    lines = []
    header_line = " | ".join(f"{h:<{w}}" for h, w in zip(headers, widths))
    lines.append(header_line)
    lines.append("-" * len(header_line))
    for row in rows:
        lines.append(" | ".join(f"{str(v):<{w}}" for v, w in zip(row, widths)))
    return "\n".join(lines)


def _load_or_exit(
    rate: str | None,
    period: str | None,
    max_buffer: int | None,
    use_env: bool,
) -> ThrottleConfig:
    try:
        return load_config(rate, period, max_buffer=max_buffer, use_env=use_env)
    except InvalidConfiguration as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)


def _dash(value: Any) -> Any:
    return "-" if value is None else value


# ============================================================================
# Commands
# ============================================================================


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR); defaults to LOSSLESS_THROTTLE_LOG_LEVEL or WARNING",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as JSON lines on stderr",
    ),
) -> None:
    """Plan and inspect lossless throttling schedules."""
    if log_level is None:
        log_level = ThrottleEnvironment().log_level or "WARNING"
    setup_logging(level=log_level, json_logs=json_logs)
    logger.debug("Logging configured", extra={"log_level": log_level.upper()})


@app.command(name="simulate")
def simulate_cmd(
    arrivals: list[int] = typer.Argument(
        ...,
        help="Arrival offsets in milliseconds (non-decreasing)",
    ),
    rate: str | None = typer.Option(
        None,
        "--rate",
        "-r",
        help="Minimum spacing between emissions (e.g. '3s', '250ms')",
    ),
    period: str | None = typer.Option(
        None,
        "--period",
        "-p",
        help="Rolling look-back window (e.g. '1s')",
    ),
    max_buffer: int | None = typer.Option(
        None,
        "--max-buffer",
        "-b",
        help="Hard cap on queued payloads; overflow is dropped",
    ),
    use_env: bool = typer.Option(
        False,
        "--env",
        help="Fill missing options from LOSSLESS_THROTTLE_* variables",
    ),
    events_path: Path | None = typer.Option(
        None,
        "--events",
        help="Append throttle telemetry events to this JSONL file",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output one JSON object per arrival",
    ),
) -> None:
    """Replay arrival offsets through the throttle in virtual time."""
    config = _load_or_exit(rate, period, max_buffer, use_env)

    with ExitStack() as stack:
        run_id = stack.enter_context(run_scope())
        if events_path is not None:
            writer = stack.enter_context(JsonlEventWriter(events_path))
            stack.enter_context(registered(writer))
        try:
            report = simulate(arrivals, config)
        except ValueError as exc:
            typer.echo(f"❌ {exc}", err=True)
            raise typer.Exit(code=1)
    logger.debug("Simulation finished", extra={"run_id": run_id, "arrivals": len(arrivals)})

    if json_output:
        for row in report.rows:
            typer.echo(json.dumps(row.to_dict(), default=str))
        return

    typer.echo(str(config))
    table = _format_table(
        [
            (
                row.index,
                row.arrival_ms,
                row.outcome,
                _dash(row.delay_ms),
                _dash(row.planned_ms),
                _dash(row.delivered_ms),
                _dash(row.latency_ms),
            )
            for row in report.rows
        ],
        ["#", "arrival_ms", "outcome", "delay_ms", "planned_ms", "delivered_ms", "latency_ms"],
    )
    typer.echo(table)
    stats = report.stats
    typer.echo(
        f"\nscheduled={stats.scheduled} dropped={stats.dropped} pruned={stats.pruned} "
        f"max_latency={format_duration(report.max_latency_ms())}"
    )
    counts = report.event_counts()
    typer.echo("events: " + " ".join(f"{event_type}={count}" for event_type, count in counts.items()))


@app.command(name="check")
def check_cmd(
    rate: str | None = typer.Option(None, "--rate", "-r", help="Minimum spacing between emissions"),
    period: str | None = typer.Option(None, "--period", "-p", help="Rolling look-back window"),
    max_buffer: int | None = typer.Option(None, "--max-buffer", "-b", help="Queue capacity"),
    use_env: bool = typer.Option(
        False,
        "--env",
        help="Fill missing options from LOSSLESS_THROTTLE_* variables",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit with code 2 when advisories are present",
    ),
) -> None:
    """Validate a configuration and report misuse advisories."""
    config = _load_or_exit(rate, period, max_buffer, use_env)
    advisories = config_advisories(config)

    typer.echo(f"✅ {config}")
    for advisory in advisories:
        typer.echo(f"⚠️  {advisory}")
    if strict and advisories:
        raise typer.Exit(code=2)


@app.command(name="schema")
def schema_cmd() -> None:
    """Print accepted configuration formats as JSON."""
    typer.echo(json.dumps(get_schema_summary(), indent=2))


__all__ = ["app"]
