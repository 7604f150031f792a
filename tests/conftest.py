# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for suite",
#   "sections": [
#     {
#       "id": "manual-clock",
#       "name": "manual_clock",
#       "anchor": "function-manual-clock",
#       "kind": "function"
#     },
#     {
#       "id": "event-sink",
#       "name": "event_sink",
#       "anchor": "function-event-sink",
#       "kind": "function"
#     },
#     {
#       "id": "run-async",
#       "name": "run_async",
#       "anchor": "function-run-async",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Puts ``src`` on ``sys.path`` so the suite runs from a plain checkout, and
provides a deterministic clock, an in-memory telemetry sink, and an explicit
event-loop runner for the async operator tests.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Generator, List

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from lossless_throttle.clock import ManualClock  # noqa: E402
from lossless_throttle.logging_utils import PACKAGE_LOGGER  # noqa: E402
from lossless_throttle.observability import EventRecorder, clear_sinks, register_sink  # noqa: E402


class RecordingSleep:
    """Sleep double that records requested delays and optionally moves a clock."""

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(int(round(seconds * 1000)))
        await asyncio.sleep(0)


class StalledSleep:
    """Sleep double whose delays never elapse; only cancellation ends them."""

    def __init__(self) -> None:
        self.calls: List[float] = []
        self.cancelled = 0

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        try:
            await asyncio.get_running_loop().create_future()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


def run_async(coro: Awaitable[Any]) -> Any:
    """Run ``coro`` on a fresh event loop and shut async generators down."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        asyncio.set_event_loop(None)


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock(start_ms=0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def run() -> Callable[[Awaitable[Any]], Any]:
    return run_async


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Generator[None, None, None]:
    """Undo ``setup_logging`` calls made by CLI tests."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def event_sink() -> Generator[EventRecorder, None, None]:
    """Capture telemetry events emitted during a test."""
    sink = EventRecorder()
    register_sink(sink)
    try:
        yield sink
    finally:
        clear_sinks()
