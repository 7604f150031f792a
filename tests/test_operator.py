# === NAVMAP v1 ===
# {
#   "module": "tests.test_operator",
#   "purpose": "End-to-end behaviour of the async throttle operator.",
#   "sections": [
#     {"id": "helpers", "name": "Helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""End-to-end behaviour of the async throttle operator.

The operator tests drive the stream on an explicit event loop and replace
``asyncio.sleep`` with :class:`RecordingSleep`, so delays are asserted as data
rather than measured as wall-clock time. A single real-timer test keeps the
default wiring honest.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
from typing import Any, AsyncIterator, Iterable, List, Tuple

import pytest

from conftest import RecordingSleep, StalledSleep, run_async
from lossless_throttle.clock import ManualClock
from lossless_throttle.operator import LosslessThrottle, lossless_throttle


# --- Helpers ---


async def _timed_source(
    clock: ManualClock, arrivals: Iterable[Tuple[int, Any]]
) -> AsyncIterator[Any]:
    """Yield payloads after moving ``clock`` to each arrival time (ms)."""
    for at, payload in arrivals:
        clock.set(at)
        yield payload


async def _collect(stream: AsyncIterator[Any]) -> List[Any]:
    return [item async for item in stream]


class Boom(RuntimeError):
    pass


# --- Test Cases ---


def test_burst_is_delivered_in_order_with_rate_spacing(manual_clock, recording_sleep) -> None:
    throttle = lossless_throttle(3000, 1000, clock=manual_clock, sleep=recording_sleep)
    arrivals = [(t, f"p{t}") for t in (0, 100, 200, 300, 400)]

    delivered = run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    assert delivered == ["p0", "p100", "p200", "p300", "p400"]
    assert recording_sleep.calls == [3.0, 3.0, 3.0, 3.0]
    assert throttle.stats.scheduled == 5
    assert throttle.stats.emitted == 5
    assert throttle.stats.dropped == 0


def test_idle_source_is_not_throttled(manual_clock, recording_sleep) -> None:
    throttle = lossless_throttle("3s", "1s", clock=manual_clock, sleep=recording_sleep)
    arrivals = [(0, "a"), (5_000, "b"), (10_000, "c")]

    delivered = run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    assert delivered == ["a", "b", "c"]
    assert recording_sleep.calls == []
    assert throttle.stats.pruned == 2


def test_filter_fn_removes_payloads_before_scheduling(manual_clock, recording_sleep) -> None:
    throttle = lossless_throttle(
        10,
        1000,
        filter_fn=lambda n: n % 2 == 0,
        clock=manual_clock,
        sleep=recording_sleep,
    )
    arrivals = [(0, n) for n in range(5)]

    delivered = run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    assert delivered == [0, 2, 4]
    assert throttle.stats.received == 5
    assert throttle.stats.filtered == 2
    assert recording_sleep.calls == [0.01, 0.01]


def test_capacity_drops_overflow(manual_clock, recording_sleep, event_sink) -> None:
    throttle = lossless_throttle(
        3000, 60_000, max_buffer=2, name="Bounded", clock=manual_clock, sleep=recording_sleep
    )
    arrivals = [(0, n) for n in range(5)]

    delivered = run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    assert delivered == [0, 1]
    assert throttle.stats.dropped == 3
    drops = event_sink.by_type("throttle.drop")
    assert len(drops) == 3
    assert all(event.level == "WARN" for event in drops)
    assert drops[0].throttle == "bounded"
    assert drops[0].payload == {
        "max_buffer": 2,
        "queue_depth": 2,
        "reason": "capacity",
    }


def test_drop_is_logged_as_warning(manual_clock, recording_sleep, caplog) -> None:
    throttle = lossless_throttle(
        3000, 60_000, max_buffer=1, clock=manual_clock, sleep=recording_sleep
    )
    arrivals = [(0, "kept"), (1, "dropped")]

    with caplog.at_level("WARNING", logger="lossless_throttle"):
        delivered = run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    assert delivered == ["kept"]
    assert any("payload dropped" in record.getMessage() for record in caplog.records)


def test_upstream_error_interrupts_pending_delay(manual_clock, event_sink) -> None:
    error = Boom("upstream failed")
    sleep = StalledSleep()
    throttle = lossless_throttle(100, 1000, clock=manual_clock, sleep=sleep)
    received: List[Any] = []

    async def failing() -> AsyncIterator[int]:
        yield 1
        yield 2
        while not sleep.calls:
            await asyncio.sleep(0)
        raise error

    async def consume() -> None:
        async for item in throttle(failing()):
            received.append(item)

    with pytest.raises(Boom) as info:
        run_async(consume())

    assert info.value is error
    assert received == [1]
    assert sleep.calls == [0.1]
    assert sleep.cancelled == 1
    assert throttle.stats.discarded == 1
    assert throttle.stats.pending == 0
    lifecycle = event_sink.by_type("throttle.lifecycle")
    assert [event.payload["state"] for event in lifecycle] == ["start", "error"]
    assert lifecycle[-1].level == "ERROR"
    assert lifecycle[-1].payload == {"state": "error", "error": "Boom", "discarded": 1}


def test_completion_waits_for_pending_emissions(manual_clock, event_sink) -> None:
    sleep = RecordingSleep()
    throttle = lossless_throttle(100, 1000, clock=manual_clock, sleep=sleep)

    delivered = run_async(_collect(throttle(_timed_source(manual_clock, [(0, 1), (0, 2), (0, 3)]))))

    assert delivered == [1, 2, 3]
    assert sleep.calls == [0.1, 0.1]
    (complete,) = [
        event
        for event in event_sink.by_type("throttle.lifecycle")
        if event.payload["state"] == "complete"
    ]
    assert complete.payload["emitted"] == 3
    assert complete.payload["pending"] == 0


def test_undelayed_emission_waits_behind_delayed_ones(manual_clock, recording_sleep) -> None:
    throttle = lossless_throttle(3000, 1000, clock=manual_clock, sleep=recording_sleep)
    arrivals = [(0, "a"), (100, "b"), (200, "c"), (4_100, "late")]

    delivered = run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    assert delivered == ["a", "b", "c", "late"]
    assert recording_sleep.calls == [3.0, 3.0]


def test_empty_source_completes(recording_sleep, event_sink) -> None:
    throttle = lossless_throttle(100, 1000, sleep=recording_sleep)

    async def empty() -> AsyncIterator[int]:
        return
        yield  # pragma: no cover

    assert run_async(_collect(throttle(empty()))) == []
    states = [event.payload["state"] for event in event_sink.by_type("throttle.lifecycle")]
    assert states == ["start", "complete"]


def test_closing_consumer_cancels_source(manual_clock, event_sink) -> None:
    sleep = RecordingSleep()
    throttle = lossless_throttle(1, 1000, clock=manual_clock, sleep=sleep)
    closed: List[bool] = []

    async def endless() -> AsyncIterator[int]:
        try:
            for n in itertools.count():
                yield n
                await asyncio.sleep(0)
        finally:
            closed.append(True)

    async def take_two() -> List[int]:
        taken: List[int] = []
        async with contextlib.aclosing(throttle(endless())) as stream:
            async for item in stream:
                taken.append(item)
                if len(taken) == 2:
                    break
        return taken

    assert run_async(take_two()) == [0, 1]
    assert closed == [True]
    states = [event.payload["state"] for event in event_sink.by_type("throttle.lifecycle")]
    assert states == ["start", "cancel"]


def test_events_describe_each_stage(manual_clock, recording_sleep, event_sink) -> None:
    throttle = LosslessThrottle.from_options(
        50, 1000, name="stages", clock=manual_clock, sleep=recording_sleep
    )
    arrivals = [(0, "a"), (10, "b")]

    run_async(_collect(throttle(_timed_source(manual_clock, arrivals))))

    types = event_sink.types()
    assert types[0] == "throttle.config"
    assert types.count("throttle.schedule") == 2
    assert types.count("throttle.emit") == 2
    schedules = event_sink.by_type("throttle.schedule")
    assert [event.payload["delay_ms"] for event in schedules] == [0, 50]
    assert [event.payload["throttled"] for event in schedules] == [False, True]
    assert all(event.throttle == "stages" for event in schedules)


def test_config_event_carries_advisories(event_sink) -> None:
    lossless_throttle(3000, 1000)

    (event,) = event_sink.by_type("throttle.config")
    assert event.level == "WARN"
    assert event.payload["config"]["rate_ms"] == 3000
    assert len(event.payload["advisories"]) == 2


def test_stats_track_pending_emissions(manual_clock, recording_sleep) -> None:
    throttle = lossless_throttle(100, 1000, clock=manual_clock, sleep=recording_sleep)

    async def first_only() -> Any:
        async with contextlib.aclosing(throttle(_timed_source(manual_clock, [(0, "a")]))) as stream:
            return await stream.__anext__()

    assert run_async(first_only()) == "a"
    assert throttle.stats.to_dict()["emitted"] == 1
    assert throttle.stats.pending == 0


def test_operator_is_reusable_across_streams(manual_clock, recording_sleep) -> None:
    throttle = lossless_throttle(100, 1000, clock=manual_clock, sleep=recording_sleep)

    first = run_async(_collect(throttle(_timed_source(manual_clock, [(0, 1), (1, 2)]))))
    second = run_async(_collect(throttle(_timed_source(manual_clock, [(5_000, 3)]))))

    assert first == [1, 2]
    assert second == [3]
    assert recording_sleep.calls == [0.1]
    assert throttle.stats.emitted == 3


def test_abandoned_emissions_do_not_count_as_pending_later(manual_clock, event_sink) -> None:
    sleep = RecordingSleep()
    throttle = lossless_throttle(100, 1000, clock=manual_clock, sleep=sleep)

    async def first_of_three() -> Any:
        source = _timed_source(manual_clock, [(0, "a"), (0, "b"), (0, "c")])
        async with contextlib.aclosing(throttle(source)) as stream:
            first = await stream.__anext__()
            while throttle.stats.scheduled < 3:
                await asyncio.sleep(0)
            return first

    assert run_async(first_of_three()) == "a"
    assert run_async(_collect(throttle(_timed_source(manual_clock, [(5_000, "x")])))) == ["x"]

    lifecycle = event_sink.by_type("throttle.lifecycle")
    assert [event.payload["state"] for event in lifecycle] == ["start", "cancel", "start", "complete"]
    assert lifecycle[1].payload == {"state": "cancel", "discarded": 2}
    assert lifecycle[3].payload["pending"] == 0
    assert lifecycle[3].payload["discarded"] == 2
    assert throttle.stats.pending == 0


def test_real_timer_spacing() -> None:
    throttle = lossless_throttle(40, 1000)

    async def burst() -> AsyncIterator[int]:
        for n in range(3):
            yield n

    async def timed() -> Tuple[List[float], List[int]]:
        loop = asyncio.get_running_loop()
        stamps: List[float] = []
        items: List[int] = []
        async for item in throttle(burst()):
            stamps.append(loop.time())
            items.append(item)
        return stamps, items

    stamps, items = run_async(timed())

    assert items == [0, 1, 2]
    gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
    assert all(gap >= 0.035 for gap in gaps)
