# === NAVMAP v1 ===
# {
#   "module": "lossless_throttle.operator",
#   "purpose": "Async-iterator operator wiring scheduler, executor, and sequential delivery.",
#   "sections": [
#     {
#       "id": "losslessthrottle",
#       "name": "LosslessThrottle",
#       "anchor": "class-losslessthrottle",
#       "kind": "class"
#     },
#     {
#       "id": "lossless-throttle",
#       "name": "lossless_throttle",
#       "anchor": "function-lossless-throttle",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Lossless throttle operator for async iterables.

Wires the pure stages to a real stream:

    source ──► filter_fn ──► Scheduler (fold) ──► Executor ──► sequential delivery ──► consumer

A background task reads the source as fast as it produces, folding each
arrival into the queue and handing the executor's emissions to an in-order
delivery buffer. The consumer side drains that buffer one emission at a time,
sleeping each emission's ``delay_ms`` after the previous delivery (or after
scheduling, when the stream was idle). Deliveries therefore keep scheduling
order even when delays would make timers fire out of order.

Completion from the source is forwarded after the emissions scheduled before
it. An error ends the stream immediately: the delay in progress is
interrupted, pending emissions are discarded, and the consumer receives the
same exception object the source raised. Closing or cancelling the consumer
cancels the reader task and every pending emission.

Example:
    >>> throttle = lossless_throttle(rate=3000, period=1000, max_buffer=100)
    >>> async for request in throttle(incoming_requests()):
    ...     await call_rate_limited_api(request)

    Make sure the consumer is, on average, faster than the producer by choosing
    a suitable rate and period. Without ``max_buffer`` a producer that stays
    faster than one payload per ``rate`` grows the queue without bound; with
    ``max_buffer`` the overflow is dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from lossless_throttle.clock import Clock, SystemClock
from lossless_throttle.config import ThrottleConfig, config_advisories, load_config
from lossless_throttle.executor import execute_schedule
from lossless_throttle.instrumentation import (
    ThrottleStats,
    emit_config_event,
    emit_delivery_event,
    emit_drop_event,
    emit_lifecycle_event,
    emit_prune_event,
    emit_schedule_event,
    log_throttle_stats,
)
from lossless_throttle.scheduler import PlannedEmission, Queue, Scheduler

T = TypeVar("T")

FilterFn = Callable[[Any], bool]
SleepFn = Callable[[float], Awaitable[Any]]

logger = logging.getLogger(__name__)

__all__ = ["LosslessThrottle", "lossless_throttle", "FilterFn", "SleepFn"]


@dataclass(frozen=True)
class _Delivery:
    emission: PlannedEmission[Any]
    queued_at: float


_COMPLETE = object()
_FAILED = object()


async def _unless_failed(awaitable: Awaitable[Any], failure: "asyncio.Future[BaseException]") -> Any:
    """Await ``awaitable`` unless ``failure`` resolves first; then return ``_FAILED``."""
    task = asyncio.ensure_future(awaitable)
    try:
        await asyncio.wait((task, failure), return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
    if failure.done():
        return _FAILED
    return task.result()


class LosslessThrottle(Generic[T]):
    """Re-time an async stream so emissions are at least ``rate`` apart.

    Attributes:
        config: The immutable operator configuration
        stats: Counters accumulated across every stream this operator throttles
    """

    def __init__(
        self,
        config: ThrottleConfig,
        *,
        filter_fn: Optional[FilterFn] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        """Initialize the operator.

        Args:
            config: Validated configuration (see ``load_config``)
            filter_fn: Legacy predicate; payloads failing it never enter the queue
            clock: Time source for scheduling (defaults to ``SystemClock``)
            sleep: Awaitable used for emission delays (defaults to ``asyncio.sleep``)
        """
        self.config = config
        self.scheduler: Scheduler[T] = Scheduler.from_config(config)
        self.filter_fn = filter_fn
        self.clock: Clock = clock or SystemClock()
        self._sleep: SleepFn = sleep or asyncio.sleep
        self.stats = ThrottleStats()

        advisories = config_advisories(config)
        for advisory in advisories:
            logger.debug("Throttle configuration advisory: %s", advisory, extra={"throttle": config.name})
        emit_config_event(name=config.name, config=config.describe(), advisories=advisories)

    @classmethod
    def from_options(
        cls,
        rate: Union[int, str],
        period: Union[int, str],
        *,
        filter_fn: Optional[FilterFn] = None,
        max_buffer: Optional[int] = None,
        name: Optional[str] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[SleepFn] = None,
    ) -> "LosslessThrottle[T]":
        """Build an operator from raw options.

        Raises:
            InvalidConfiguration: If rate, period, or max_buffer are not positive
        """
        config = load_config(rate, period, max_buffer=max_buffer, name=name)
        return cls(config, filter_fn=filter_fn, clock=clock, sleep=sleep)

    def __call__(self, source: AsyncIterable[T]) -> AsyncIterator[T]:
        return self.throttle(source)

    def __repr__(self) -> str:
        return f"LosslessThrottle({self.config})"

    # --- scheduling ---

    def admit(self, payload: T) -> bool:
        """Count an arrival and apply ``filter_fn``; ``False`` means skip it."""
        self.stats.received += 1
        if self.filter_fn is not None and not self.filter_fn(payload):
            self.stats.filtered += 1
            return False
        return True

    def advance(self, queue: Queue, payload: T) -> Tuple[Queue, Optional[PlannedEmission[T]]]:
        """Fold one arrival through scheduler and executor.

        Returns the new queue and the emission to deliver, or ``None`` when the
        payload was dropped at capacity.
        """
        name = self.config.name
        scheduled = self.scheduler.schedule(queue, payload, self.clock.now_ms())
        result = execute_schedule(scheduled)
        emission = result.emission

        appended = 1 if emission is not None else 0
        pruned = len(queue) + appended - len(result.queue)
        depth = len(result.queue)
        self.stats.queue_depth = depth

        if pruned:
            self.stats.pruned += pruned
            emit_prune_event(name=name, pruned=pruned, queue_depth=depth)

        if emission is None:
            self.stats.dropped += 1
            logger.warning(
                "Throttle queue full; payload dropped",
                extra={"throttle": name, "max_buffer": self.config.max_buffer, "queue_depth": depth},
            )
            emit_drop_event(name=name, max_buffer=self.config.max_buffer, queue_depth=depth)
            return result.queue, None

        self.stats.scheduled += 1
        logger.debug(
            "Payload scheduled",
            extra={
                "throttle": name,
                "delay_ms": emission.delay_ms,
                "emit_time": emission.emit_time,
                "queue_depth": depth,
            },
        )
        emit_schedule_event(
            name=name,
            delay_ms=emission.delay_ms,
            emit_time=emission.emit_time,
            queue_depth=depth,
        )
        return result.queue, emission

    # --- orchestration ---

    async def _read_source(
        self,
        source: AsyncIterable[T],
        deliveries: "asyncio.Queue[Any]",
        failure: "asyncio.Future[BaseException]",
    ) -> None:
        loop = asyncio.get_running_loop()
        queue = self.scheduler.initial()
        iterator = source.__aiter__()
        try:
            async for payload in iterator:
                if not self.admit(payload):
                    continue
                queue, emission = self.advance(queue, payload)
                if emission is not None:
                    deliveries.put_nowait(_Delivery(emission=emission, queued_at=loop.time()))
        except Exception as exc:
            if not failure.done():
                failure.set_result(exc)
        else:
            deliveries.put_nowait(_COMPLETE)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def throttle(self, source: AsyncIterable[T]) -> AsyncIterator[T]:
        """Yield every accepted payload of ``source``, spaced by the schedule.

        Completion is delivered after every pending emission. An upstream
        error ends the stream at once: a delay in progress is interrupted,
        pending emissions are discarded, and the source's exception object is
        raised.
        """
        name = self.config.name
        loop = asyncio.get_running_loop()
        deliveries: asyncio.Queue[Any] = asyncio.Queue()
        failure: asyncio.Future[BaseException] = loop.create_future()
        reader = asyncio.create_task(
            self._read_source(source, deliveries, failure), name=f"lossless-throttle:{name}"
        )
        emit_lifecycle_event(name=name, state="start")
        outcome = "cancel"
        try:
            while True:
                item = await _unless_failed(deliveries.get(), failure)
                if item is _COMPLETE:
                    outcome = "complete"
                    return
                if item is not _FAILED and item.emission.delay_ms:
                    slept = await _unless_failed(self._sleep(item.emission.delay_seconds), failure)
                    if slept is _FAILED:
                        item = _FAILED
                if item is _FAILED:
                    outcome = "error"
                    raise failure.result()

                emission = item.emission
                self.stats.emitted += 1
                emit_delivery_event(
                    name=name,
                    delay_ms=emission.delay_ms,
                    waited_ms=(loop.time() - item.queued_at) * 1000,
                )
                yield emission.payload
        finally:
            if not reader.done():
                reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

            discarded = self.stats.pending
            self.stats.discarded += discarded
            if outcome == "complete":
                emit_lifecycle_event(name=name, state="complete", details=self.stats.to_dict())
            elif outcome == "error":
                error = failure.result()
                logger.info(
                    "Upstream error forwarded; pending emissions discarded",
                    extra={"throttle": name, "error": type(error).__name__, "discarded": discarded},
                )
                emit_lifecycle_event(
                    name=name,
                    state="error",
                    details={"error": type(error).__name__, "discarded": discarded},
                )
            else:
                logger.debug(
                    "Throttle cancelled; pending emissions discarded",
                    extra={"throttle": name, "discarded": discarded},
                )
                emit_lifecycle_event(name=name, state="cancel", details={"discarded": discarded})
            log_throttle_stats(self.stats, name=name)


def lossless_throttle(
    rate: Union[int, str],
    period: Union[int, str],
    filter_fn: Optional[FilterFn] = None,
    max_buffer: Optional[int] = None,
    *,
    name: Optional[str] = None,
    clock: Optional[Clock] = None,
    sleep: Optional[SleepFn] = None,
) -> LosslessThrottle[Any]:
    """Create a lossless throttle operator.

    Args:
        rate: Fastest rate at which payloads are emitted (ms or duration string)
        period: Window in which another arrival triggers throttling. Far larger
            than the typical gap between arrivals throttles everything; far
            smaller throttles nothing.
        filter_fn: Optional predicate applied before payloads enter the queue
        max_buffer: Optional hard limit on the queue to prevent unbounded
            memory growth; overflow payloads are discarded
        name: Label for logs and telemetry
        clock: Time source (defaults to the system clock)
        sleep: Awaitable used for delays (defaults to ``asyncio.sleep``)

    Returns:
        A callable mapping an async iterable to the throttled async iterator

    Raises:
        InvalidConfiguration: If rate, period, or max_buffer are not positive
    """
    return LosslessThrottle.from_options(
        rate,
        period,
        filter_fn=filter_fn,
        max_buffer=max_buffer,
        name=name,
        clock=clock,
        sleep=sleep,
    )
