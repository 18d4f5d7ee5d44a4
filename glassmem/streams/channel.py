"""
Timestamping broadcast channel over a single async producer.

The channel reads the producer on its own task and copies each item, stamped with
its capture time, into one private queue per subscriber. Slow subscribers never
block the producer or each other.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, Generic, List, Optional, TypeVar

from util.logging import emit_event

from ..core.config import CHANNEL_BUFFER_SIZE, CHANNEL_STATS_INTERVAL
from ..core.errors import AlreadyAttached

T = TypeVar("T")


@dataclass(frozen=True)
class TimestampedItem(Generic[T]):
    """A payload paired with the instant it was observed."""

    payload: T
    """Original producer item, never modified"""

    captured_at: datetime
    """Capture time assigned by the channel"""

    @property
    def timestamp_ms(self) -> int:
        """Milliseconds since the epoch."""
        return int(self.captured_at.timestamp() * 1000)

    def distance_to(self, reference: datetime) -> timedelta:
        return abs(self.captured_at - reference)

    def is_within_window(self, reference: datetime, window: timedelta) -> bool:
        return self.distance_to(reference) <= window


class _End:
    """Terminal queue marker; carries the producer error, if any."""

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error


class Subscription(Generic[T]):
    """Consumer handle: an async iterator over items published after subscribing.

    Iteration ends when the channel detaches or the producer finishes. A producer
    error is raised from the iterator once all earlier items have been delivered.
    """

    def __init__(self, channel: "TimestampedChannel", maxsize: int = 0):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._maxsize = maxsize
        self._ended = False
        self._exhausted = False
        self.dropped = 0
        self.delivered = 0

    def _push(self, item: TimestampedItem) -> None:
        if self._ended:
            return
        if self._maxsize > 0 and self._queue.qsize() >= self._maxsize:
            # Drop-oldest keeps a lagging consumer close to real time
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    def _finish(self, error: Optional[BaseException] = None) -> None:
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(_End(error))

    @property
    def pending(self) -> int:
        """Items queued but not yet consumed."""
        marker = 1 if self._ended and not self._exhausted else 0
        return self._queue.qsize() - marker

    @property
    def closed(self) -> bool:
        return self._ended

    def cancel(self) -> None:
        """Stop receiving. Anything still queued is discarded and iteration ends."""
        self._channel._unsubscribe(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._ended = True
        self._queue.put_nowait(_End())

    async def get(self) -> Optional[TimestampedItem[T]]:
        """Next item, or None once the subscription has ended."""
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            return None

    def __aiter__(self) -> AsyncIterator[TimestampedItem[T]]:
        return self

    async def __anext__(self) -> TimestampedItem[T]:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if isinstance(item, _End):
            self._exhausted = True
            if item.error is not None:
                raise item.error
            raise StopAsyncIteration
        self.delivered += 1
        return item


class TimestampedChannel(Generic[T]):
    """Observe one producer stream and fan timestamped copies out to subscribers."""

    def __init__(self, name: str = "channel", clock: Callable[[], datetime] = None,
                 max_buffer: int = None, sink: Any = None, stats_interval: int = None):
        self.name = name
        self.clock = clock or datetime.now
        self.max_buffer = CHANNEL_BUFFER_SIZE if max_buffer is None else max_buffer
        self.sink = sink
        self.stats_interval = CHANNEL_STATS_INTERVAL if stats_interval is None else stats_interval

        self._subscribers: List[Subscription[T]] = []
        self._attached = False
        self._pump: Optional[asyncio.Task] = None

        self._total_items = 0
        self._total_bytes = 0
        self._dropped_detached = 0

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def attach(self, producer: AsyncIterable[T]) -> None:
        """Start consuming ``producer`` on a background task of the running loop."""
        if self._attached:
            raise AlreadyAttached(self.name)

        loop = asyncio.get_running_loop()
        self._attached = True
        self._pump = loop.create_task(self._run(producer), name=f"channel-{self.name}")
        emit_event(self.sink, "channel.attached", channel=self.name,
                   subscribers=len(self._subscribers))

    def detach(self) -> None:
        """Stop consuming the producer. Safe to call when not attached."""
        if not self._attached:
            return

        self._attached = False
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()
        self._close_subscribers()
        emit_event(self.sink, "channel.detached", channel=self.name, items=self._total_items)

    def subscribe(self) -> Subscription[T]:
        """Register a consumer. It sees only items published from now on."""
        subscription = Subscription(self, maxsize=self.max_buffer)
        self._subscribers.append(subscription)
        emit_event(self.sink, "channel.subscribed", channel=self.name,
                   subscribers=len(self._subscribers))
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            self._dropped_detached += subscription.dropped

    def publish(self, payload: T) -> Optional[TimestampedItem[T]]:
        """Stamp ``payload`` and enqueue it for every subscriber. Never blocks.

        Returns None (and publishes nothing) while the channel is detached.
        """
        if not self._attached:
            return None

        item = TimestampedItem(payload=payload, captured_at=self.clock())
        for subscription in list(self._subscribers):
            subscription._push(item)

        self._total_items += 1
        try:
            self._total_bytes += len(payload)
        except TypeError:
            pass

        if self.stats_interval and self._total_items % self.stats_interval == 0:
            emit_event(self.sink, "channel.statistics", **self.statistics)
        return item

    async def _run(self, producer: AsyncIterable[T]) -> None:
        try:
            async for payload in producer:
                if not self._attached:
                    break
                self.publish(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Forward the failure to every subscriber as a terminal event
            emit_event(self.sink, "channel.producer_error", "failed",
                       channel=self.name, error=str(e))
            self._attached = False
            self._close_subscribers(error=e)
            return

        if self._attached:
            self._attached = False
            self._close_subscribers()
            emit_event(self.sink, "channel.completed", channel=self.name, items=self._total_items)

    def _close_subscribers(self, error: Optional[BaseException] = None) -> None:
        for subscription in self._subscribers:
            subscription._finish(error)
            self._dropped_detached += subscription.dropped
        self._subscribers = []

    async def wait_closed(self) -> None:
        """Wait until the producer task has finished."""
        if self._pump is not None:
            await asyncio.gather(self._pump, return_exceptions=True)

    async def tap(self, source: AsyncIterable[T]) -> AsyncIterator[T]:
        """Pass ``source`` through unchanged while publishing timestamped copies.

        The caller keeps driving the original stream; the channel only observes.
        """
        if self._attached:
            raise AlreadyAttached(self.name)

        self._attached = True
        emit_event(self.sink, "channel.attached", channel=self.name, mode="tap")
        try:
            async for payload in source:
                if self._attached:
                    self.publish(payload)
                yield payload
        finally:
            if self._attached:
                self._attached = False
                self._close_subscribers()
                emit_event(self.sink, "channel.completed", channel=self.name,
                           items=self._total_items)

    @property
    def statistics(self) -> Dict[str, Any]:
        return {
            "channel": self.name,
            "items": self._total_items,
            "bytes": self._total_bytes,
            "subscribers": len(self._subscribers),
            "dropped": self._dropped_detached + sum(s.dropped for s in self._subscribers),
            "attached": self._attached,
        }
