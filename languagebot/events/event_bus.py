"""Async fan-out channel used by the ports to deliver events to the controller."""

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

_DEFAULT_QUEUE_SIZE = 256

T = TypeVar("T")


class EventBus(Generic[T]):
    """Fan-out event channel backed by asyncio.Queue.

    Every subscriber owns a queue and sees events in emission order.
    A full subscriber queue drops the event for that subscriber only,
    with a warning, so a stalled consumer never blocks a port.

    Subscription bookkeeping is synchronous: all callers share one event
    loop, so ``end_session`` can detach from a port without awaiting.
    """

    def __init__(self, maxsize: int = _DEFAULT_QUEUE_SIZE) -> None:
        self._subscribers: list[asyncio.Queue[T]] = []
        self._maxsize = maxsize

    def publish(self, event: T) -> int:
        """Push *event* to every subscriber queue; return how many accepted it."""
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Subscriber queue full — dropping %s for one subscriber",
                    type(event).__name__,
                )
        return delivered

    async def emit(self, event: T) -> None:
        """Awaitable form of :meth:`publish` for use inside coroutines."""
        self.publish(event)

    def subscribe(self, queue: asyncio.Queue | None = None) -> asyncio.Queue:
        """Register and return a subscriber queue.

        Passing an existing *queue* lets one consumer multiplex several
        buses through a single inbox while keeping arrival order.
        """
        if queue is None:
            queue = asyncio.Queue(maxsize=self._maxsize)
        if queue in self._subscribers:
            return queue
        self._subscribers.append(queue)
        logger.debug("New subscriber added (total: %d)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Remove a subscriber queue.  No-op if the queue is not registered."""
        try:
            self._subscribers.remove(queue)
        except ValueError:
            logger.debug("Attempted to unsubscribe an unknown queue — ignoring")
            return
        logger.debug("Subscriber removed (remaining: %d)", len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        """Return the current number of active subscribers."""
        return len(self._subscribers)
