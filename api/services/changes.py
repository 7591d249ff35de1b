"""In-process fan-out of note change events to open change streams."""

import asyncio
from collections import defaultdict

import structlog

from ..models import ChangeEvent

logger = structlog.get_logger(__name__)


class ChangeBroker:
    """Per-owner publish/subscribe of note changes.

    Each open stream gets its own bounded queue. Delivery is best effort: a
    stream whose queue is full misses the event, which is harmless because
    clients reload the whole collection on any event.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, owner: str) -> asyncio.Queue:
        """Open a queue receiving every change to ``owner``'s notes."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers[owner].add(queue)
        logger.debug("change_stream_subscribed", owner=owner, streams=len(self._subscribers[owner]))
        return queue

    def unsubscribe(self, owner: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(owner)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[owner]
        logger.debug("change_stream_unsubscribed", owner=owner)

    def publish(self, owner: str, event: ChangeEvent) -> int:
        """Push ``event`` to every stream of ``owner``.

        Returns:
            Number of streams the event was delivered to
        """
        delivered = 0
        for queue in list(self._subscribers.get(owner, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("change_event_dropped", owner=owner, event_type=event.type)
        logger.debug(
            "change_event_published", owner=owner, event_type=event.type, streams=delivered
        )
        return delivered

    def stream_count(self, owner: str | None = None) -> int:
        if owner is not None:
            return len(self._subscribers.get(owner, ()))
        return sum(len(queues) for queues in self._subscribers.values())


# Shared broker for the running application
change_broker = ChangeBroker()
