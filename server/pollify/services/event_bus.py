"""In-memory pub/sub for live poll updates over SSE.

One bus per process. Channels are keyed by poll slug. Subscribers are
asyncio.Queue instances bound to the event loop that created them; sync
request handlers run in the threadpool, so publishing hands messages to
that loop with ``call_soon_threadsafe``.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)

QUEUE_MAXSIZE = 64

Message = dict[str, Any]


class EventBus:
    """Process-local pub/sub for broadcasting poll events to SSE subscribers."""

    def __init__(self) -> None:
        self._channels: dict[str, set[asyncio.Queue[Message]]] = defaultdict(set)
        self._loops: dict[asyncio.Queue[Message], asyncio.AbstractEventLoop | None] = {}

    def subscribe(self, slug: str) -> asyncio.Queue[Message]:
        """Subscribe to events for a poll. Returns a Queue to read from."""
        queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=QUEUE_MAXSIZE)
        try:
            self._loops[queue] = asyncio.get_running_loop()
        except RuntimeError:
            self._loops[queue] = None
        self._channels[slug].add(queue)
        logger.debug("SSE subscriber added for %s (total: %d)", slug, len(self._channels[slug]))
        return queue

    def unsubscribe(self, slug: str, queue: asyncio.Queue[Message]) -> None:
        """Remove a subscriber."""
        self._loops.pop(queue, None)
        subscribers = self._channels.get(slug)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._channels[slug]

    def publish(self, slug: str, event_type: str, data: dict[str, Any] | None = None) -> None:
        """Publish an event to all subscribers of a poll.

        Non-blocking: drops messages for full queues (slow consumers).
        """
        message = {"event": event_type, "data": data or {}}
        for queue in list(self._channels.get(slug, ())):
            loop = self._loops.get(queue)
            if loop is None or _running_loop() is loop:
                self._deliver(slug, queue, message)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(self._deliver, slug, queue, message)

    @staticmethod
    def _deliver(slug: str, queue: asyncio.Queue[Message], message: Message) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("SSE queue full for %s, dropping %s event", slug, message["event"])

    def subscriber_count(self, slug: str) -> int:
        """Return the number of active subscribers for a poll."""
        return len(self._channels.get(slug, ()))


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


_bus = EventBus()


def get_event_bus() -> EventBus:
    """Get the singleton event bus instance."""
    return _bus


def publish_event(slug: str, event_type: str, data: dict[str, Any] | None = None) -> None:
    """Publish an event on the singleton bus."""
    _bus.publish(slug, event_type, data)
