import asyncio
import logging
from typing import Dict, List, Optional

from .events import OrchestrationEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


def project_topic(project_id: str) -> str:
    return f"project:{project_id}"


class Subscription:
    """One subscriber's FIFO view of a topic. Iterate it, or drain() what is queued."""

    def __init__(self, bus: "TopicBus", topic: str, maxsize: int):
        self.bus = bus
        self.topic = topic
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def offer(self, event: OrchestrationEvent) -> bool:
        if self.closed:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Subscriber queue full on {self.topic}; dropping {event.type} event")
            return False
        return True

    async def get(self, timeout: Optional[float] = None) -> Optional[OrchestrationEvent]:
        """Next event, or None once the subscription is closed (or the timeout lapses)."""
        if self.closed and self.queue.empty():
            return None
        try:
            item = await asyncio.wait_for(self.queue.get(), timeout) if timeout else await self.queue.get()
        except asyncio.TimeoutError:
            return None
        return None if item is _CLOSED else item

    def drain(self) -> List[OrchestrationEvent]:
        items = []
        while not self.queue.empty():
            item = self.queue.get_nowait()
            if item is not _CLOSED:
                items.append(item)
        return items

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.bus._remove(self)
        try:
            self.queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Reader is not blocked on a full queue; it sees `closed` once drained.
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> OrchestrationEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class TopicBus:
    """
    In-memory publish/subscribe keyed by topic name.

    Delivery is at-most-once per publish to the subscribers present at that moment;
    nothing is buffered for late subscribers.
    """

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, topic: str) -> Subscription:
        sub = Subscription(self, topic, self.queue_size)
        self._subscribers.setdefault(topic, []).append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.topic, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, event: OrchestrationEvent) -> int:
        delivered = 0
        for sub in list(self._subscribers.get(topic, [])):
            if sub.offer(event):
                delivered += 1
        return delivered

    def subscribe_project(self, project_id: str) -> Subscription:
        return self.subscribe(project_topic(project_id))

    def emit(self, project_id: str, event: OrchestrationEvent) -> None:
        """Event sink used by the orchestrator and tool executor."""
        delivered = self.publish(project_topic(project_id), event)
        logger.debug(f"Emitted {event.type} to {delivered} subscriber(s)")
