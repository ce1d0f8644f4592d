"""Event bus for fanning out run events to any number of listeners."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

from hotswap.events.types import Event, EventType

logger = logging.getLogger(__name__)

# Progress fires once per transfer chunk; a stalled reader keeps only the latest events
DEFAULT_QUEUE_SIZE: Final = 256


@dataclass
class _Subscription:
    queue: asyncio.Queue[Event]
    run_id: str | None
    dropped: int = 0

    def wants(self, event: Event) -> bool:
        return self.run_id is None or event.run_id == self.run_id

    def offer(self, event: Event) -> None:
        """Enqueue without blocking the publisher, evicting the oldest event when full."""
        while True:
            try:
                self.queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()
                self.dropped += 1


class EventBus:
    """Broadcasts run events to queue subscribers and callbacks.

    Queues are bounded: a run never waits on a slow consumer. When a queue is
    full the oldest event is dropped, so a reader that falls behind still
    ends up with the most recent progress and the terminal state change.
    Callbacks run inline, in registration order.
    """

    def __init__(self, max_queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._max_queue_size = max_queue_size
        self._subscriptions: dict[str, _Subscription] = {}
        self._callbacks: list[Callable[[Event], Any]] = []

    def subscribe(self, subscriber_id: str, run_id: str | None = None) -> asyncio.Queue[Event]:
        """Register a queue subscriber.

        Args:
            subscriber_id: Unique ID for this subscriber; re-subscribing replaces the queue.
            run_id: Only deliver events for this run. None receives everything.
        """
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscriptions[subscriber_id] = _Subscription(queue=queue, run_id=run_id)
        logger.debug(f"Subscriber {subscriber_id} connected")
        return queue

    def unsubscribe(self, subscriber_id: str) -> None:
        subscription = self._subscriptions.pop(subscriber_id, None)
        if subscription is not None:
            logger.debug(f"Subscriber {subscriber_id} disconnected ({subscription.dropped} events dropped)")

    def dropped(self, subscriber_id: str) -> int:
        """Number of events evicted from a subscriber's queue so far."""
        subscription = self._subscriptions.get(subscriber_id)
        return subscription.dropped if subscription is not None else 0

    def add_callback(self, callback: Callable[[Event], Any]) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[Event], Any]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def publish(self, event: Event) -> None:
        """Deliver ``event``. A failing listener is logged and skipped, never raised."""
        for subscription in list(self._subscriptions.values()):
            if subscription.wants(event):
                subscription.offer(event)

        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Event callback {getattr(callback, '__name__', callback)!r} failed: {e}")

    async def emit(
        self,
        event_type: EventType,
        data: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> Event:
        """Create and publish an event.

        Returns:
            The published event
        """
        event = Event(type=event_type, data=data or {}, run_id=run_id)
        await self.publish(event)
        return event

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
