"""
Addressable subscriber registry keyed by user id.

Whatever delivers events to a live client (a websocket, a push channel)
subscribes a callback for its user; services call ``notify`` without knowing
who, if anyone, is listening.
"""
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

Event = Dict[str, Any]
Subscriber = Callable[[Event], Awaitable[None]]


class SubscriberRegistry:
    def __init__(self):
        self._subscribers: Dict[int, List[Subscriber]] = defaultdict(list)

    def subscribe(self, user_id: int, callback: Subscriber):
        self._subscribers[user_id].append(callback)

    def unsubscribe(self, user_id: int, callback: Subscriber):
        callbacks = self._subscribers.get(user_id)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            return
        if not callbacks:
            del self._subscribers[user_id]

    def subscribers(self, user_id: int) -> List[Subscriber]:
        return list(self._subscribers.get(user_id, ()))

    async def notify(self, user_id: int, event: Event) -> int:
        """Deliver ``event`` to every subscriber of ``user_id``; returns deliveries."""
        delivered = 0
        for callback in self.subscribers(user_id):
            try:
                await callback(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Subscriber failed",
                    extra={"user_id": user_id, "event_type": event.get("type")},
                )
        return delivered

    def clear(self):
        self._subscribers.clear()


registry = SubscriberRegistry()


async def notify(user_id: int, event: Event) -> int:
    return await registry.notify(user_id, event)
