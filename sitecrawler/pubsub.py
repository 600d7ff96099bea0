"""Topic-based publish/subscribe with bounded, closable subscriptions."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")

log = logging.getLogger(__name__)

DEFAULT_BUFFER = 10


class SubscriptionClosed(Exception):
    """Raised by ``Subscription.get`` once the subscription is closed and drained."""


class Subscription(Generic[T]):
    """Receiving end of a topic with room for ``buffer`` pending messages.

    With a buffer of zero a message is only accepted while a reader is
    waiting in ``get``.
    """

    def __init__(self, topic: str, buffer: int = DEFAULT_BUFFER) -> None:
        self.topic = topic
        self.buffer = max(0, buffer)
        self._items: deque[T] = deque()
        self._cond = threading.Condition()
        self._waiting = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def _offer(self, message: T) -> bool:
        """Queue ``message`` without blocking; return False if there is no room."""
        with self._cond:
            if self._closed or len(self._items) >= max(self.buffer, self._waiting):
                return False
            self._items.append(message)
            self._cond.notify()
            return True

    def get(self, timeout: float | None = None) -> T:
        """Return the next message, waiting up to ``timeout`` seconds.

        Raises TimeoutError when nothing arrives in time and SubscriptionClosed
        when the subscription is closed and no messages remain.
        """
        with self._cond:
            self._waiting += 1
            try:
                ready = self._cond.wait_for(lambda: self._items or self._closed, timeout)
            finally:
                self._waiting -= 1
            if self._items:
                return self._items.popleft()
            if not ready:
                raise TimeoutError(f"no message on topic {self.topic!r}")
            raise SubscriptionClosed(self.topic)

    def close(self) -> None:
        """Stop accepting messages; readers drain what is left and then stop."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except SubscriptionClosed:
                return


class PubSub(Generic[T]):
    """Dispatches published messages to every subscription of a topic."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription[T]]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def subscribe(self, topic: str, buffer: int = DEFAULT_BUFFER) -> Subscription[T]:
        sub: Subscription[T] = Subscription(topic, buffer)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(sub)
        return sub

    def publish(self, topic: str, message: T) -> int:
        """Offer ``message`` to every subscriber of ``topic`` without blocking.

        Subscribers with no room miss the message. Returns how many received it.
        """
        with self._lock:
            if self._closed:
                log.warning("tried to publish to closed pubsub")
                return 0
            subscribers = list(self._subscribers.get(topic, ()))
        delivered = 0
        for sub in subscribers:
            if sub._offer(message):
                delivered += 1
            else:
                log.warning("could not send message on %r: subscriber full or closed", topic)
        return delivered

    def unsubscribe(self, topic: str, subscription: Subscription[T]) -> None:
        """Close ``subscription`` and remove it from ``topic``."""
        with self._lock:
            subs = self._subscribers.get(topic, [])
            for index, sub in enumerate(subs):
                if sub is subscription:
                    del subs[index]
                    sub.close()
                    break

    def shutdown(self) -> None:
        """Close every subscription and refuse further publishing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for subs in self._subscribers.values():
                for sub in subs:
                    sub.close()
            self._subscribers = {}