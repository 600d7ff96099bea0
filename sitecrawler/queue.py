"""Thread-safe FIFO queues and a visited-URL set for the crawler."""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

from .text import hash_url, normalize_url

T = TypeVar("T")


class UrlQueue:
    """FIFO of URLs that accepts each URL (ignoring a trailing slash) only once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: deque[str] = deque()
        self._queued: set[str] = set()
        self._total = 0

    def enqueue(self, url: str) -> bool:
        """Append ``url`` unless it was queued before; return whether it was added."""
        key = hash_url(normalize_url(url))
        with self._lock:
            if key in self._queued:
                return False
            self._queued.add(key)
            self._items.append(url)
            self._total += 1
        return True

    def dequeue(self) -> str:
        """Remove and return the oldest URL; raise IndexError when empty."""
        with self._lock:
            if not self._items:
                raise IndexError("dequeue from an empty queue")
            return self._items.popleft()

    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def total_size(self) -> int:
        """Number of URLs ever accepted."""
        with self._lock:
            return self._total


class WorkQueue(Generic[T]):
    """FIFO of arbitrary items; dequeuing from an empty queue gives None."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: deque[T] = deque()
        self._total = 0

    def enqueue(self, item: T) -> None:
        with self._lock:
            self._items.append(item)
            self._total += 1

    def dequeue(self) -> T | None:
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def total_size(self) -> int:
        """Number of items ever enqueued."""
        with self._lock:
            return self._total


class VisitedSet:
    """Set of visited URLs, keyed by the hash of the normalised URL.

    ``len()`` reports how many times a URL was recorded as visited, which
    counts repeated ``mark`` calls for the same URL.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._count = 0

    @staticmethod
    def _key(url: str) -> str:
        return hash_url(normalize_url(url))

    def try_mark(self, url: str) -> bool:
        """Record ``url`` if it is new; return True only in that case."""
        key = self._key(url)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            self._count += 1
        return True

    def mark(self, url: str) -> None:
        """Record ``url`` as visited unconditionally."""
        key = self._key(url)
        with self._lock:
            self._seen.add(key)
            self._count += 1

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        key = self._key(url)
        with self._lock:
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            return self._count