"""
Bounded ring of recent timestamped items (the pipeline's photo buffer).
"""

import threading
from collections import deque
from typing import Generic, List, Optional, TypeVar

from .channel import TimestampedItem

T = TypeVar("T")


class RecentItemBuffer(Generic[T]):
    """Keeps the newest ``capacity`` items; the oldest is evicted on overflow.

    Readers take a snapshot copy so that correlation scans never hold the lock.
    """

    def __init__(self, capacity: int = 50):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._items = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self.evicted = 0

    def add(self, item: TimestampedItem[T]) -> None:
        with self._lock:
            if len(self._items) == self.capacity:
                self.evicted += 1
            self._items.append(item)

    def snapshot(self) -> List[TimestampedItem[T]]:
        with self._lock:
            return list(self._items)

    def latest(self) -> Optional[TimestampedItem[T]]:
        with self._lock:
            return self._items[-1] if self._items else None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
