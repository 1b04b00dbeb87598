"""Bounded buffer with drop-oldest eviction, and a notification throttle."""

import time
from collections import deque


class DropOldestBuffer:
    """FIFO holding at most ``capacity`` items; a push at capacity evicts the oldest."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._items: deque = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def push(self, item):
        """Append ``item``. Returns the evicted item, or None."""
        evicted = None
        if len(self._items) >= self._capacity:
            evicted = self._items.popleft()
        self._items.append(item)
        return evicted

    def pop(self):
        """Remove and return the oldest item. Raises IndexError when empty."""
        return self._items.popleft()

    def clear(self) -> int:
        """Drop everything. Returns how many items were discarded."""
        count = len(self._items)
        self._items.clear()
        return count

    def snapshot(self) -> list:
        return list(self._items)


class Throttle:
    """Lets an event through at most once per ``interval`` seconds."""

    def __init__(self, interval: float, time_func=None):
        self._interval = interval
        self._time_func = time_func or time.monotonic
        self._last: float | None = None
        self.suppressed = 0

    def ready(self) -> bool:
        now = self._time_func()
        if self._last is None or now - self._last >= self._interval:
            self._last = now
            return True
        self.suppressed += 1
        return False

    def force(self):
        """Mark an event as emitted now regardless of the interval."""
        self._last = self._time_func()

    def reset(self):
        self._last = None
