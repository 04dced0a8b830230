"""
Bounded append-only logs with first-in first-out eviction.

Used for the monitor's realtime metric log, alert log and session history so
their memory use stays fixed no matter how long a process keeps probing.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

__all__ = ["BoundedLog"]

ItemT = TypeVar("ItemT")


class BoundedLog(Generic[ItemT]):
    """
    Fixed-capacity log that evicts its oldest entries once full.

    Example:
    ::
        log = BoundedLog[int](capacity=2)
        log.extend([1, 2, 3])
        assert log.items() == [2, 3]
        assert log.evicted == 1
    """

    def __init__(self, capacity: int, items: Iterable[ItemT] | None = None):
        """
        :param capacity: Maximum number of retained entries, must be positive
        :param items: Optional initial entries, oldest first
        :raises ValueError: If capacity is not positive
        """
        if capacity < 1:
            raise ValueError(f"capacity must be a positive integer, got {capacity}")

        self.capacity = capacity
        self.evicted = 0
        self._items: deque[ItemT] = deque(maxlen=capacity)
        if items is not None:
            self.extend(items)

    def append(self, item: ItemT) -> ItemT:
        """
        Append an entry, evicting the oldest one if the log is full.

        :param item: Entry to append
        :return: The appended entry
        """
        if len(self._items) == self.capacity:
            self.evicted += 1
        self._items.append(item)

        return item

    def extend(self, items: Iterable[ItemT]):
        for item in items:
            self.append(item)

    def clear(self):
        self._items.clear()
        self.evicted = 0

    def items(self) -> list[ItemT]:
        """
        :return: A copy of the retained entries, oldest first
        """
        return list(self._items)

    def latest(self) -> ItemT | None:
        return self._items[-1] if self._items else None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ItemT]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)
