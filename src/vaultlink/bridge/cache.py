"""Bounded per-session cache of recent agent messages."""

from __future__ import annotations

from collections import deque
from typing import Generic, TypeVar

from vaultlink.constants import CACHE_CAPACITY

T = TypeVar("T")


class MessageCache(Generic[T]):
    """FIFO buffer that evicts the oldest entry once *capacity* is reached."""

    def __init__(self, capacity: int = CACHE_CAPACITY) -> None:
        if capacity < 1:
            msg = f"Cache capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._items: deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def push(self, message: T) -> None:
        self._items.append(message)

    def snapshot(self) -> list[T]:
        """Return a copy in arrival order; mutating it leaves the cache intact."""
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
