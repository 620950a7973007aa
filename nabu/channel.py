"""A bounded, closable, thread-safe queue with non-blocking sends."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Deque, Iterator, Optional


class ChannelClosed(Exception):
    """Raised on sending to a closed channel or reading a closed, drained one."""


class Channel:
    """A FIFO of bounded capacity that readers can wait on until it is closed."""

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError(f"channel capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._items: Deque[Any] = deque()
        self._cond = threading.Condition()
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    def send(self, item: Any, replace_oldest: bool = False) -> bool:
        """Queue item without blocking.

        When the channel is full the item is dropped (returning False), or,
        with replace_oldest, the oldest queued item is dropped instead.
        """
        with self._cond:
            if self._closed:
                raise ChannelClosed("send on closed channel")
            if len(self._items) >= self._capacity:
                if not replace_oldest:
                    return False
                self._items.popleft()
            self._items.append(item)
            self._cond.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Any:
        """Wait for and return the next item.

        Raises ChannelClosed once the channel is closed and empty, and
        TimeoutError if nothing arrives within timeout seconds.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._items or self._closed, timeout)
            if self._items:
                return self._items.popleft()
            if self._closed:
                raise ChannelClosed("channel closed")
            raise TimeoutError("no item received before timeout")

    def close(self) -> None:
        """Close the channel; queued items can still be read."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return