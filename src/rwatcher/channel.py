"""Closable in-memory channel used for the public event and error streams."""

import queue
import threading
import time
from collections import deque
from typing import Any, Deque, Iterator, Optional

from .exceptions import ChannelClosedError


class Channel:
    """
    Thread-safe FIFO with an optional capacity and a one-way close.

    Features:
    - Unbuffered mode (capacity 0): ``put`` returns only once a reader
      has taken the item
    - Buffered mode: ``put`` blocks while ``capacity`` items are waiting
    - Items still buffered at close time remain readable
    - Iteration ends once the channel is closed and drained
    """

    def __init__(self, capacity: int = 0):
        """
        Initialize the channel.

        Args:
            capacity: Number of items that can wait unread (0 = unbuffered)
        """
        if capacity < 0:
            raise ValueError(f"capacity must not be negative: {capacity}")

        self.capacity = capacity
        self._items: Deque[Any] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._put_count = 0
        self._get_count = 0

    def put(self, item: Any, timeout: Optional[float] = None) -> None:
        """
        Send an item, blocking while the channel is full.

        Args:
            item: Item to send
            timeout: Maximum seconds to block (None waits forever)

        Raises:
            queue.Full: If the item could not be delivered in time
            ChannelClosedError: If the channel is closed
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        limit = max(self.capacity, 1)

        with self._cond:
            if self._closed:
                raise ChannelClosedError("Channel is closed")

            if not self._cond.wait_for(
                lambda: self._closed or len(self._items) < limit,
                self._remaining(deadline),
            ):
                raise queue.Full
            if self._closed:
                raise ChannelClosedError("Channel is closed")

            self._items.append(item)
            self._put_count += 1
            ticket = self._put_count
            self._cond.notify_all()

            if self.capacity:
                return

            # Rendezvous: hand-off completes when a reader takes the item
            taken = self._cond.wait_for(
                lambda: self._get_count >= ticket or self._closed,
                self._remaining(deadline),
            )
            if not taken:
                self._items.pop()
                self._put_count -= 1
                self._cond.notify_all()
                raise queue.Full

    def get(self, timeout: Optional[float] = None) -> Any:
        """
        Receive the next item.

        Args:
            timeout: Maximum seconds to block (None waits forever)

        Returns:
            The oldest unread item

        Raises:
            queue.Empty: If nothing arrived in time
            ChannelClosedError: If the channel is closed and drained
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                raise queue.Empty
            if not self._items:
                raise ChannelClosedError("Channel is closed")

            item = self._items.popleft()
            self._get_count += 1
            self._cond.notify_all()
            return item

    def get_nowait(self) -> Any:
        """Receive the next item without blocking."""
        return self.get(timeout=0)

    def close(self) -> None:
        """Close the channel. Closing twice is a no-op."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        """Check if the channel has been closed."""
        return self._closed

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.get()
            except ChannelClosedError:
                return

    def __len__(self) -> int:
        """Return the number of unread items."""
        with self._cond:
            return len(self._items)
