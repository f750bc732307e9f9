# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Thread-safe bounded buffer of recent stream messages."""

from __future__ import annotations

import collections
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dockline.types import StreamMessage


class MessageBuffer:
    """Bounded FIFO of decoded messages for a background monitor.

    When full, the oldest message is evicted and ``overflow`` is set.
    Thread-safe via threading.Lock, so the sync facade can drain it from
    the caller's thread while the event loop thread appends.
    """

    def __init__(self, capacity: int = 1000) -> None:
        self._capacity = max(capacity, 1)
        self._lock = threading.Lock()
        self._messages: collections.deque[StreamMessage] = collections.deque()
        self._overflow = False
        self._total = 0

    def write(self, message: StreamMessage) -> None:
        """Append a message, evicting the oldest if at capacity."""
        with self._lock:
            if len(self._messages) >= self._capacity:
                self._messages.popleft()
                self._overflow = True
            self._messages.append(message)
            self._total += 1

    def read(self) -> list[StreamMessage]:
        """Drain and return all buffered messages, oldest first."""
        with self._lock:
            drained = list(self._messages)
            self._messages.clear()
            return drained

    def peek(self) -> list[StreamMessage]:
        """Return buffered messages without draining."""
        with self._lock:
            return list(self._messages)

    @property
    def size(self) -> int:
        """Messages currently buffered."""
        with self._lock:
            return len(self._messages)

    @property
    def total(self) -> int:
        """Messages written since creation, including evicted and drained ones."""
        with self._lock:
            return self._total

    @property
    def overflow(self) -> bool:
        """True if any message was evicted due to capacity."""
        with self._lock:
            return self._overflow
