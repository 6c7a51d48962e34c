"""Thread-safe FIFO between the receive thread and the update loop.

Example:
    >>> from nvlink.inbox import Inbox
    >>> inbox = Inbox()
    >>> inbox.enqueue(msg)      # receive thread
    >>> inbox.drain_all()       # update loop
    [msg]
    >>> inbox.drain_all()
    []
"""

import collections
import threading

from nvlink.protocol import Message


class Inbox:
    """Lock-protected message queue, drained in arrival order.

    Unbounded by default.  With *maxlen* set, a full inbox drops its
    oldest message to make room and counts the drop.

    Args:
        maxlen: Optional capacity; ``None`` means unbounded.
    """

    def __init__(self, maxlen: int | None = None):
        """Initialize an empty inbox."""
        if maxlen is not None and maxlen < 1:
            raise ValueError("maxlen must be >= 1, got %d" % maxlen)
        self._maxlen = maxlen
        self._messages: collections.deque[Message] = collections.deque()
        self._lock = threading.Lock()
        self.dropped = 0

    def enqueue(self, message: Message) -> None:
        """Append *message*; called from the receive thread."""
        with self._lock:
            if self._maxlen is not None and len(self._messages) >= self._maxlen:
                self._messages.popleft()
                self.dropped += 1
            self._messages.append(message)

    def drain_all(self) -> list[Message]:
        """Remove and return every queued message, oldest first."""
        with self._lock:
            if not self._messages:
                return []
            messages = self._messages
            self._messages = collections.deque()
        return list(messages)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
