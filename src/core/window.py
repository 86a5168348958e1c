"""Recent message context for cross-message reconstruction.

Two independent retention rules are kept side by side: a fixed-count sliding
window (newest first) and a time-bounded buffer (oldest first). Insertion is
synchronous, so arrival order is preserved without locking.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, List, Optional, Tuple

from core.config import WindowConfig
from core.errors import InsufficientHistory
from core.models import Message

WINDOW_SEPARATOR = "\n----------\n"

BufferListener = Callable[[Message, Message], None]
MessagePair = Tuple[Message, Message]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SlidingWindow:
    """The N most recent messages, newest first."""

    def __init__(self, size: int) -> None:
        self._items: Deque[Message] = deque(maxlen=size)

    def push(self, message: Message) -> None:
        self._items.appendleft(message)

    def __len__(self) -> int:
        return len(self._items)

    def messages(self) -> List[Message]:
        return list(self._items)


class TimeBuffer:
    """The M most recent messages no older than the trailing interval."""

    def __init__(self, size: int, max_age: timedelta) -> None:
        self._size = size
        self._max_age = max_age
        self._items: Deque[Message] = deque()

    def push(self, message: Message, now: datetime) -> None:
        self._items.append(message)
        if len(self._items) > self._size:
            self._items.popleft()
        while self._items and now - self._items[0].received_at > self._max_age:
            self._items.popleft()

    def __len__(self) -> int:
        return len(self._items)

    def messages(self) -> List[Message]:
        return list(self._items)


class WindowStore:
    """Owns both retention structures and notifies on buffer inserts."""

    def __init__(
        self,
        config: WindowConfig,
        clock: Callable[[], datetime] = _utc_now,
        on_buffer_insert: Optional[BufferListener] = None,
    ) -> None:
        self._window = SlidingWindow(config.size)
        self._buffer = TimeBuffer(config.buffer_size, timedelta(seconds=config.buffer_seconds))
        self._clock = clock
        self._listener = on_buffer_insert

    def set_buffer_listener(self, listener: Optional[BufferListener]) -> None:
        self._listener = listener

    def now(self) -> datetime:
        return self._clock()

    def on_message(self, message: Message) -> None:
        """Insert into both structures; fire the listener for >= 2 buffered."""

        self._window.push(message)
        self._buffer.push(message, self._clock())
        if self._listener is not None and len(self._buffer) >= 2:
            older, newer = self.buffered_pair()
            self._listener(older, newer)

    def recent_pair(self) -> MessagePair:
        """Return (newest, second newest) from the sliding window."""

        items = self._window.messages()
        if len(items) < 2:
            raise InsufficientHistory("sliding window holds fewer than 2 messages")
        return items[0], items[1]

    def buffered_pair(self) -> Tuple[Message, Message]:
        """Return (older, newer) for the two most recent buffered messages."""

        items = self._buffer.messages()
        if len(items) < 2:
            raise InsufficientHistory("time buffer holds fewer than 2 messages")
        return items[-2], items[-1]

    def full_window_text(self, separator: str = WINDOW_SEPARATOR) -> str:
        return separator.join(message.text for message in self._window.messages())

    def window_messages(self) -> List[Message]:
        return self._window.messages()

    def buffer_messages(self) -> List[Message]:
        return self._buffer.messages()

    def __len__(self) -> int:
        return len(self._window)
