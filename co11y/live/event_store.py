"""In-memory ring buffer of recent hook events."""
from __future__ import annotations

import threading
from collections import deque
from typing import Any


class EventStore:
    """Fixed-capacity FIFO of hook events; the oldest is evicted first.

    Process-lifetime only: nothing is persisted across restarts.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("EventStore capacity must be at least 1")
        self.capacity = capacity
        self._events: deque[dict[str, Any]] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def add_event(self, event: dict[str, Any]) -> None:
        with self._lock:
            self._events.append(event)

    def get_events(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
