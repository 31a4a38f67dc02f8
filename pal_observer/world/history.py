from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List

from pal_observer.world.types import ObserverEvent


class EventHistory:
    """
    Bounded, most-recent-first ring of emitted events.
    In-memory only; entries past capacity are dropped.
    """

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._events: Deque[ObserverEvent] = deque(maxlen=capacity)

    def push(self, event: ObserverEvent) -> None:
        with self._lock:
            self._events.appendleft(event)

    def recent(self, n: int) -> List[ObserverEvent]:
        if n <= 0:
            return []
        with self._lock:
            return list(self._events)[:n]

    def all(self) -> List[ObserverEvent]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
