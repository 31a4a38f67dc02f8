from __future__ import annotations

import threading

from pal_observer.world.types import WorldState


class WorldStateStore:
    """
    Holds the single current WorldState.
      - get() hands out the current frozen instance
      - replace() swaps the whole record; there is no field-level setter
    """

    def __init__(self, initial: WorldState | None = None) -> None:
        self._lock = threading.Lock()
        self._state = initial or WorldState()

    def get(self) -> WorldState:
        with self._lock:
            return self._state

    def replace(self, new_state: WorldState) -> WorldState:
        if not isinstance(new_state, WorldState):
            raise TypeError(f"expected WorldState, got {type(new_state).__name__}")
        with self._lock:
            self._state = new_state
            return self._state
