from __future__ import annotations

from pal_observer.push.hub import BroadcastHub
from pal_observer.world.history import EventHistory
from pal_observer.world.types import ObserverEvent


class EventEmitter:
    """Every emitted event goes into history first, then out to subscribers."""

    def __init__(self, history: EventHistory, hub: BroadcastHub) -> None:
        self.history = history
        self.hub = hub

    def emit(self, event: ObserverEvent) -> int:
        self.history.push(event)
        return self.hub.publish(event.to_message())

    __call__ = emit
