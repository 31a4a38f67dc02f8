from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from pal_observer.world.history import EventHistory
from pal_observer.world.state import WorldStateStore
from pal_observer.world.types import GREETING, utc_now_iso

logger = logging.getLogger(__name__)

GREETING_MESSAGE = "PAL-E Observer connected"

# (message type, serialized JSON)
Outbound = Tuple[str, str]
Send = Callable[[str], Awaitable[Any]]


class Subscriber:
    """
    One push connection. Messages are queued (bounded) and written by
    pump(), so a slow connection never blocks publish().
    """

    def __init__(self, send: Optional[Send] = None, *, backlog: int = 100, name: str = "subscriber") -> None:
        self.name = name
        self._send = send
        self._queue: asyncio.Queue[Optional[Outbound]] = asyncio.Queue(maxsize=max(1, backlog))
        self._open = True

    def __repr__(self) -> str:
        return f"Subscriber({self.name!r}, open={self._open})"

    @property
    def is_open(self) -> bool:
        return self._open

    def offer(self, item: Outbound) -> bool:
        if not self._open:
            return False
        try:
            self._queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            return False

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        # wake stream()/pump(); queued messages are dropped
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def drain_nowait(self) -> List[Outbound]:
        out: List[Outbound] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                out.append(item)
        return out

    async def stream(self) -> AsyncIterator[Outbound]:
        while self._open:
            item = await self._queue.get()
            if item is None:
                return
            yield item

    async def pump(self) -> None:
        if self._send is None:
            raise RuntimeError("subscriber has no transport")
        async for _, payload in self.stream():
            try:
                await self._send(payload)
            except Exception as e:
                logger.warning("Send to %s failed: %s", self.name, e)
                self.close()
                return


class BroadcastHub:
    """
    Set of live push subscribers.
      - subscribe(): register + queue greeting (current state, recent history)
      - publish(): fan out to every open subscriber, never awaits a send
      - unsubscribe(): idempotent removal
    """

    def __init__(self, state: WorldStateStore, history: EventHistory, *, greeting_events: int = 10) -> None:
        self.state = state
        self.history = history
        self.greeting_events = greeting_events
        self._lock = threading.Lock()
        self._subscribers: Set[Subscriber] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribers(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers)

    def greeting(self) -> Dict[str, Any]:
        return {
            "type": GREETING,
            "message": GREETING_MESSAGE,
            "timestamp": utc_now_iso(),
            "worldState": self.state.get().to_dict(),
            "recentEvents": [e.to_message() for e in self.history.recent(self.greeting_events)],
        }

    def subscribe(self, subscriber: Subscriber) -> Dict[str, Any]:
        greeting = self.greeting()
        with self._lock:
            self._subscribers.add(subscriber)
        subscriber.offer((GREETING, json.dumps(greeting)))
        logger.info("Client connected (%d total)", len(self))
        return greeting

    def unsubscribe(self, subscriber: Subscriber) -> bool:
        with self._lock:
            removed = subscriber in self._subscribers
            self._subscribers.discard(subscriber)
        subscriber.close()
        if removed:
            logger.info("Client disconnected (%d remaining)", len(self))
        return removed

    def publish(self, message: Dict[str, Any]) -> int:
        mtype = str(message.get("type", "message"))
        payload = json.dumps(message)
        delivered = 0

        for sub in self.subscribers():
            if not sub.is_open:
                self.unsubscribe(sub)
                continue
            if sub.offer((mtype, payload)):
                delivered += 1
            else:
                logger.warning("Dropping stalled subscriber %s", sub.name)
                self.unsubscribe(sub)

        if delivered > 0:
            logger.info("Broadcast to %d client(s): %s", delivered, mtype)
        return delivered
