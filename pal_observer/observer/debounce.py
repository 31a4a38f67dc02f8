from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Union

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


# (delay_s, fn) -> handle; asyncio's loop.call_later fits this shape
Schedule = Callable[[float, Callable[[], None]], Cancellable]
ChangeCallback = Callable[[str], Union[None, Awaitable[None]]]


class Debouncer:
    """
    Per-path debounce:
      - touch(path) arms (or re-arms) a timer for that path
      - a burst of touches fires once, `delay_s` after the last one
      - paths never share a timer
      - the pending entry is removed before the callback runs, so a touch
        during the callback starts a fresh cycle
    """

    def __init__(
        self,
        delay_s: float,
        callback: ChangeCallback,
        *,
        schedule: Optional[Schedule] = None,
    ) -> None:
        self.delay_s = max(0.0, float(delay_s))
        self._callback = callback
        self._schedule = schedule
        self._pending: Dict[str, Cancellable] = {}
        self._tasks: Set[asyncio.Task] = set()

    def _call_later(self, fn: Callable[[], None]) -> Cancellable:
        if self._schedule is not None:
            return self._schedule(self.delay_s, fn)
        return asyncio.get_running_loop().call_later(self.delay_s, fn)

    def touch(self, path: str) -> None:
        prev = self._pending.pop(path, None)
        if prev is not None:
            prev.cancel()
        self._pending[path] = self._call_later(lambda: self._fire(path))

    def pending(self) -> List[str]:
        return list(self._pending)

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

    async def drain(self) -> None:
        """Waits for callbacks that are already running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, path: str) -> None:
        self._pending.pop(path, None)
        try:
            result = self._callback(path)
        except Exception:
            logger.exception("Change handler failed for %s", path)
            return

        if asyncio.iscoroutine(result):
            task = asyncio.get_running_loop().create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Change handler failed: %s", exc, exc_info=exc)
