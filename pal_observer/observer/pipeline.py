from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pal_observer.observer.router import file_name
from pal_observer.snapshots.provider import ParseResult, SnapshotProvider, SnapshotProviderError, SnapshotTimeoutError
from pal_observer.snapshots.retention import SnapshotRetentionStore
from pal_observer.world.state import WorldStateStore
from pal_observer.world.types import ObserverEvent, WorldState, utc_now_iso

logger = logging.getLogger(__name__)

WORLD_FILE_TYPE = "world"


@dataclass
class PipelineStats:
    parses_ok: int = 0
    parses_failed: int = 0
    last_error: Optional[str] = None
    last_parse_seconds: Optional[float] = None
    last_parsed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parsesOk": self.parses_ok,
            "parsesFailed": self.parses_failed,
            "lastError": self.last_error,
            "lastParseSeconds": self.last_parse_seconds,
            "lastParsedAt": self.last_parsed_at,
        }


class DeepParsePipeline:
    """
    Handles writes to the primary save:
      1. run the provider against the current baseline
      2. success -> retain snapshot, replace world state, emit diff events
         (or one generic "World saved" event when the diff is empty)
      3. failure -> leave state and baseline alone, emit one degraded event

    Parses are serialized: a trigger that arrives while a parse is running
    waits its turn, so baseline and state updates land in trigger order.
    """

    def __init__(
        self,
        provider: SnapshotProvider,
        retention: SnapshotRetentionStore,
        state: WorldStateStore,
        emit: Callable[[ObserverEvent], Any],
        *,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.provider = provider
        self.timeout_s = timeout_s
        self.retention = retention
        self.state = state
        self._emit = emit
        self._lock = asyncio.Lock()
        self.stats = PipelineStats()

    async def handle_primary_save(self, path: str) -> List[ObserverEvent]:
        async with self._lock:
            events = await self._run(path)
            for event in events:
                self._emit(event)
        return events

    async def _run(self, path: str) -> List[ObserverEvent]:
        name = file_name(path)
        t0 = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.provider.parse(path, self.retention.baseline_path),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            # late results are never applied
            err = SnapshotTimeoutError(f"snapshot provider timed out after {self.timeout_s:g}s")
            return [self._failed(name, str(err))]
        except SnapshotProviderError as e:
            return [self._failed(name, str(e) or type(e).__name__)]
        except Exception as e:
            logger.exception("Unexpected snapshot provider failure")
            return [self._failed(name, f"{type(e).__name__}: {e}")]

        self.stats.last_parse_seconds = round(time.monotonic() - t0, 3)
        return self._apply(name, result)

    def _apply(self, name: str, result: ParseResult) -> List[ObserverEvent]:
        # a failed write only leaves the baseline stale
        self.retention.save(result.document)

        parsed_at = utc_now_iso()
        world = self.state.replace(WorldState.from_snapshot(result.snapshot, parsed_at=parsed_at))
        self.stats.parses_ok += 1
        self.stats.last_parsed_at = parsed_at

        diff = result.snapshot.events or []
        if diff:
            return [
                ObserverEvent.game_event(
                    event_type=ev.type,
                    category=ev.category,
                    message=ev.message,
                    priority=ev.priority,
                    world_state=world,
                )
                for ev in diff
            ]

        return [
            ObserverEvent.file_changed(
                file=name,
                file_type=WORLD_FILE_TYPE,
                message="World saved",
                world_state=world,
            )
        ]

    def _failed(self, name: str, error: str) -> ObserverEvent:
        logger.error("Failed to process %s: %s", name, error)
        self.stats.parses_failed += 1
        self.stats.last_error = error
        return ObserverEvent.file_changed(
            file=name,
            file_type=WORLD_FILE_TYPE,
            message="Save detected (parse failed)",
            error=error,
        )
