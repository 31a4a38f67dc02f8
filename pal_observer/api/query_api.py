from __future__ import annotations

import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from pal_observer.config import ObserverConfig
from pal_observer.observer.pipeline import PipelineStats
from pal_observer.push.hub import BroadcastHub
from pal_observer.world.history import EventHistory
from pal_observer.world.state import WorldStateStore
from pal_observer.world.types import utc_now_iso

router = APIRouter(tags=["query"])


class StatusQueryService:
    """
    Read-only, point-in-time views. Every call builds new dicts; nothing
    returned is shared with the pipeline.
    """

    def __init__(
        self,
        config: ObserverConfig,
        state: WorldStateStore,
        history: EventHistory,
        *,
        hub: Optional[BroadcastHub] = None,
        stats: Optional[PipelineStats] = None,
        started_at: Optional[float] = None,
    ) -> None:
        self.config = config
        self.state = state
        self.history = history
        self.hub = hub
        self.stats = stats
        self.started_at = time.monotonic() if started_at is None else started_at

    def uptime(self) -> float:
        return round(time.monotonic() - self.started_at, 3)

    def status(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "worldState": self.state.get().to_dict(),
            "uptime": self.uptime(),
            "eventHistoryCount": len(self.history),
            "watching": self.config.save_path,
        }
        if self.hub is not None:
            out["subscribers"] = len(self.hub)
        if self.stats is not None:
            out["pipeline"] = self.stats.to_dict()
        return out

    def history_view(self) -> Dict[str, Any]:
        return {"events": [e.to_message() for e in self.history.all()]}

    def health(self) -> Dict[str, Any]:
        return {"status": "healthy", "timestamp": utc_now_iso()}


def _service(request: Request) -> StatusQueryService:
    return request.app.state.container.query


@router.get("/status")
def get_status(request: Request) -> Dict[str, Any]:
    """Current world state, uptime and watch root."""
    return _service(request).status()


@router.get("/history")
def get_history(request: Request) -> Dict[str, Any]:
    """Retained events, most recent first."""
    return _service(request).history_view()


@router.get("/health")
def get_health(request: Request) -> Dict[str, Any]:
    return _service(request).health()
