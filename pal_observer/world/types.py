from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from pal_observer.snapshots.models import ProviderSnapshot


GAME_EVENT = "game_event"
FILE_CHANGED = "file_changed"
GREETING = "greeting"


def utc_now_iso() -> str:
    # millisecond precision, "Z" suffix
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Player:
    name: str
    level: int = 0
    uid: Optional[str] = None
    is_host: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "level": self.level,
            "id": self.uid,
            "isHost": self.is_host,
        }


@dataclass(frozen=True)
class WorldState:
    """
    Current view of the world, derived from the latest successful parse.
    Never mutated: a new parse produces a new instance.
    """

    world_id: Optional[str] = None
    host_player: Optional[str] = None
    players: Tuple[Player, ...] = ()
    pal_count: int = 0
    base_count: int = 0
    last_parsed: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: "ProviderSnapshot", *, parsed_at: Optional[str] = None) -> "WorldState":
        return cls(
            world_id=snapshot.world_id,
            host_player=snapshot.host_player,
            players=tuple(
                Player(name=p.name, level=p.level, uid=p.uid, is_host=p.is_host)
                for p in snapshot.players
            ),
            pal_count=snapshot.pal_count,
            base_count=len(snapshot.bases),
            last_parsed=parsed_at or utc_now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worldId": self.world_id,
            "hostPlayer": self.host_player,
            "players": [p.to_dict() for p in self.players],
            "palCount": self.pal_count,
            "baseCount": self.base_count,
            "lastParsed": self.last_parsed,
        }


@dataclass(frozen=True)
class ObserverEvent:
    kind: str
    message: str
    timestamp: str = field(default_factory=utc_now_iso)
    # game_event
    event_type: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[Any] = None
    # file_changed
    file: Optional[str] = None
    file_type: Optional[str] = None
    error: Optional[str] = None
    world_state: Optional[WorldState] = None

    @classmethod
    def game_event(
        cls,
        *,
        event_type: str,
        category: Optional[str],
        message: str,
        priority: Optional[Any],
        world_state: WorldState,
    ) -> "ObserverEvent":
        return cls(
            kind=GAME_EVENT,
            message=message,
            event_type=event_type,
            category=category,
            priority=priority,
            world_state=world_state,
        )

    @classmethod
    def file_changed(
        cls,
        *,
        file: str,
        message: str,
        file_type: Optional[str] = None,
        error: Optional[str] = None,
        world_state: Optional[WorldState] = None,
    ) -> "ObserverEvent":
        return cls(
            kind=FILE_CHANGED,
            message=message,
            file=file,
            file_type=file_type,
            error=error,
            world_state=world_state,
        )

    def to_message(self) -> Dict[str, Any]:
        """Wire form sent to push subscribers and returned by /history."""
        if self.kind == GAME_EVENT:
            return {
                "type": GAME_EVENT,
                "eventType": self.event_type,
                "category": self.category,
                "message": self.message,
                "priority": self.priority,
                "timestamp": self.timestamp,
                "worldState": self.world_state.to_dict() if self.world_state else None,
            }

        out: Dict[str, Any] = {"type": self.kind, "file": self.file}
        if self.file_type is not None:
            out["fileType"] = self.file_type
        out["message"] = self.message
        out["timestamp"] = self.timestamp
        if self.error is not None:
            out["error"] = self.error
        if self.world_state is not None:
            out["worldState"] = self.world_state.to_dict()
        return out
