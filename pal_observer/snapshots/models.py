from __future__ import annotations

from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ProviderPlayer(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    name: str = "Unknown"
    level: int = 0
    uid: Optional[str] = Field(default=None, validation_alias=AliasChoices("uid", "id", "player_uid"))
    is_host: bool = False

    @field_validator("uid", mode="before")
    @classmethod
    def _uid_to_str(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @field_validator("level", mode="before")
    @classmethod
    def _level_default(cls, v: Any) -> Any:
        return 0 if v is None else v


class ProviderEvent(BaseModel):
    """One classified diff entry, in the order the provider reported it."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    category: Optional[str] = None
    message: str = ""
    priority: Optional[Any] = None


class ProviderSnapshot(BaseModel):
    """
    Structured parse result written to stdout by the snapshot command.
    Unknown keys are kept so the retained document matches what the
    provider produced. world_id, players, pal_count and bases must be
    present; a null value falls back to an empty default.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    world_id: Optional[str]
    host_player: Optional[str] = None
    players: List[ProviderPlayer]
    pal_count: int
    bases: List[Any]
    events: Optional[List[ProviderEvent]] = None

    @field_validator("players", "bases", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("pal_count", mode="before")
    @classmethod
    def _pal_count_default(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("world_id", "host_player", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return None if v is None else str(v)
