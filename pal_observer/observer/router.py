from __future__ import annotations

import logging
import ntpath
import posixpath
from typing import Awaitable, Callable, Optional

from pal_observer.world.types import ObserverEvent

logger = logging.getLogger(__name__)

PRIMARY_SAVE = "Level.sav"

# file name -> fileType
FILE_ROLES = {
    PRIMARY_SAVE: "world",
    "LevelMeta.sav": "metadata",
    "LocalData.sav": "local",
    "WorldOption.sav": "settings",
    "GlobalPalStorage.sav": "global_storage",
    "UserOption.sav": "user_settings",
}
PLAYERS_DIR = "Players"
PLAYER_ROLE = "player"
UNKNOWN_ROLE = "unknown"


def _split(path: str) -> tuple[str, str]:
    # save roots may be Windows paths even when seen from elsewhere
    norm = path.replace("\\", "/")
    return posixpath.dirname(norm), posixpath.basename(norm)


def file_name(path: str) -> str:
    return _split(path)[1] or ntpath.basename(path)


def classify(path: str) -> str:
    dir_name, name = _split(path)
    role = FILE_ROLES.get(name)
    if role is not None:
        return role
    if PLAYERS_DIR in dir_name.split("/"):
        return PLAYER_ROLE
    return UNKNOWN_ROLE


def is_primary_save(path: str) -> bool:
    return file_name(path) == PRIMARY_SAVE


class ChangeRouter:
    """
    Level.sav goes to the deep parse; any other .sav becomes a plain
    file_changed event; everything else is ignored.
    """

    def __init__(
        self,
        handle_primary_save: Callable[[str], Awaitable[None]],
        emit: Callable[[ObserverEvent], None],
    ) -> None:
        self._handle_primary_save = handle_primary_save
        self._emit = emit

    async def route(self, path: str) -> Optional[str]:
        name = file_name(path)
        if not name.endswith(".sav"):
            logger.debug("Ignoring %s", name)
            return None

        if is_primary_save(path):
            await self._handle_primary_save(path)
            return FILE_ROLES[PRIMARY_SAVE]

        role = classify(path)
        self._emit(ObserverEvent.file_changed(file=name, file_type=role, message=f"{role} updated"))
        return role
