from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

SAVE_SUFFIX = ".sav"


def _is_hidden(path: str) -> bool:
    return any(part.startswith(".") for part in path.replace("\\", "/").split("/") if part not in ("", ".", ".."))


class SaveFileEventHandler(FileSystemEventHandler):
    """
    Runs on the watchdog thread; hands .sav writes to the event loop.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[str], None],
        *,
        root: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._loop = loop
        self._on_change = on_change
        self._root = root

    def _relevant(self, path: str) -> bool:
        if not path or not path.endswith(SAVE_SUFFIX):
            return False
        rel = os.path.relpath(path, self._root) if self._root else path
        return not _is_hidden(rel)

    def _forward(self, path: str) -> None:
        logger.info("File changed: %s", os.path.basename(path))
        try:
            self._loop.call_soon_threadsafe(self._on_change, path)
        except RuntimeError as e:
            # loop already closed during shutdown
            logger.debug("Dropped change for %s: %s", path, e)

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = os.fsdecode(event.src_path)
        if self._relevant(path):
            self._forward(path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # games often write to a temp file and rename over the save
        if event.is_directory:
            return
        dest = os.fsdecode(getattr(event, "dest_path", "") or "")
        if self._relevant(dest):
            self._forward(dest)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = os.fsdecode(event.src_path)
        if self._relevant(path):
            logger.info("New file: %s", os.path.basename(path))


class SaveWatcher:
    """
    Recursive watchdog observer over the save root.
    A missing root or a scheduling failure is logged and leaves the
    watcher stopped; the rest of the service keeps running.
    """

    def __init__(self, root: str, on_change: Callable[[str], None]) -> None:
        self.root = root
        self._on_change = on_change
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return bool(self._observer and self._observer.is_alive())

    def start(self, loop: asyncio.AbstractEventLoop) -> bool:
        if self.running:
            return True
        if not os.path.isdir(self.root):
            logger.warning("Watcher error: save path does not exist: %s", self.root)
            return False

        observer = Observer()
        try:
            handler = SaveFileEventHandler(loop, self._on_change, root=self.root)
            observer.schedule(handler, self.root, recursive=True)
            observer.start()
        except Exception as e:
            logger.error("Watcher error: %s", e)
            return False

        self._observer = observer
        logger.info("Watching: %s", self.root)
        logger.info("File watcher ready")
        return True

    def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=2.0)
