from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional

from pal_observer.world.types import utc_now_iso

logger = logging.getLogger(__name__)

PREFIX = "snapshot_"
SUFFIX = ".json"


def snapshot_filename(stamp: str) -> str:
    # ISO stamps sort lexically in time order once ':' and '.' are made filename safe
    return f"{PREFIX}{stamp.replace(':', '-').replace('.', '-')}{SUFFIX}"


class SnapshotRetentionStore:
    """
    Directory of timestamped snapshot documents.

    Layout:
      <dir>/snapshot_2024-01-01T12-00-00-000Z.json
      ...

    The newest file is the diff baseline for the next parse; only the
    `keep` newest are retained.
    """

    def __init__(self, directory: str, *, keep: int = 10) -> None:
        if keep < 1:
            raise ValueError("keep must be >= 1")
        self.directory = directory
        self.keep = keep
        self._lock = threading.Lock()
        self._baseline: Optional[str] = None
        os.makedirs(self.directory, exist_ok=True)

    @property
    def baseline_path(self) -> Optional[str]:
        with self._lock:
            return self._baseline

    def list_snapshots(self) -> List[str]:
        """File names, newest first."""
        try:
            names = os.listdir(self.directory)
        except OSError as e:
            logger.warning("Cannot list snapshots in %s: %s", self.directory, e)
            return []
        return sorted((n for n in names if n.startswith(PREFIX) and n.endswith(SUFFIX)), reverse=True)

    def load_latest(self) -> Optional[str]:
        files = self.list_snapshots()
        with self._lock:
            if files:
                self._baseline = os.path.join(self.directory, files[0])
                logger.info("Loaded previous snapshot: %s", files[0])
            else:
                logger.info("No previous snapshots found")
            return self._baseline

    def save(self, document: Dict[str, Any], *, stamp: Optional[str] = None) -> Optional[str]:
        """
        Writes the document and makes it the new baseline, then prunes.
        Returns the new path, or None if the write failed (baseline unchanged).
        """
        path = os.path.join(self.directory, snapshot_filename(stamp or utc_now_iso()))
        tmp = path + ".tmp"
        with self._lock:
            try:
                os.makedirs(self.directory, exist_ok=True)
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(document, f, ensure_ascii=False, indent=2)
                os.replace(tmp, path)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to save snapshot: %s", e)
                if os.path.exists(tmp):
                    try:
                        os.remove(tmp)
                    except OSError as rm_err:
                        logger.warning("Failed to remove %s: %s", tmp, rm_err)
                return None
            self._baseline = path

        self.prune()
        return path

    def prune(self) -> List[str]:
        removed = []
        for name in self.list_snapshots()[self.keep:]:
            try:
                os.remove(os.path.join(self.directory, name))
                removed.append(name)
            except OSError as e:
                logger.warning("Failed to prune snapshot %s: %s", name, e)
        return removed
