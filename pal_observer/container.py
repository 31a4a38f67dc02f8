from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pal_observer.api.query_api import StatusQueryService
from pal_observer.config import ObserverConfig
from pal_observer.observer.debounce import Debouncer
from pal_observer.observer.emitter import EventEmitter
from pal_observer.observer.pipeline import DeepParsePipeline
from pal_observer.observer.router import ChangeRouter
from pal_observer.observer.watcher import SaveWatcher
from pal_observer.push.hub import BroadcastHub
from pal_observer.snapshots.provider import CommandSnapshotProvider, SnapshotProvider
from pal_observer.snapshots.retention import SnapshotRetentionStore
from pal_observer.world.history import EventHistory
from pal_observer.world.state import WorldStateStore

logger = logging.getLogger(__name__)


class ObserverContainer:
    """
    Owns every stateful component and wires them together.
    Pass a provider to replace the external snapshot command (tests).
    """

    def __init__(self, config: ObserverConfig, *, provider: Optional[SnapshotProvider] = None) -> None:
        self.config = config

        self.state = WorldStateStore()
        self.history = EventHistory(capacity=config.max_event_history)
        self.hub = BroadcastHub(self.state, self.history, greeting_events=config.greeting_events)
        self.emitter = EventEmitter(self.history, self.hub)

        self.provider = provider or CommandSnapshotProvider(
            config.snapshot_command,
            timeout_s=config.parse_timeout_seconds,
        )
        self.retention = SnapshotRetentionStore(config.snapshot_dir, keep=config.snapshot_keep)
        self.pipeline = DeepParsePipeline(
            self.provider,
            self.retention,
            self.state,
            self.emitter,
            timeout_s=config.parse_timeout_seconds,
        )
        self.router = ChangeRouter(self.pipeline.handle_primary_save, self.emitter)
        self.debouncer = Debouncer(config.debounce_seconds, self.router.route)
        self.watcher = SaveWatcher(config.save_path, self.debouncer.touch)

        self.query = StatusQueryService(
            config,
            self.state,
            self.history,
            hub=self.hub,
            stats=self.pipeline.stats,
        )

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.retention.load_latest()
        self.watcher.start(loop or asyncio.get_running_loop())
        logger.info("Waiting for save file changes...")

    async def stop(self) -> None:
        self.watcher.stop()
        self.debouncer.cancel_all()
        for sub in self.hub.subscribers():
            self.hub.unsubscribe(sub)
