from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v.strip() if v and v.strip() else default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _default_save_path() -> str:
    return str(Path.home() / "AppData" / "Local" / "Pal" / "Saved" / "SaveGames")


def _default_snapshot_command() -> List[str]:
    return [sys.executable, "snapshot.py"]


@dataclass
class ObserverConfig:
    save_path: str = field(default_factory=_default_save_path)
    ws_host: str = "0.0.0.0"
    ws_port: int = 8765
    http_host: str = "0.0.0.0"
    http_port: int = 8764
    debounce_ms: int = 5000             # quiet period after the last write
    parse_timeout_ms: int = 180000      # deep parse budget (3 min)
    max_event_history: int = 50
    snapshot_keep: int = 10
    snapshot_dir: str = "./snapshots"
    snapshot_command: List[str] = field(default_factory=_default_snapshot_command)
    greeting_events: int = 10
    subscriber_backlog: int = 100
    log_level: str = "INFO"

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def parse_timeout_seconds(self) -> float:
        return self.parse_timeout_ms / 1000.0

    @classmethod
    def from_env(cls) -> "ObserverConfig":
        d = cls()
        cmd = os.getenv("PALE_SNAPSHOT_COMMAND")
        return cls(
            save_path=_env_str("PALE_SAVE_PATH", d.save_path),
            ws_host=_env_str("PALE_WS_HOST", d.ws_host),
            ws_port=_env_int("PALE_WS_PORT", d.ws_port),
            http_host=_env_str("PALE_HTTP_HOST", d.http_host),
            http_port=_env_int("PALE_HTTP_PORT", d.http_port),
            debounce_ms=_env_int("PALE_DEBOUNCE_MS", d.debounce_ms),
            parse_timeout_ms=_env_int("PALE_PARSE_TIMEOUT_MS", d.parse_timeout_ms),
            max_event_history=_env_int("PALE_MAX_EVENT_HISTORY", d.max_event_history),
            snapshot_keep=_env_int("PALE_SNAPSHOT_KEEP", d.snapshot_keep),
            snapshot_dir=_env_str("PALE_SNAPSHOT_DIR", d.snapshot_dir),
            snapshot_command=shlex.split(cmd) if cmd and cmd.strip() else d.snapshot_command,
            greeting_events=_env_int("PALE_GREETING_EVENTS", d.greeting_events),
            subscriber_backlog=_env_int("PALE_SUBSCRIBER_BACKLOG", d.subscriber_backlog),
            log_level=_env_str("PALE_LOG_LEVEL", d.log_level).upper(),
        )
