import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from pal_observer.config import ObserverConfig
from pal_observer.container import ObserverContainer
from pal_observer.snapshots.provider import ParseResult, SnapshotProvider, SnapshotProviderError, parse_document


class FakeProvider(SnapshotProvider):
    """Returns queued documents (or raises queued errors) in order."""

    def __init__(self, *results: Any, delay_s: float = 0.0) -> None:
        self.results: List[Any] = list(results)
        self.delay_s = delay_s
        self.calls: List[Dict[str, Optional[str]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def parse(self, save_path: str, baseline_path: Optional[str] = None) -> ParseResult:
        self.calls.append({"save_path": save_path, "baseline_path": baseline_path})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            nxt = self.results.pop(0) if self.results else SnapshotProviderError("no result queued")
            if isinstance(nxt, BaseException):
                raise nxt
            return parse_document(json.dumps(nxt))
        finally:
            self.in_flight -= 1


class ManualTimer:
    def __init__(self, due: float, fn) -> None:
        self.due = due
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Stand-in for loop.call_later driven by advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def schedule(self, delay: float, fn) -> ManualTimer:
        t = ManualTimer(self.now + delay, fn)
        self.timers.append(t)
        return t

    def advance(self, dt: float) -> None:
        target = self.now + dt
        while True:
            due = sorted(
                (t for t in self.timers if not t.cancelled and t.due <= target),
                key=lambda t: t.due,
            )
            if not due:
                break
            t = due[0]
            self.timers.remove(t)
            self.now = t.due
            t.fn()
        self.now = target


class RecordingSend:
    def __init__(self) -> None:
        self.sent: List[str] = []

    async def __call__(self, payload: str) -> None:
        self.sent.append(payload)


def world_doc(**overrides: Any) -> Dict[str, Any]:
    doc = {
        "world_id": "WORLD-1",
        "host_player": "host-uid",
        "players": [
            {"name": "Alice", "level": 12, "uid": "host-uid", "is_host": True},
            {"name": "Bob", "level": 7, "uid": "bob-uid"},
        ],
        "pal_count": 10,
        "bases": [{"id": "b1"}, {"id": "b2"}],
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides: Any) -> ObserverConfig:
        base = dict(
            save_path=str(tmp_path / "SaveGames"),
            snapshot_dir=str(tmp_path / "snapshots"),
            debounce_ms=50,
            parse_timeout_ms=2000,
        )
        base.update(overrides)
        return ObserverConfig(**base)

    return _make


@pytest.fixture
def make_container(make_config):
    def _make(*results: Any, delay_s: float = 0.0, **config_overrides: Any) -> ObserverContainer:
        return ObserverContainer(make_config(**config_overrides), provider=FakeProvider(*results, delay_s=delay_s))

    return _make


@pytest.fixture
def fake_provider_cls():
    return FakeProvider


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def recording_send():
    return RecordingSend


@pytest.fixture
def doc():
    return world_doc
