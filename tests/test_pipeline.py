import asyncio
import json
import os

from pal_observer.snapshots.provider import SnapshotProviderError, SnapshotTimeoutError
from pal_observer.world.types import WorldState

LEVEL = "/saves/0123/WORLD/Level.sav"


def _run(c, path=LEVEL):
    return asyncio.run(c.pipeline.handle_primary_save(path))


def test_single_diff_event_updates_state(make_container, doc):
    c = make_container(
        doc(
            pal_count=11,
            events=[{"type": "pal_caught", "category": "capture", "message": "Caught Lamball Lv.5", "priority": 2}],
        )
    )
    events = _run(c)

    assert len(events) == 1
    msg = events[0].to_message()
    assert msg["type"] == "game_event"
    assert msg["eventType"] == "pal_caught"
    assert msg["category"] == "capture"
    assert msg["message"] == "Caught Lamball Lv.5"
    assert msg["priority"] == 2
    assert msg["worldState"]["palCount"] == 11

    state = c.state.get()
    assert state.world_id == "WORLD-1"
    assert state.host_player == "host-uid"
    assert [p.name for p in state.players] == ["Alice", "Bob"]
    assert state.players[0].is_host is True
    assert state.pal_count == 11
    assert state.base_count == 2
    assert state.last_parsed is not None
    assert len(c.history) == 1


def test_k_diff_events_emit_k_and_no_generic(make_container, doc):
    diff = [
        {"type": "pal_caught", "category": "capture", "message": "Caught A", "priority": 1},
        {"type": "level_up", "category": "player", "message": "Alice reached Lv.13", "priority": 2},
        {"type": "base_built", "category": "base", "message": "New base", "priority": 3},
    ]
    c = make_container(doc(events=diff))
    events = _run(c)

    assert [e.event_type for e in events] == ["pal_caught", "level_up", "base_built"]
    assert all(e.kind == "game_event" for e in events)
    # history is most-recent-first, so reversed emission order
    assert [e.event_type for e in c.history.all()] == ["base_built", "level_up", "pal_caught"]


def test_empty_diff_emits_one_generic_event(make_container, doc):
    for variant in (doc(events=[]), doc()):
        c = make_container(variant)
        events = _run(c)
        assert len(events) == 1
        msg = events[0].to_message()
        assert msg["type"] == "file_changed"
        assert msg["file"] == "Level.sav"
        assert msg["message"] == "World saved"
        assert msg["worldState"]["worldId"] == "WORLD-1"
        assert "error" not in msg


def test_failure_leaves_state_and_baseline_alone(make_container, doc):
    c = make_container(doc(), SnapshotProviderError("exit code 1"))
    _run(c)
    before_state = c.state.get()
    before_baseline = c.retention.baseline_path
    before_files = c.retention.list_snapshots()

    events = _run(c)

    assert len(events) == 1
    msg = events[0].to_message()
    assert msg["type"] == "file_changed"
    assert msg["file"] == "Level.sav"
    assert msg["message"] == "Save detected (parse failed)"
    assert msg["error"] == "exit code 1"
    assert "worldState" not in msg
    assert c.state.get() is before_state
    assert c.retention.baseline_path == before_baseline
    assert c.retention.list_snapshots() == before_files
    assert c.pipeline.stats.parses_failed == 1
    assert c.pipeline.stats.parses_ok == 1


def test_timeout_is_a_degraded_event(make_container):
    c = make_container(SnapshotTimeoutError("snapshot command timed out after 0.1s"))
    events = _run(c)

    assert len(events) == 1
    assert events[0].error
    assert c.state.get() == WorldState()
    assert c.retention.baseline_path is None


def test_unexpected_provider_exception_is_contained(make_container):
    c = make_container(ValueError("weird"))
    events = _run(c)
    assert events[0].error == "ValueError: weird"


def test_success_retains_document_as_next_baseline(make_container, doc):
    first = doc(world_id="W-A")
    c = make_container(first, doc(world_id="W-B"))

    _run(c)
    baseline = c.retention.baseline_path
    assert baseline is not None
    with open(baseline, encoding="utf-8") as f:
        assert json.load(f) == first

    _run(c)
    calls = c.provider.calls
    assert calls[0]["baseline_path"] is None
    assert calls[1]["baseline_path"] == baseline
    assert c.state.get().world_id == "W-B"


def test_concurrent_triggers_are_serialized(make_container, doc):
    c = make_container(
        doc(world_id="W-1", events=[{"type": "a", "message": "first"}]),
        doc(world_id="W-2", events=[{"type": "b", "message": "second"}]),
        delay_s=0.05,
    )

    async def scenario():
        await asyncio.gather(
            c.pipeline.handle_primary_save(LEVEL),
            c.pipeline.handle_primary_save(LEVEL),
        )

    asyncio.run(scenario())

    assert c.provider.max_in_flight == 1
    assert [e.message for e in c.history.all()] == ["second", "first"]
    assert c.state.get().world_id == "W-2"


def test_malformed_document_fails_parse(make_container):
    c = make_container({"players": "not-a-list"})
    events = _run(c)
    assert events[0].error
    assert c.state.get() == WorldState()


def test_slow_provider_is_abandoned_after_timeout(make_container, doc):
    c = make_container(doc(world_id="LATE"), delay_s=1.0, parse_timeout_ms=100)
    events = _run(c)

    assert len(events) == 1
    assert events[0].message == "Save detected (parse failed)"
    assert "timed out" in events[0].error
    assert c.state.get() == WorldState()
    assert c.retention.baseline_path is None
    assert c.retention.list_snapshots() == []

    # the lock was released; the next parse runs normally
    c.provider.delay_s = 0.0
    c.provider.results.append(doc(world_id="NEXT"))
    _run(c)
    assert c.state.get().world_id == "NEXT"


def test_document_without_core_keys_is_a_failure(make_container, doc):
    c = make_container(doc(), {"error": "decoder crashed"}, {})
    _run(c)
    before_state = c.state.get()
    before_baseline = c.retention.baseline_path

    for _ in range(2):
        events = _run(c)
        assert len(events) == 1
        assert events[0].message == "Save detected (parse failed)"
        assert events[0].error
        assert c.state.get() is before_state
        assert c.retention.baseline_path == before_baseline


def test_unlistable_snapshot_dir_still_updates_and_emits(make_container, doc, monkeypatch):
    c = make_container(doc())

    def denied(path):
        raise PermissionError(13, "Permission denied", path)

    monkeypatch.setattr(os, "listdir", denied)
    events = _run(c)

    assert [e.message for e in events] == ["World saved"]
    assert c.state.get().world_id == "WORLD-1"
