# tests/test_events.py
"""Tests for the registry event log."""

import json
import tempfile
from pathlib import Path

import pytest

from uminai import events as ev
from uminai.events import Event, EventLog


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestEventLog:
    """Test EventLog class."""

    def test_publish_assigns_sequence(self):
        log = EventLog()
        first = log.publish(ev.created("did:uminai:a", "alice", "cid1"))
        second = log.publish(ev.revoked("did:uminai:a"))

        assert first.sequence == 1
        assert second.sequence == 2
        assert len(log) == 2

    def test_since(self):
        log = EventLog()
        for i in range(5):
            log.publish(ev.updated("did:uminai:a", f"cid{i}"))

        later = log.since(3)
        assert [e.sequence for e in later] == [4, 5]
        assert len(log.since()) == 5
        assert log.since(5) == []

    def test_keeps_forward_sequence(self):
        log = EventLog()
        restored = ev.created("did:uminai:a", "alice", "cid1")
        restored.sequence = 4
        log.restore(restored)

        gap = ev.updated("did:uminai:a", "cid2")
        gap.sequence = 7
        stale = ev.revoked("did:uminai:a")
        stale.sequence = 3

        assert log.publish(gap).sequence == 7
        assert log.publish(stale).sequence == 8
        assert log.last_sequence == 8

    def test_subscribers_notified_in_order(self):
        log = EventLog()
        calls = []
        log.subscribe(lambda e: calls.append(("first", e.sequence)))
        log.subscribe(lambda e: calls.append(("second", e.sequence)))

        log.publish(ev.created("did:uminai:a", "alice", "cid1"))

        assert calls == [("first", 1), ("second", 1)]

    def test_unsubscribe(self):
        log = EventLog()
        received = []
        unsubscribe = log.subscribe(received.append)

        log.publish(ev.revoked("did:uminai:a"))
        unsubscribe()
        log.publish(ev.revoked("did:uminai:b"))

        assert len(received) == 1

    def test_failing_subscriber_does_not_block_others(self, caplog):
        log = EventLog()
        received = []

        def broken(event):
            raise RuntimeError("sink down")

        log.subscribe(broken)
        log.subscribe(received.append)

        log.publish(ev.revoked("did:uminai:a"))

        assert len(received) == 1
        assert len(log) == 1
        assert "Subscriber failed" in caplog.text

    def test_restore_does_not_notify(self):
        log = EventLog()
        received = []
        log.subscribe(received.append)

        restored = log.restore(ev.created("did:uminai:a", "alice", "cid1"))

        assert restored.sequence == 1
        assert received == []
        assert log.publish(ev.revoked("did:uminai:a")).sequence == 2

    def test_persists_to_file(self, temp_dir):
        path = temp_dir / "events" / "events.jsonl"
        log = EventLog(path)
        log.publish(ev.created("did:uminai:a", "alice", "cid1"))
        log.publish(ev.revoked("did:uminai:a"))

        lines = path.read_text().splitlines()
        assert [json.loads(line)["type"] for line in lines] == ["Created", "Revoked"]


class TestEvent:
    """Test Event serialization."""

    def test_created_round_trip(self):
        event = ev.created("did:uminai:a", "alice", "cid1")
        event.sequence = 7
        restored = Event.from_dict(event.to_dict())
        assert restored == event

    def test_revoked_omits_payload(self):
        data = ev.revoked("did:uminai:a").to_dict()
        assert "owner" not in data
        assert "content_address" not in data
        assert data["type"] == "Revoked"
