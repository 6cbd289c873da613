# tests/test_journal.py
"""Tests for the write-ahead journal."""

import json
import tempfile
from pathlib import Path

import pytest

from uminai.errors import JournalError
from uminai.journal import Journal, JournalEntry


@pytest.fixture
def journal_path():
    """Path to a journal in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "data" / "journal.jsonl"


class TestJournal:
    """Test Journal class."""

    def test_creates_parent_dir(self, journal_path):
        Journal(journal_path)
        assert journal_path.parent.exists()

    def test_append_assigns_sequence(self, journal_path):
        journal = Journal(journal_path)
        first = journal.append("create", "did:uminai:a", "alice", "cid1")
        second = journal.append("revoke", "did:uminai:a", "alice")

        assert first.seq == 1
        assert second.seq == 2
        assert second.content_address is None
        assert len(journal) == 2

    def test_one_line_per_entry(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        journal.append("update", "did:uminai:a", "alice", "cid2")

        lines = journal_path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["op"] == "update"

    def test_persistence(self, journal_path):
        journal1 = Journal(journal_path)
        journal1.append("create", "did:uminai:a", "alice", "cid1")

        journal2 = Journal(journal_path)
        entries = list(journal2.entries())
        assert len(entries) == 1
        assert entries[0].did == "did:uminai:a"
        assert entries[0].content_address == "cid1"

        assert journal2.append("revoke", "did:uminai:a", "alice").seq == 2

    def test_unknown_op_rejected(self, journal_path):
        journal = Journal(journal_path)
        with pytest.raises(ValueError):
            journal.append("delete", "did:uminai:a", "alice")
        assert len(journal) == 0

    def test_torn_tail_dropped(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        with open(journal_path, "a") as f:
            f.write('{"seq": 2, "op": "upd')

        reloaded = Journal(journal_path)
        assert len(reloaded) == 1

        # The torn line is gone, so new appends produce a clean file
        reloaded.append("update", "did:uminai:a", "alice", "cid2")
        assert len(Journal(journal_path)) == 2

    def test_complete_tail_without_newline_kept(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        entry = JournalEntry(seq=2, op="update", did="did:uminai:a", caller="alice",
                             content_address="cid2")
        with open(journal_path, "a") as f:
            f.write(json.dumps(entry.to_dict()))

        reloaded = Journal(journal_path)
        assert len(reloaded) == 2
        reloaded.append("revoke", "did:uminai:a", "alice")
        assert len(Journal(journal_path)) == 3

    def test_corrupt_middle_line(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        with open(journal_path, "a") as f:
            f.write("not json\n")
        journal.append("create", "did:uminai:b", "alice", "cid2")

        with pytest.raises(JournalError):
            Journal(journal_path)

    def test_out_of_order_sequence(self, journal_path):
        journal_path.parent.mkdir(parents=True)
        with open(journal_path, "w") as f:
            for seq in (1, 3, 2):
                entry = JournalEntry(seq=seq, op="create", did=f"did:uminai:{seq}", caller="alice",
                                     content_address="cid")
                f.write(json.dumps(entry.to_dict()) + "\n")

        with pytest.raises(JournalError):
            Journal(journal_path)

    def test_rewrite_keeps_sequence(self, journal_path):
        journal = Journal(journal_path)
        for i in range(5):
            journal.append("create", f"did:uminai:{i}", "alice", "cid")

        kept = [e for e in journal.entries() if e.did in ("did:uminai:2", "did:uminai:4")]
        journal.rewrite(kept)

        reloaded = Journal(journal_path)
        assert [(e.seq, e.did) for e in reloaded.entries()] == [
            (3, "did:uminai:2"),
            (5, "did:uminai:4"),
        ]
        assert reloaded.last_seq == 5
        assert not journal_path.with_suffix(".tmp").exists()

    def test_checkpoint_survives_compaction(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        journal.append("create", "did:uminai:b", "alice", "cid2")
        journal.append("revoke", "did:uminai:b", "alice")

        journal.rewrite([e for e in journal.entries() if e.did == "did:uminai:a"])

        lines = [json.loads(line) for line in journal_path.read_text().splitlines()]
        assert lines[-1]["op"] == "checkpoint"
        assert lines[-1]["seq"] == 3

        reloaded = Journal(journal_path)
        assert len(reloaded) == 1
        assert reloaded.last_seq == 3
        assert reloaded.append("update", "did:uminai:a", "alice", "cid3").seq == 4
        assert [e.seq for e in Journal(journal_path).entries()] == [1, 4]

    def test_rewrite_everything_away(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        journal.append("revoke", "did:uminai:a", "alice")

        journal.rewrite([])

        reloaded = Journal(journal_path)
        assert len(reloaded) == 0
        assert reloaded.append("create", "did:uminai:a", "bob", "cid2").seq == 3

    def test_rewrite_rejects_unissued_sequence(self, journal_path):
        journal = Journal(journal_path)
        journal.append("create", "did:uminai:a", "alice", "cid1")
        entry = JournalEntry(seq=9, op="create", did="did:uminai:b", caller="alice",
                             content_address="cid")
        with pytest.raises(ValueError):
            journal.rewrite([entry])
        assert len(Journal(journal_path)) == 1


class TestJournalEntry:
    """Test JournalEntry serialization."""

    def test_from_dict_rejects_unknown_op(self):
        with pytest.raises(ValueError):
            JournalEntry.from_dict({"seq": 1, "op": "nope", "did": "d", "caller": "c"})

    def test_revoke_has_no_content_address(self):
        entry = JournalEntry(seq=1, op="revoke", did="did:uminai:a", caller="alice")
        assert "content_address" not in entry.to_dict()

    def test_created_at_only_when_set(self):
        entry = JournalEntry(seq=1, op="create", did="did:uminai:a", caller="alice",
                             content_address="cid", timestamp=20.0, created_at=10.0)
        data = entry.to_dict()
        assert data["created_at"] == 10.0
        assert JournalEntry.from_dict(data).created_at == 10.0

        plain = JournalEntry(seq=2, op="update", did="did:uminai:a", caller="alice",
                             content_address="cid2")
        assert "created_at" not in plain.to_dict()
