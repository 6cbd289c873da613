# tests/test_cli.py
"""Tests for the uminai command line."""

import json
import tempfile
from pathlib import Path

import pytest

from uminai.cli import main
from uminai.identity import ActorStore
from uminai.journal import Journal
from uminai.registry import Registry


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestActorCommands:
    """Test actor management commands."""

    def test_create_and_list(self, temp_dir, capsys):
        actors_dir = str(temp_dir / "actors")
        main(["actor", "create", "alice", "--actors-dir", actors_dir])
        main(["actor", "list", "--actors-dir", actors_dir])

        out = capsys.readouterr().out
        assert "Created @alice@registry.uminai.local" in out
        assert "* alice" in out

    def test_export_import(self, temp_dir, capsys):
        local_dir = str(temp_dir / "local")
        server_dir = str(temp_dir / "server")
        doc_path = temp_dir / "alice.json"

        main(["actor", "create", "alice", "--actors-dir", local_dir])
        main(["actor", "export", "alice", "--actors-dir", local_dir, "-o", str(doc_path)])
        main(["actor", "import", str(doc_path), "--actors-dir", server_dir])

        assert json.loads(doc_path.read_text())["preferredUsername"] == "alice"
        imported = ActorStore(server_dir).get("alice")
        assert imported is not None
        assert not imported.can_sign

    def test_export_unknown(self, temp_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["actor", "export", "nobody", "--actors-dir", str(temp_dir)])
        assert exc_info.value.code == 2
        assert "Unknown local actor" in capsys.readouterr().err


class TestCompactCommand:
    """Test journal compaction."""

    def test_compact(self, temp_dir, capsys):
        data_dir = temp_dir / "data"
        registry = Registry(journal=Journal(data_dir / "journal.jsonl"))
        registry.create("did:uminai:a", "cid1", "alice")
        registry.update("did:uminai:a", "cid2", "alice")
        registry.create("did:uminai:b", "cid3", "bob")
        registry.revoke("did:uminai:b", "bob")

        main(["compact", "--data-dir", str(data_dir)])

        assert "4 -> 1 entries" in capsys.readouterr().out
        reloaded = Registry(journal=Journal(data_dir / "journal.jsonl"))
        assert reloaded.query("did:uminai:a").content_address == "cid2"


class TestParser:
    """Test argument handling."""

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_signed_commands_need_actor(self):
        with pytest.raises(SystemExit):
            main(["create", "did:uminai:a", "cid"])

    def test_unreachable_server(self, temp_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["query", "did:uminai:a", "--url", "http://127.0.0.1:9"])
        assert exc_info.value.code == 3
