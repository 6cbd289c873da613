# uminai/journal.py
"""
Write-ahead journal for the registry.

Every committed operation is appended as one JSON line before the
in-memory mapping is changed. On startup the registry replays the
journal in order to rebuild its state.

Structure:
    data_dir/
        journal.jsonl     # One JournalEntry per line
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .errors import JournalError

logger = logging.getLogger(__name__)

OP_CREATE = "create"
OP_UPDATE = "update"
OP_REVOKE = "revoke"
# Marks the highest sequence ever issued once compaction drops later entries
OP_CHECKPOINT = "checkpoint"

OPS = (OP_CREATE, OP_UPDATE, OP_REVOKE)


@dataclass
class JournalEntry:
    """One committed registry operation."""
    seq: int
    op: str
    did: str
    caller: str
    content_address: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    created_at: Optional[float] = None  # Set on compacted create entries

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "seq": self.seq,
            "op": self.op,
            "did": self.did,
            "caller": self.caller,
            "timestamp": self.timestamp,
        }
        if self.content_address is not None:
            data["content_address"] = self.content_address
        if self.created_at is not None:
            data["created_at"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        op = data["op"]
        if op not in OPS and op != OP_CHECKPOINT:
            raise ValueError(f"Unknown journal op: {op}")
        return cls(
            seq=int(data["seq"]),
            op=op,
            did=data.get("did", ""),
            caller=data.get("caller", ""),
            content_address=data.get("content_address"),
            timestamp=data.get("timestamp", 0.0),
            created_at=data.get("created_at"),
        )


class Journal:
    """
    Append-only JSON lines journal.

    Appends are flushed and fsynced before returning, so an entry that
    append() returned survives a crash. A partial last line (crash during
    a write) is discarded on load; damage anywhere else is an error.

    Sequence numbers only ever grow. Compaction keeps the original
    numbers and records the highest one issued in a checkpoint line, so
    appends after a compaction never reuse a number.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._entries: List[JournalEntry] = []
        self._last_seq = 0
        self._load()

    def _load(self):
        """Load entries from disk."""
        if not self.path.exists():
            return

        with open(self.path) as f:
            lines = f.read().split("\n")

        # A complete file ends with a newline, leaving an empty last element
        torn_tail = lines[-1] != ""
        if not torn_tail:
            lines = lines[:-1]

        parsed = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                parsed.append(JournalEntry.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                if torn_tail and lineno == len(lines):
                    logger.warning(f"Dropping torn journal tail in {self.path}: {e}")
                    self._truncate_tail(lines[:-1])
                    break
                raise JournalError(
                    f"Corrupt journal line {lineno} in {self.path}: {e}",
                    {"line": lineno},
                )
        else:
            if torn_tail:
                # Last line parsed but lacks its newline; finish it
                with open(self.path, "a") as f:
                    f.write("\n")

        for prev, entry in zip(parsed, parsed[1:]):
            if entry.seq <= prev.seq:
                raise JournalError(
                    f"Journal sequence out of order at seq {entry.seq}",
                    {"seq": entry.seq},
                )

        self._entries = [e for e in parsed if e.op != OP_CHECKPOINT]
        self._last_seq = parsed[-1].seq if parsed else 0
        logger.debug(f"Loaded {len(self._entries)} journal entries from {self.path}")

    def _truncate_tail(self, good_lines: List[str]):
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            for line in good_lines:
                f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    @property
    def last_seq(self) -> int:
        """Highest sequence number issued so far, 0 for a new journal."""
        return self._last_seq

    def append(
        self,
        op: str,
        did: str,
        caller: str,
        content_address: str = None,
    ) -> JournalEntry:
        """
        Durably record an operation.

        Args:
            op: create, update or revoke
            did: The identifier
            caller: Identity that performed the operation
            content_address: New content address (create, update)

        Returns:
            The written entry
        """
        if op not in OPS:
            raise ValueError(f"Unknown journal op: {op}")

        entry = JournalEntry(
            seq=self._last_seq + 1,
            op=op,
            did=did,
            caller=caller,
            content_address=content_address,
        )
        with open(self.path, "a") as f:
            f.write(json.dumps(entry.to_dict()) + "\n")
            f.flush()
            os.fsync(f.fileno())

        self._entries.append(entry)
        self._last_seq = entry.seq
        return entry

    def entries(self) -> Iterator[JournalEntry]:
        """Iterate operation entries in commit order."""
        return iter(list(self._entries))

    def rewrite(self, entries: Iterable[JournalEntry]) -> None:
        """
        Atomically replace the journal contents.

        Entries keep their sequence numbers, which must be increasing and
        no higher than last_seq. A checkpoint line preserves last_seq when
        the kept entries end below it.
        """
        kept = list(entries)
        for prev, entry in zip(kept, kept[1:]):
            if entry.seq <= prev.seq:
                raise ValueError(f"Rewrite entries out of order at seq {entry.seq}")
        if kept and kept[-1].seq > self._last_seq:
            raise ValueError(f"Rewrite entry seq {kept[-1].seq} was never issued")

        lines = [e.to_dict() for e in kept]
        if self._last_seq and (not kept or kept[-1].seq < self._last_seq):
            checkpoint = JournalEntry(seq=self._last_seq, op=OP_CHECKPOINT, did="", caller="")
            lines.append(checkpoint.to_dict())

        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            for data in lines:
                f.write(json.dumps(data) + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

        self._entries = kept
        logger.info(f"Rewrote journal {self.path} with {len(kept)} entries (last seq {self._last_seq})")

    def __len__(self) -> int:
        return len(self._entries)
