# uminai/registry/registry.py
"""
Ownership-gated DID registry.

The registry maps a DID to a pointer record:
- owner: identity of the creator, fixed at creation
- content_address: off-chain pointer (e.g. an IPFS CID)
- live: True while the record exists

Only the owner may update or revoke a record. Each operation runs its
check-then-mutate sequence under one lock, and journals the change
before applying it, so a failed call never leaves partial state.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .. import events as ev
from ..errors import AlreadyExists, InvalidIdentifier, JournalError, NotFound, NotOwner
from ..events import EventSink
from ..journal import OP_CREATE, OP_REVOKE, OP_UPDATE, Journal, JournalEntry

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "did:uminai:"

@dataclass(frozen=True)
class PointerRecord:
    """
    Snapshot of a registry entry.

    Attributes:
        owner: Identity of the creator
        content_address: Off-chain content pointer
        live: True from creation until revocation
        created_at: When the record was created
        updated_at: When the content address last changed
    """
    owner: str
    content_address: str
    live: bool = True
    created_at: float = field(default_factory=time.time, compare=False)
    updated_at: float = field(default_factory=time.time, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "content_address": self.content_address,
            "live": self.live,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PointerRecord":
        now = time.time()
        return cls(
            owner=data["owner"],
            content_address=data["content_address"],
            live=data.get("live", True),
            created_at=data.get("created_at", now),
            updated_at=data.get("updated_at", now),
        )

def validate_identifier(did: str, prefix: str = DEFAULT_PREFIX) -> str:
    """
    Check that a DID starts with prefix and has at least one more character.

    Raises:
        InvalidIdentifier: If the DID is malformed
    """
    if not isinstance(did, str) or not did.startswith(prefix) or len(did) <= len(prefix):
        raise InvalidIdentifier(
            f"Identifier must start with {prefix!r} followed by at least one character: {did!r}",
            {"did": did, "prefix": prefix},
        )
    return did

class Registry:
    """
    The DID registry.

    Usage:
        registry = Registry(journal=Journal(data_dir / "journal.jsonl"),
                            events=EventLog())
        registry.create("did:uminai:abc", "bafy...", caller=alice.id)
        record = registry.query("did:uminai:abc")
    """

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        journal: Optional[Journal] = None,
        events: Optional[EventSink] = None,
    ):
        """
        Initialize the registry.

        Args:
            prefix: Required identifier prefix
            journal: Write-ahead journal; replayed now if given
            events: Sink that receives Created/Updated/Revoked events
        """
        if not prefix:
            raise ValueError("Identifier prefix must not be empty")
        self.prefix = prefix
        self.journal = journal
        self.events = events
        self._records: Dict[str, PointerRecord] = {}
        # Journal seq of the latest operation on each live record
        self._seqs: Dict[str, int] = {}
        self._lock = threading.Lock()
        if journal is not None:
            self._recover()

    def _recover(self):
        """Rebuild state by replaying the journal."""
        replayed = 0
        for entry in self.journal.entries():
            event = self._replay(entry)
            event.sequence = entry.seq
            if self.events is not None and hasattr(self.events, "restore"):
                self.events.restore(event)
            replayed += 1
        if replayed:
            logger.info(f"Recovered {len(self._records)} records from {replayed} journal entries")

    def _replay(self, entry: JournalEntry) -> ev.Event:
        try:
            validate_identifier(entry.did, self.prefix)
            record = self._records.get(entry.did)
            if entry.op == OP_CREATE:
                if record is not None:
                    raise AlreadyExists(f"{entry.did} already exists")
                created_at = entry.created_at if entry.created_at is not None else entry.timestamp
                self._records[entry.did] = PointerRecord(
                    owner=entry.caller,
                    content_address=entry.content_address,
                    created_at=created_at,
                    updated_at=entry.timestamp,
                )
                self._seqs[entry.did] = entry.seq
                return ev.created(entry.did, entry.caller, entry.content_address, entry.timestamp)

            if record is None:
                raise NotFound(f"{entry.did} not found")
            if record.owner != entry.caller:
                raise NotOwner(f"{entry.caller} does not own {entry.did}")
            if entry.op == OP_UPDATE:
                self._records[entry.did] = replace(
                    record, content_address=entry.content_address, updated_at=entry.timestamp,
                )
                self._seqs[entry.did] = entry.seq
                return ev.updated(entry.did, entry.content_address, entry.timestamp)

            del self._records[entry.did]
            self._seqs.pop(entry.did, None)
            return ev.revoked(entry.did, entry.timestamp)
        except (InvalidIdentifier, AlreadyExists, NotFound, NotOwner) as e:
            raise JournalError(
                f"Journal entry {entry.seq} ({entry.op} {entry.did}) cannot be replayed: {e.message}",
                {"seq": entry.seq, "cause": e.code},
            ) from e

    def _commit(self, op: str, did: str, caller: str, content_address: str = None) -> tuple[int, float]:
        """Journal an operation; returns its sequence (0 without a journal) and time."""
        if self.journal is None:
            return 0, time.time()
        entry = self.journal.append(op, did, caller, content_address)
        if op == OP_REVOKE:
            self._seqs.pop(did, None)
        else:
            self._seqs[did] = entry.seq
        return entry.seq, entry.timestamp

    def _emit(self, event: ev.Event, sequence: int):
        """
        Hand an event to the sink.

        The operation is already committed when this runs, so a failing
        sink is logged rather than reported to the caller.
        """
        if self.events is None:
            return
        if sequence:
            event.sequence = sequence
        try:
            self.events.publish(event)
        except Exception:
            logger.exception(f"Event sink failed on {event.event_type} {event.did}")

    def _require_owned(self, did: str, caller: str) -> PointerRecord:
        record = self._records.get(did)
        if record is None:
            raise NotFound(f"No live record for {did}", {"did": did})
        if record.owner != caller:
            raise NotOwner(f"{caller} is not the owner of {did}", {"did": did})
        return record

    def create(self, did: str, content_address: str, caller: str) -> PointerRecord:
        """
        Register a new DID owned by caller.

        Raises:
            InvalidIdentifier: DID does not satisfy the prefix rule
            AlreadyExists: DID already has a live record
        """
        validate_identifier(did, self.prefix)
        with self._lock:
            if did in self._records:
                raise AlreadyExists(f"{did} already exists", {"did": did})

            seq, now = self._commit(OP_CREATE, did, caller, content_address)
            record = PointerRecord(
                owner=caller,
                content_address=content_address,
                created_at=now,
                updated_at=now,
            )
            self._records[did] = record
            self._emit(ev.created(did, caller, content_address, now), seq)

        logger.info(f"Created {did} -> {content_address} (owner {caller})")
        return record

    def update(self, did: str, content_address: str, caller: str) -> PointerRecord:
        """
        Point an owned DID at a new content address.

        Raises:
            NotFound: No live record for the DID
            NotOwner: Caller did not create the DID
        """
        with self._lock:
            record = self._require_owned(did, caller)

            seq, now = self._commit(OP_UPDATE, did, caller, content_address)
            record = replace(record, content_address=content_address, updated_at=now)
            self._records[did] = record
            self._emit(ev.updated(did, content_address, now), seq)

        logger.info(f"Updated {did} -> {content_address}")
        return record

    def revoke(self, did: str, caller: str) -> None:
        """
        Remove an owned DID. The identifier may be created again afterwards.

        Raises:
            NotFound: No live record for the DID
            NotOwner: Caller did not create the DID
        """
        with self._lock:
            self._require_owned(did, caller)

            seq, now = self._commit(OP_REVOKE, did, caller)
            del self._records[did]
            self._emit(ev.revoked(did, now), seq)

        logger.info(f"Revoked {did}")

    def query(self, did: str) -> PointerRecord:
        """
        Get the record for a DID.

        Raises:
            NotFound: No live record for the DID
        """
        with self._lock:
            record = self._records.get(did)
        if record is None:
            raise NotFound(f"No live record for {did}", {"did": did})
        logger.debug(f"Query {did}")
        return record

    def compact(self) -> int:
        """
        Rewrite the journal as one create entry per live record.

        Each entry keeps the sequence number of the record's latest
        operation, so event sequences stay monotonic across compaction.

        Returns:
            Number of live records in the compacted journal
        """
        if self.journal is None:
            raise JournalError("Registry has no journal to compact")

        with self._lock:
            entries = [
                JournalEntry(
                    seq=self._seqs[did],
                    op=OP_CREATE,
                    did=did,
                    caller=record.owner,
                    content_address=record.content_address,
                    timestamp=record.updated_at,
                    created_at=record.created_at,
                )
                for did, record in self._records.items()
            ]
            entries.sort(key=lambda e: e.seq)
            self.journal.rewrite(entries)
        return len(entries)

    def __contains__(self, did: str) -> bool:
        with self._lock:
            return did in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
