# uminai/events.py
"""
Change notifications for the registry.

Each successful mutation produces one event:
- Created: a DID was registered (carries owner and content address)
- Updated: the content address of a DID changed
- Revoked: a DID was removed

Events are kept in an append-only log. A journaled registry stamps each
event with its journal sequence number; otherwise the log assigns the
next one on publish. Either way sequences only grow, in the order the
registry applied the operations.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

CREATED = "Created"
UPDATED = "Updated"
REVOKED = "Revoked"

EVENT_TYPES = (CREATED, UPDATED, REVOKED)


@dataclass
class Event:
    """
    A registry change notification.

    Attributes:
        event_type: Created, Updated or Revoked
        did: The identifier the event is about
        owner: Creator of the record (Created only)
        content_address: Content address after the change (Created, Updated)
        sequence: Position in the event log, 0 until published
        timestamp: When the operation was applied
    """
    event_type: str
    did: str
    owner: Optional[str] = None
    content_address: Optional[str] = None
    sequence: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.event_type,
            "did": self.did,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
        }
        if self.owner is not None:
            data["owner"] = self.owner
        if self.content_address is not None:
            data["content_address"] = self.content_address
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            event_type=data["type"],
            did=data["did"],
            owner=data.get("owner"),
            content_address=data.get("content_address"),
            sequence=data.get("sequence", 0),
            timestamp=data.get("timestamp", time.time()),
        )


def created(did: str, owner: str, content_address: str, timestamp: float = None) -> Event:
    return Event(CREATED, did, owner=owner, content_address=content_address,
                 timestamp=timestamp or time.time())


def updated(did: str, content_address: str, timestamp: float = None) -> Event:
    return Event(UPDATED, did, content_address=content_address,
                 timestamp=timestamp or time.time())


def revoked(did: str, timestamp: float = None) -> Event:
    return Event(REVOKED, did, timestamp=timestamp or time.time())


class EventSink(Protocol):
    """Anything the registry can hand events to."""

    def publish(self, event: Event) -> Event:
        ...


Subscriber = Callable[[Event], None]


class EventLog:
    """
    Append-only event log with in-process subscribers.

    If path is given, every published event is also appended to it as
    one JSON line. The file is not read back; history after a restart
    is rebuilt from the registry journal via restore().
    """

    def __init__(self, path: Path | str = None):
        self.path = Path(path) if path else None
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._events: List[Event] = []
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    @property
    def last_sequence(self) -> int:
        return self._events[-1].sequence if self._events else 0

    def _append(self, event: Event) -> Event:
        # A sequence set by the caller (the journal's) is kept if it moves forward
        with self._lock:
            if event.sequence <= self.last_sequence:
                event.sequence = self.last_sequence + 1
            self._events.append(event)
        return event

    def publish(self, event: Event) -> Event:
        """
        Record an event and deliver it to subscribers.

        A subscriber that raises is logged and skipped; delivery is not
        retried and the remaining subscribers still receive the event.
        """
        self._append(event)
        if self.path:
            with open(self.path, "a") as f:
                f.write(json.dumps(event.to_dict()) + "\n")

        logger.debug(f"Event {event.sequence}: {event.event_type} {event.did}")

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber failed on event {event.sequence}")
        return event

    def restore(self, event: Event) -> Event:
        """Append a historical event without notifying subscribers."""
        return self._append(event)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for future events.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def since(self, sequence: int = 0) -> List[Event]:
        """Events with a sequence number greater than the given one."""
        with self._lock:
            return [e for e in self._events if e.sequence > sequence]

    def list(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        return len(self._events)
