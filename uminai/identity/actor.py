# uminai/identity/actor.py
"""
Caller identities for the registry.

An Actor is an identity with:
- Username and display name
- RSA key pair; servers only hold the public half
- A URL id, which is the value the registry stores as record owner
"""

import json
import os
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)

DOMAIN = "registry.uminai.local"


def _generate_keypair() -> tuple[bytes, bytes]:
    """Generate RSA key pair for signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


@dataclass
class Actor:
    """
    A registry caller identity.

    Attributes:
        username: Unique username (e.g., "alice")
        display_name: Human-readable name
        public_key: PEM-encoded public key
        private_key: PEM-encoded private key, None for imported actors
        created_at: Timestamp of creation
        domain: Domain the actor id lives under
    """
    username: str
    display_name: str
    public_key: bytes
    private_key: Optional[bytes] = None
    created_at: float = field(default_factory=time.time)
    domain: str = DOMAIN

    @property
    def id(self) -> str:
        """Actor ID (URL); used as the owner of registry records."""
        return f"https://{self.domain}/users/{self.username}"

    @property
    def handle(self) -> str:
        return f"@{self.username}@{self.domain}"

    @property
    def key_id(self) -> str:
        """Key ID sent with signed requests."""
        return f"{self.id}#main-key"

    @property
    def can_sign(self) -> bool:
        return self.private_key is not None

    def to_activitypub(self) -> Dict[str, Any]:
        """Return the public JSON-LD representation (no private key)."""
        return {
            "@context": [
                "https://www.w3.org/ns/activitystreams",
                "https://w3id.org/security/v1",
            ],
            "type": "Person",
            "id": self.id,
            "preferredUsername": self.username,
            "name": self.display_name,
            "publicKey": {
                "id": self.key_id,
                "owner": self.id,
                "publicKeyPem": self.public_key.decode("utf-8"),
            },
        }

    @classmethod
    def from_activitypub(cls, data: Dict[str, Any]) -> "Actor":
        """
        Import a public actor document.

        The domain is taken from the actor id so the imported actor keeps
        the same id it had where it was created.
        """
        actor_id = data["id"]
        if "/users/" not in actor_id or "://" not in actor_id:
            raise ValueError(f"Unrecognised actor id: {actor_id}")
        domain = actor_id.split("://", 1)[1].split("/users/", 1)[0]
        username = data.get("preferredUsername") or actor_id.split("/users/")[-1]
        return cls(
            username=username,
            display_name=data.get("name") or username,
            public_key=data["publicKey"]["publicKeyPem"].encode("utf-8"),
            domain=domain,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        return {
            "username": self.username,
            "display_name": self.display_name,
            "public_key": self.public_key.decode("utf-8"),
            "private_key": self.private_key.decode("utf-8") if self.private_key else None,
            "created_at": self.created_at,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Actor":
        """Deserialize from storage."""
        private_key = data.get("private_key")
        return cls(
            username=data["username"],
            display_name=data["display_name"],
            public_key=data["public_key"].encode("utf-8"),
            private_key=private_key.encode("utf-8") if private_key else None,
            created_at=data.get("created_at", time.time()),
            domain=data.get("domain", DOMAIN),
        )

    @classmethod
    def create(cls, username: str, display_name: str = None, domain: str = DOMAIN) -> "Actor":
        """Create a new actor with generated keys."""
        private_pem, public_pem = _generate_keypair()
        return cls(
            username=username,
            display_name=display_name or username,
            public_key=public_pem,
            private_key=private_pem,
            domain=domain,
        )


class ActorStore:
    """
    Persistent storage for actors.

    Structure:
        store_dir/
            actors.json       # Index of all actors
    """

    def __init__(self, store_dir: Path | str, domain: str = DOMAIN):
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self.domain = domain
        self._actors: Dict[str, Actor] = {}
        self._stamp: Optional[tuple[int, int]] = None
        self._load()

    def _index_path(self) -> Path:
        return self.store_dir / "actors.json"

    def _file_stamp(self) -> Optional[tuple[int, int]]:
        try:
            st = self._index_path().stat()
        except FileNotFoundError:
            return None
        return st.st_mtime_ns, st.st_size

    def _load(self):
        """Load actors from disk."""
        index_path = self._index_path()
        if index_path.exists():
            with open(index_path) as f:
                data = json.load(f)
            self._actors = {
                username: Actor.from_dict(actor_data)
                for username, actor_data in data.get("actors", {}).items()
            }
        self._stamp = self._file_stamp()

    def _reload_if_changed(self) -> bool:
        """Pick up actors another process added to the index since the last load."""
        if self._file_stamp() == self._stamp:
            return False
        logger.debug(f"Reloading actor index {self._index_path()}")
        self._load()
        return True

    def _save(self):
        """Save actors to disk."""
        data = {
            "version": "1.0",
            "domain": self.domain,
            "actors": {
                username: actor.to_dict()
                for username, actor in self._actors.items()
            },
        }
        # Private keys live in this file; never let it exist with wider permissions
        tmp_path = self._index_path().with_suffix(".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self._index_path())
        self._stamp = self._file_stamp()

    def create(self, username: str, display_name: str = None) -> Actor:
        """Create and store a new actor."""
        if username in self._actors:
            raise ValueError(f"Actor {username} already exists")

        actor = Actor.create(username, display_name, domain=self.domain)
        self._actors[username] = actor
        self._save()
        logger.info(f"Created actor {actor.handle}")
        return actor

    def add(self, actor: Actor, replace: bool = False) -> Actor:
        """Store an existing actor, e.g. one imported from its public document."""
        existing = self._actors.get(actor.username)
        if existing and not replace and existing.id != actor.id:
            raise ValueError(f"Actor {actor.username} already exists with id {existing.id}")
        self._actors[actor.username] = actor
        self._save()
        logger.info(f"Added actor {actor.handle}")
        return actor

    def get(self, username: str) -> Optional[Actor]:
        """Get an actor by username."""
        actor = self._actors.get(username)
        if actor is None and self._reload_if_changed():
            actor = self._actors.get(username)
        return actor

    def _find(self, predicate) -> Optional[Actor]:
        for actor in self._actors.values():
            if predicate(actor):
                return actor
        return None

    def get_by_id(self, actor_id: str) -> Optional[Actor]:
        actor = self._find(lambda a: a.id == actor_id)
        if actor is None and self._reload_if_changed():
            actor = self._find(lambda a: a.id == actor_id)
        return actor

    def get_by_key_id(self, key_id: str) -> Optional[Actor]:
        actor = self._find(lambda a: a.key_id == key_id)
        if actor is None and self._reload_if_changed():
            actor = self._find(lambda a: a.key_id == key_id)
        return actor

    def list(self) -> List[Actor]:
        """List all actors."""
        return list(self._actors.values())

    def __contains__(self, username: str) -> bool:
        return username in self._actors

    def __len__(self) -> int:
        return len(self._actors)
