# uminai - Ownership-gated DID registry
#
# Maps DIDs (did:uminai:...) to pointer records holding an off-chain
# content address. Only the creator of a DID may update or revoke it.
#
# Core concepts:
# - Registry: the DID -> PointerRecord mapping with ownership checks
# - Journal: write-ahead log the registry replays on startup
# - EventLog: ordered Created/Updated/Revoked notifications
# - Actor: signing identity that becomes the caller of a mutation

from .errors import (
    RegistryError,
    InvalidIdentifier,
    AlreadyExists,
    NotFound,
    NotOwner,
    JournalError,
    AuthenticationError,
    ConfigError,
)
from .registry import Registry, PointerRecord, validate_identifier, DEFAULT_PREFIX
from .journal import Journal, JournalEntry
from .events import Event, EventLog, EventSink
from .identity import Actor, ActorStore, sign_request, verify_request
from .config import RegistryConfig, load_config

__all__ = [
    # Core
    "Registry",
    "PointerRecord",
    "validate_identifier",
    "DEFAULT_PREFIX",
    # Errors
    "RegistryError",
    "InvalidIdentifier",
    "AlreadyExists",
    "NotFound",
    "NotOwner",
    "JournalError",
    "AuthenticationError",
    "ConfigError",
    # Persistence and notifications
    "Journal",
    "JournalEntry",
    "Event",
    "EventLog",
    "EventSink",
    # Identity
    "Actor",
    "ActorStore",
    "sign_request",
    "verify_request",
    # Config
    "RegistryConfig",
    "load_config",
]

__version__ = "0.1.0"
