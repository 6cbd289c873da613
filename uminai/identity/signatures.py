# uminai/identity/signatures.py
"""
Request signatures for registry mutations.

A signed request carries:
    X-Actor:             key id of the signing actor
    X-Signature-Created: unix time the signature was made
    X-Signature-Nonce:   random value making each signature unique
    Digest:              SHA-256 of the request body
    X-Signature:         RSA-SHA256 over the canonical request description

The server verifies the signature against the actor's stored public key;
the verified actor's id becomes the caller of the registry operation.
"""

import base64
import hashlib
import json
import math
import secrets
import threading
import time
from typing import Any, Dict, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from ..errors import AuthenticationError
from .actor import Actor, ActorStore

DEFAULT_MAX_SKEW = 300.0

HEADER_ACTOR = "X-Actor"
HEADER_CREATED = "X-Signature-Created"
HEADER_NONCE = "X-Signature-Nonce"
HEADER_SIGNATURE = "X-Signature"
HEADER_DIGEST = "Digest"


def _canonicalize(data: Dict[str, Any]) -> str:
    """Sorted keys, no whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def body_digest(body: bytes) -> str:
    return "SHA-256=" + base64.b64encode(hashlib.sha256(body or b"").digest()).decode("ascii")


def _signing_string(
    key_id: str, method: str, path: str, digest: str, created: str, nonce: str,
) -> bytes:
    return _canonicalize({
        "keyId": key_id,
        "method": method.upper(),
        "path": path,
        "digest": digest,
        "created": created,
        "nonce": nonce,
    }).encode()


class ReplayCache:
    """
    Signatures seen within the skew window.

    A signature is remembered until its timestamp falls out of the window,
    after which verify_request rejects it as stale anyway.
    """

    def __init__(self):
        self._seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def check(self, signature: str, expires_at: float, now: float) -> None:
        """Record a signature, or raise if it was already used."""
        with self._lock:
            self._seen = {s: exp for s, exp in self._seen.items() if exp >= now}
            if signature in self._seen:
                raise AuthenticationError("Signature already used")
            self._seen[signature] = expires_at

    def __len__(self) -> int:
        return len(self._seen)


def sign_request(actor: Actor, method: str, path: str, body: bytes = b"") -> Dict[str, str]:
    """
    Sign a request with the actor's private key.

    Args:
        actor: Actor holding a private key
        method: HTTP method
        path: Request path, including any query string
        body: Raw request body

    Returns:
        Headers to attach to the request
    """
    if not actor.can_sign:
        raise AuthenticationError(f"Actor {actor.username} has no private key")

    private_key = serialization.load_pem_private_key(
        actor.private_key,
        password=None,
    )
    created = str(int(time.time()))
    nonce = secrets.token_hex(16)
    digest = body_digest(body)

    signature_bytes = private_key.sign(
        _signing_string(actor.key_id, method, path, digest, created, nonce),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )

    return {
        HEADER_ACTOR: actor.key_id,
        HEADER_CREATED: created,
        HEADER_NONCE: nonce,
        HEADER_DIGEST: digest,
        HEADER_SIGNATURE: base64.b64encode(signature_bytes).decode("ascii"),
    }


def verify_request(
    headers: Mapping[str, str],
    method: str,
    path: str,
    body: bytes,
    store: ActorStore,
    max_skew: float = DEFAULT_MAX_SKEW,
    now: float = None,
    replay_cache: Optional[ReplayCache] = None,
) -> Actor:
    """
    Verify a signed request.

    With a replay_cache, each signature is accepted once.

    Returns:
        The actor that signed the request

    Raises:
        AuthenticationError: If any part of the signature is missing or wrong
    """
    key_id = headers.get(HEADER_ACTOR)
    created = headers.get(HEADER_CREATED)
    nonce = headers.get(HEADER_NONCE)
    digest = headers.get(HEADER_DIGEST)
    signature = headers.get(HEADER_SIGNATURE)
    if not (key_id and created and nonce and digest and signature):
        raise AuthenticationError("Request is not signed")

    actor = store.get_by_key_id(key_id)
    if actor is None:
        raise AuthenticationError(f"Unknown key: {key_id}")

    if digest != body_digest(body):
        raise AuthenticationError("Body digest mismatch")

    try:
        created_at = float(created)
    except ValueError:
        raise AuthenticationError(f"Bad signature timestamp: {created}")
    if not math.isfinite(created_at):
        raise AuthenticationError(f"Bad signature timestamp: {created}")
    now = time.time() if now is None else now
    if abs(now - created_at) > max_skew:
        raise AuthenticationError("Signature expired or from the future")

    try:
        public_key = serialization.load_pem_public_key(actor.public_key)
        public_key.verify(
            base64.b64decode(signature),
            _signing_string(key_id, method, path, digest, created, nonce),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except (InvalidSignature, ValueError) as e:
        raise AuthenticationError(f"Invalid signature for {key_id}") from e

    if replay_cache is not None:
        replay_cache.check(signature, created_at + max_skew, now)

    return actor
