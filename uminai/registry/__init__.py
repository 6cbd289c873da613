# uminai/registry/__init__.py
"""
uminai DID registry.

The registry maps a DID to a pointer record (owner, content address,
liveness). Only the creator of a DID may change or revoke it.

Example:
    registry = Registry(prefix="did:uminai:")
    registry.create("did:uminai:abc", "bafybeigdyrzt...", caller="alice")
    registry.query("did:uminai:abc").content_address
"""

from .registry import DEFAULT_PREFIX, PointerRecord, Registry, validate_identifier

__all__ = ["Registry", "PointerRecord", "validate_identifier", "DEFAULT_PREFIX"]
