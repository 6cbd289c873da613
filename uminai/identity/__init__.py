# uminai/identity/__init__.py
"""
Caller identity for the registry.

Core concepts:
- Actor: A user identity with an RSA key pair
- ActorStore: Persistent actor index
- Signed requests: proof that a mutation comes from a given actor

The registry itself treats the caller as an opaque value; this package
is how the HTTP service turns a request into one.
"""

from .actor import DOMAIN, Actor, ActorStore
from .signatures import ReplayCache, sign_request, verify_request

__all__ = [
    "Actor",
    "ActorStore",
    "ReplayCache",
    "sign_request",
    "verify_request",
    "DOMAIN",
]
