# uminai/client.py
"""
Client SDK for the registry server.

Usage:
    store = ActorStore("~/.uminai/actors")
    client = RegistryClient("http://localhost:8080", actor=store.get("alice"))

    client.create("did:uminai:abc", "bafybeigdyrzt...")
    record = client.query("did:uminai:abc")
    client.revoke("did:uminai:abc")

Error responses are raised as the matching RegistryError subclass, so
callers handle NotOwner, NotFound etc. the same way as with a local
Registry.
"""

import json
from typing import List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .errors import AuthenticationError, RegistryError, error_from_dict
from .events import Event
from .identity import Actor, sign_request
from .registry import PointerRecord


class RegistryClient:
    """
    Client for the registry server.

    Args:
        base_url: Server URL (e.g., "http://localhost:8080")
        actor: Identity used to sign mutations; queries need none
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        actor: Optional[Actor] = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.actor = actor
        self.timeout = timeout

    def _request(self, method: str, path: str, data: dict = None, signed: bool = False) -> dict:
        """Make HTTP request to server."""
        url = f"{self.base_url}{path}"

        body = json.dumps(data).encode() if data is not None else b""
        headers = {"Content-Type": "application/json"} if data is not None else {}

        if signed:
            if self.actor is None:
                raise AuthenticationError("A signing actor is required for this operation")
            headers.update(sign_request(self.actor, method, path, body))

        req = Request(url, data=body or None, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode())
        except HTTPError as e:
            error_body = e.read().decode()
            try:
                error_data = json.loads(error_body)
            except json.JSONDecodeError:
                raise RegistryError(f"HTTP {e.code}: {error_body}")
            raise error_from_dict(error_data)
        except URLError as e:
            raise ConnectionError(f"Failed to connect to server: {e}")

    @staticmethod
    def _did_path(did: str) -> str:
        return f"/dids/{quote(did, safe=':')}"

    def health(self) -> bool:
        """Check if server is healthy."""
        try:
            result = self._request("GET", "/health")
            return result.get("status") == "ok"
        except (RegistryError, ConnectionError):
            return False

    def create(self, did: str, content_address: str) -> PointerRecord:
        """Register a DID owned by this client's actor."""
        data = self._request(
            "POST", "/dids", {"did": did, "content_address": content_address}, signed=True,
        )
        return PointerRecord.from_dict(data)

    def update(self, did: str, content_address: str) -> PointerRecord:
        """Point a DID at a new content address."""
        data = self._request(
            "PUT", self._did_path(did), {"content_address": content_address}, signed=True,
        )
        return PointerRecord.from_dict(data)

    def revoke(self, did: str) -> None:
        """Remove a DID."""
        self._request("DELETE", self._did_path(did), signed=True)

    def query(self, did: str) -> PointerRecord:
        """Get the record for a DID."""
        return PointerRecord.from_dict(self._request("GET", self._did_path(did)))

    def events(self, since: int = 0) -> List[Event]:
        """Events with a sequence number greater than since."""
        data = self._request("GET", f"/events?since={int(since)}")
        return [Event.from_dict(e) for e in data.get("events", [])]


__all__ = ["RegistryClient"]
