# uminai/server.py
"""
HTTP server for the DID registry.

Provides a REST API over the registry operations.

Endpoints:
    POST   /dids             - Create a DID (signed)
    GET    /dids/:did        - Query a DID
    PUT    /dids/:did        - Update a DID's content address (signed)
    DELETE /dids/:did        - Revoke a DID (signed)
    GET    /events?since=N   - Events after sequence N
    GET    /actors/:username - Public actor document
    GET    /health           - Liveness check
"""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, unquote, urlparse

from .config import RegistryConfig, load_config
from .errors import (
    AlreadyExists,
    AuthenticationError,
    InvalidIdentifier,
    NotFound,
    NotOwner,
    RegistryError,
)
from .events import EventLog
from .identity import ActorStore, ReplayCache, verify_request
from .journal import Journal
from .registry import Registry

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    InvalidIdentifier: 400,
    AuthenticationError: 401,
    NotOwner: 403,
    NotFound: 404,
    AlreadyExists: 409,
}


class BadRequest(Exception):
    """Malformed request body or parameters."""


def status_for(error: RegistryError) -> int:
    for cls, status in STATUS_BY_ERROR.items():
        if isinstance(error, cls):
            return status
    return 500


class RegistryServer:
    """
    HTTP server for the registry.

    Usage:
        server = RegistryServer(load_config("uminai.yaml"))
        server.start()  # Blocking
    """

    def __init__(self, config: RegistryConfig):
        self.config = config
        self.config.data_dir.mkdir(parents=True, exist_ok=True)
        self.actors = ActorStore(config.actors_dir, domain=config.domain)
        self.replay_cache = ReplayCache()
        self.events = EventLog(config.events_path)
        self.registry = Registry(
            prefix=config.prefix,
            journal=Journal(config.journal_path),
            events=self.events,
        )
        self.host = config.host
        self.port = config.port
        self.httpd: Optional[ThreadingHTTPServer] = None

    def authenticate(self, headers, method: str, path: str, body: bytes) -> str:
        """Verify a signed request and return the caller id."""
        actor = verify_request(
            headers, method, path, body, self.actors,
            max_skew=self.config.max_skew, replay_cache=self.replay_cache,
        )
        return actor.id

    def _create_handler(server_instance):
        """Create request handler with access to server instance."""

        class RequestHandler(BaseHTTPRequestHandler):
            server_ref = server_instance

            def log_message(self, format, *args):
                logger.debug(format % args)

            def _send_json(self, data: Any, status: int = 200):
                payload = json.dumps(data).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            def _send_error(self, message: str, status: int = 400, code: str = "BadRequest"):
                self._send_json({"error": message, "code": code}, status)

            def _read_body(self) -> bytes:
                content_length = int(self.headers.get("Content-Length", 0))
                return self.rfile.read(content_length) if content_length else b""

            def _parse_json(self, body: bytes) -> Dict[str, Any]:
                try:
                    data = json.loads(body.decode() or "{}")
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    raise BadRequest(f"Invalid JSON: {e}")
                if not isinstance(data, dict):
                    raise BadRequest("Request body must be a JSON object")
                return data

            def _require(self, data: Dict[str, Any], key: str) -> str:
                value = data.get(key)
                if not isinstance(value, str) or not value:
                    raise BadRequest(f"Missing field: {key}")
                return value

            def _did_from_path(self, path: str) -> Optional[str]:
                if path.startswith("/dids/") and len(path) > len("/dids/"):
                    return unquote(path[len("/dids/"):])
                return None

            def _caller(self, body: bytes) -> str:
                return self.server_ref.authenticate(self.headers, self.command, self.path, body)

            def _handle(self, route):
                try:
                    route()
                except RegistryError as e:
                    status = status_for(e)
                    if status == 500:
                        logger.exception(f"{self.command} {self.path} failed")
                    else:
                        logger.debug(f"{self.command} {self.path} -> {status} {e.code}")
                    self._send_json(e.to_dict(), status)
                except BadRequest as e:
                    self._send_error(str(e), 400)
                except Exception as e:
                    logger.exception(f"{self.command} {self.path} failed")
                    self._send_error(str(e), 500, "InternalError")

            def do_GET(self):
                self._handle(self._route_get)

            def do_POST(self):
                self._handle(self._route_post)

            def do_PUT(self):
                self._handle(self._route_put)

            def do_DELETE(self):
                self._handle(self._route_delete)

            def _route_get(self):
                parsed = urlparse(self.path)
                path = parsed.path
                registry = self.server_ref.registry

                did = self._did_from_path(path)
                if did is not None:
                    record = registry.query(did)
                    self._send_json({"did": did, **record.to_dict()})

                elif path == "/events":
                    params = parse_qs(parsed.query)
                    try:
                        since = int(params.get("since", ["0"])[0])
                    except ValueError:
                        raise BadRequest("since must be an integer")
                    events = self.server_ref.events.since(since)
                    self._send_json({"events": [e.to_dict() for e in events]})

                elif path.startswith("/actors/"):
                    actor = self.server_ref.actors.get(unquote(path[len("/actors/"):]))
                    if actor is None:
                        self._send_error("Actor not found", 404, "NotFound")
                        return
                    self._send_json(actor.to_activitypub())

                elif path == "/health":
                    self._send_json({"status": "ok", "records": len(registry)})

                else:
                    self._send_error("Not found", 404, "NotFound")

            def _route_post(self):
                if urlparse(self.path).path != "/dids":
                    self._send_error("Not found", 404, "NotFound")
                    return
                body = self._read_body()
                caller = self._caller(body)
                data = self._parse_json(body)
                did = self._require(data, "did")
                record = self.server_ref.registry.create(
                    did, self._require(data, "content_address"), caller,
                )
                self._send_json({"did": did, **record.to_dict()}, 201)

            def _route_put(self):
                did = self._did_from_path(urlparse(self.path).path)
                if did is None:
                    self._send_error("Not found", 404, "NotFound")
                    return
                body = self._read_body()
                caller = self._caller(body)
                data = self._parse_json(body)
                record = self.server_ref.registry.update(
                    did, self._require(data, "content_address"), caller,
                )
                self._send_json({"did": did, **record.to_dict()})

            def _route_delete(self):
                did = self._did_from_path(urlparse(self.path).path)
                if did is None:
                    self._send_error("Not found", 404, "NotFound")
                    return
                body = self._read_body()
                caller = self._caller(body)
                self.server_ref.registry.revoke(did, caller)
                self._send_json({"did": did, "status": "revoked"})

        return RequestHandler

    def _bind(self) -> ThreadingHTTPServer:
        handler = self._create_handler()
        self.httpd = ThreadingHTTPServer((self.host, self.port), handler)
        # Port 0 binds an ephemeral port
        self.port = self.httpd.server_address[1]
        return self.httpd

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self):
        """Start the HTTP server (blocking)."""
        httpd = self._bind()
        logger.info(f"Registry server starting on {self.host}:{self.port}")
        print(f"Registry server running on {self.url}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nShutting down...")
        finally:
            httpd.server_close()

    def start_background(self) -> threading.Thread:
        """Start the server in a background thread."""
        httpd = self._bind()
        logger.info(f"Registry server starting on {self.host}:{self.port}")
        thread = threading.Thread(target=httpd.serve_forever)
        thread.daemon = True
        thread.start()
        return thread

    def shutdown(self):
        if self.httpd is not None:
            self.httpd.shutdown()
            self.httpd.server_close()
            self.httpd = None


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="uminai DID registry server")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to bind to")
    parser.add_argument("--data-dir", help="Data directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    serve(args)


def serve(args):
    """Build config from parsed arguments and run the server."""
    from pathlib import Path

    config = load_config(args.config)
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.data_dir:
        config.data_dir = Path(args.data_dir)

    RegistryServer(config).start()


if __name__ == "__main__":
    main()
