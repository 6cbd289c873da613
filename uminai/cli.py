#!/usr/bin/env python3
"""
uminai CLI

Command-line interface for the DID registry:
  uminai serve                 - Run the registry server
  uminai actor create <name>   - Create a local signing identity
  uminai actor export <name>   - Print the public actor document
  uminai actor import <file>   - Trust a public actor document
  uminai create <did> <cid>    - Register a DID
  uminai update <did> <cid>    - Change a DID's content address
  uminai revoke <did>          - Remove a DID
  uminai query <did>           - Show a DID's record
  uminai events                - List registry events
  uminai compact               - Compact the journal (server stopped)

Usage:
  uminai actor create alice
  uminai create did:uminai:abc bafy... --as alice --url http://localhost:8080
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .errors import RegistryError

DEFAULT_ACTORS_DIR = Path.home() / ".uminai" / "actors"
DEFAULT_URL = "http://localhost:8080"


def _actor_store(args):
    from .identity import ActorStore

    store_dir = Path(args.actors_dir) if args.actors_dir else DEFAULT_ACTORS_DIR
    if getattr(args, "domain", None):
        return ActorStore(store_dir, domain=args.domain)
    return ActorStore(store_dir)


def _client(args, signed: bool = False):
    from .client import RegistryClient

    actor = None
    if signed:
        store = _actor_store(args)
        actor = store.get(args.as_actor)
        if actor is None:
            raise RegistryError(f"Unknown local actor: {args.as_actor}")
    return RegistryClient(args.url or DEFAULT_URL, actor=actor)


def _print_record(did: str, record):
    print(f"{did}")
    print(f"  owner:   {record.owner}")
    print(f"  content: {record.content_address}")
    print(f"  live:    {record.live}")


def cmd_serve(args):
    """Run the registry server."""
    from .server import serve

    serve(args)


def cmd_actor_create(args):
    store = _actor_store(args)
    actor = store.create(args.username, args.display_name)
    print(f"Created {actor.handle}")
    print(f"  id: {actor.id}")
    print(f"  store: {store.store_dir}")


def cmd_actor_export(args):
    store = _actor_store(args)
    actor = store.get(args.username)
    if actor is None:
        raise RegistryError(f"Unknown local actor: {args.username}")
    output = json.dumps(actor.to_activitypub(), indent=2)
    if args.output:
        Path(args.output).write_text(output)
        print(f"Actor document saved to: {args.output}")
    else:
        print(output)


def cmd_actor_import(args):
    from .identity import Actor

    with open(args.file) as f:
        actor = Actor.from_activitypub(json.load(f))
    store = _actor_store(args)
    store.add(actor, replace=args.replace)
    print(f"Imported {actor.handle}")


def cmd_actor_list(args):
    store = _actor_store(args)
    for actor in store.list():
        marker = "*" if actor.can_sign else " "
        print(f"{marker} {actor.username:<20} {actor.id}")


def cmd_create(args):
    record = _client(args, signed=True).create(args.did, args.content_address)
    _print_record(args.did, record)


def cmd_update(args):
    record = _client(args, signed=True).update(args.did, args.content_address)
    _print_record(args.did, record)


def cmd_revoke(args):
    _client(args, signed=True).revoke(args.did)
    print(f"Revoked {args.did}")


def cmd_query(args):
    record = _client(args).query(args.did)
    if args.json:
        print(json.dumps({"did": args.did, **record.to_dict()}, indent=2))
    else:
        _print_record(args.did, record)


def cmd_events(args):
    for event in _client(args).events(since=args.since):
        detail = event.content_address or ""
        print(f"{event.sequence:>6} {event.event_type:<8} {event.did} {detail}".rstrip())


def cmd_compact(args):
    """Compact the journal of a stopped server."""
    from .config import load_config
    from .journal import Journal
    from .registry import Registry

    config = load_config(args.config)
    if args.data_dir:
        config.data_dir = Path(args.data_dir)

    journal = Journal(config.journal_path)
    before = len(journal)
    registry = Registry(prefix=config.prefix, journal=journal)
    after = registry.compact()
    print(f"Compacted {config.journal_path}: {before} -> {after} entries")


def _add_client_args(parser, signed: bool = False):
    parser.add_argument("--url", help=f"Registry server URL (default: {DEFAULT_URL})")
    if signed:
        parser.add_argument("--as", dest="as_actor", required=True,
                            help="Local actor to sign with")
        parser.add_argument("--actors-dir", help="Local actor store")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uminai",
        description="uminai - ownership-gated DID registry",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the registry server")
    serve_parser.add_argument("--config", help="YAML config file")
    serve_parser.add_argument("--host", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")
    serve_parser.add_argument("--data-dir", help="Data directory")
    serve_parser.set_defaults(func=cmd_serve)

    # actor commands
    actor_parser = subparsers.add_parser("actor", help="Manage identities")
    actor_sub = actor_parser.add_subparsers(dest="actor_command")

    actor_create = actor_sub.add_parser("create", help="Create a signing identity")
    actor_create.add_argument("username")
    actor_create.add_argument("--display-name", help="Human-readable name")
    actor_create.add_argument("--domain", help="Domain for the actor id")
    actor_create.set_defaults(func=cmd_actor_create)

    actor_export = actor_sub.add_parser("export", help="Print public actor document")
    actor_export.add_argument("username")
    actor_export.add_argument("-o", "--output", help="Write to file instead of stdout")
    actor_export.set_defaults(func=cmd_actor_export)

    actor_import = actor_sub.add_parser("import", help="Trust a public actor document")
    actor_import.add_argument("file", help="Actor JSON file")
    actor_import.add_argument("--replace", action="store_true",
                              help="Replace an existing actor with the same username")
    actor_import.set_defaults(func=cmd_actor_import)

    actor_list = actor_sub.add_parser("list", help="List identities")
    actor_list.set_defaults(func=cmd_actor_list)

    for sub in (actor_create, actor_export, actor_import, actor_list):
        sub.add_argument("--actors-dir", help="Actor store directory")

    # registry commands
    create_parser = subparsers.add_parser("create", help="Register a DID")
    create_parser.add_argument("did")
    create_parser.add_argument("content_address")
    _add_client_args(create_parser, signed=True)
    create_parser.set_defaults(func=cmd_create)

    update_parser = subparsers.add_parser("update", help="Change a DID's content address")
    update_parser.add_argument("did")
    update_parser.add_argument("content_address")
    _add_client_args(update_parser, signed=True)
    update_parser.set_defaults(func=cmd_update)

    revoke_parser = subparsers.add_parser("revoke", help="Remove a DID")
    revoke_parser.add_argument("did")
    _add_client_args(revoke_parser, signed=True)
    revoke_parser.set_defaults(func=cmd_revoke)

    query_parser = subparsers.add_parser("query", help="Show a DID's record")
    query_parser.add_argument("did")
    query_parser.add_argument("--json", action="store_true", help="Print JSON")
    _add_client_args(query_parser)
    query_parser.set_defaults(func=cmd_query)

    events_parser = subparsers.add_parser("events", help="List registry events")
    events_parser.add_argument("--since", type=int, default=0,
                               help="Only events after this sequence number")
    _add_client_args(events_parser)
    events_parser.set_defaults(func=cmd_events)

    compact_parser = subparsers.add_parser("compact", help="Compact the journal")
    compact_parser.add_argument("--config", help="YAML config file")
    compact_parser.add_argument("--data-dir", help="Data directory")
    compact_parser.set_defaults(func=cmd_compact)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        sys.exit(1)

    try:
        func(args)
    except RegistryError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        sys.exit(2)
    except ConnectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(3)


if __name__ == "__main__":
    main()
