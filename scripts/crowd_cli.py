"""Command-line wrapper around the Crowd connector session.

Settings come from the environment (see crowd_connector.config.settings).

Examples:
    python scripts/crowd_cli.py test
    python scripts/crowd_cli.py create user --attributes '{"username": "alice", "groups": ["dev"]}'
    python scripts/crowd_cli.py update user 32769:abc --set email=alice@example.com --add groups=ops
    python scripts/crowd_cli.py search group --page-size 20 --page-offset 1
"""
from __future__ import annotations
import argparse
import json
import sys
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from crowd_connector.connector import CrowdConnector
from crowd_connector.core.exceptions import ConnectorError
from crowd_connector.core.filters import translate
from crowd_connector.core.objects import NAME_NAME, UID_NAME, AttributeDelta, SearchOptions, Uid


def _split_pair(raw: str) -> tuple[str, str]:
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"Expected name=value, got '{raw}'")
    name, value = raw.split("=", 1)
    return name.strip(), value


def build_deltas(sets: List[str], adds: List[str], removes: List[str], clears: List[str]) -> List[AttributeDelta]:
    """Turn --set/--add/--remove/--clear options into attribute deltas."""
    deltas: "OrderedDict[str, AttributeDelta]" = OrderedDict()

    def _delta(name: str) -> AttributeDelta:
        if name not in deltas:
            deltas[name] = AttributeDelta(name)
        return deltas[name]

    for raw in sets:
        name, value = _split_pair(raw)
        _delta(name).values_to_add = [value]
    for raw in adds:
        name, value = _split_pair(raw)
        delta = _delta(name)
        delta.values_to_add = (delta.values_to_add or []) + [value]
    for raw in removes:
        name, value = _split_pair(raw)
        delta = _delta(name)
        delta.values_to_remove = (delta.values_to_remove or []) + [value]
    for name in clears:
        _delta(name).values_to_add = []
    return list(deltas.values())


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crowd connector helper")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("schema")
    sub.add_parser("test")

    sg = sub.add_parser("get")
    sg.add_argument("object_class", choices=["user", "group"])
    sg.add_argument("uid")
    sg.add_argument("--attributes-to-get", nargs="*", default=None)

    ss = sub.add_parser("search")
    ss.add_argument("object_class", choices=["user", "group"])
    ss.add_argument("--uid")
    ss.add_argument("--name")
    ss.add_argument("--page-size", type=int)
    ss.add_argument("--page-offset", type=int)
    ss.add_argument("--attributes-to-get", nargs="*", default=None)
    ss.add_argument("--partial", action="store_true", help="Allow partial attribute values")

    sc = sub.add_parser("create")
    sc.add_argument("object_class", choices=["user", "group"])
    sc.add_argument("--attributes", required=True, help="JSON object of attributes")

    su = sub.add_parser("update")
    su.add_argument("object_class", choices=["user", "group"])
    su.add_argument("uid")
    su.add_argument("--set", action="append", default=[], metavar="NAME=VALUE")
    su.add_argument("--add", action="append", default=[], metavar="NAME=VALUE")
    su.add_argument("--remove", action="append", default=[], metavar="NAME=VALUE")
    su.add_argument("--clear", action="append", default=[], metavar="NAME")

    sd = sub.add_parser("delete")
    sd.add_argument("object_class", choices=["user", "group"])
    sd.add_argument("uid")

    return parser


def main(argv: Optional[List[str]] = None, connector: Optional[CrowdConnector] = None) -> int:
    """Command-line entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    try:
        connector = connector or CrowdConnector()
        if not connector.initialized:
            connector.init()

        if args.cmd == "schema":
            _print_json(connector.schema())
        elif args.cmd == "test":
            connector.test()
            print("[test] Connection OK")
        elif args.cmd == "get":
            options = SearchOptions(attributes_to_get=args.attributes_to_get)
            obj = connector.get(args.object_class, Uid(args.uid), options)
            if obj is None:
                print(f"[get] {args.object_class} '{args.uid}' not found", file=sys.stderr)
                return 1
            _print_json(obj.to_dict())
        elif args.cmd == "search":
            options = SearchOptions(
                page_size=args.page_size,
                page_offset=args.page_offset,
                attributes_to_get=args.attributes_to_get,
                allow_partial_attribute_values=args.partial,
            )
            query = None
            if args.uid:
                query = translate({"attribute": UID_NAME, "value": args.uid})
            elif args.name:
                query = translate({"attribute": NAME_NAME, "value": args.name})
            results: List[Dict] = []
            connector.search(args.object_class, query, lambda o: results.append(o.to_dict()) or True, options)
            _print_json(results)
        elif args.cmd == "create":
            try:
                attributes = json.loads(args.attributes)
            except json.JSONDecodeError as e:
                parser.error(f"--attributes is not valid JSON: {e}")
            uid = connector.create(args.object_class, attributes)
            _print_json({"uid": uid.value, "name": uid.name_hint})
        elif args.cmd == "update":
            try:
                deltas = build_deltas(args.set, args.add, args.remove, args.clear)
            except argparse.ArgumentTypeError as e:
                parser.error(str(e))
            if not deltas:
                parser.error("update needs at least one --set/--add/--remove/--clear")
            connector.update_delta(args.object_class, Uid(args.uid), deltas)
            print(f"[update] {args.object_class} '{args.uid}' updated")
        elif args.cmd == "delete":
            connector.delete(args.object_class, Uid(args.uid))
            print(f"[delete] {args.object_class} '{args.uid}' deleted")
    except ConnectorError as e:
        print(f"[{args.cmd}] Error: {e.error}: {e.message}", file=sys.stderr)
        return 1
    finally:
        if connector is not None:
            connector.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
