import argparse
import json
import sys
from typing import List, Optional

from nm_hotspot import settings
from nm_hotspot.logging import setup_logging


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="nm-hotspot-settings",
        description="Settings protocol for the NetworkManager hotspot.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("describe", help="print the settings schema as JSON")

    p_set = sub.add_parser("set", help="validate and persist one field")
    p_set.add_argument("key")
    p_set.add_argument("value", help='JSON string literal, e.g. \'"MyNetwork"\'')

    p_action = sub.add_parser("action", help="run a named action")
    p_action.add_argument("id", help="save | reset | refresh_interfaces")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    # stdout carries the protocol; logs go to stderr.
    setup_logging(stream=sys.stderr)

    if args.command == "describe":
        print(json.dumps(settings.describe(), indent=2))
    elif args.command == "set":
        print(json.dumps(settings.set_value(args.key, args.value)))
    elif args.command == "action":
        print(json.dumps(settings.run_action(args.id)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
