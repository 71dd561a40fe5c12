"""
ObelixIA CLI - run the API and call edge functions from a terminal.

Usage:
    obelixia serve [--host HOST] [--port PORT] [--reload]
    obelixia invoke FUNCTION ACTION [--param KEY=VALUE]... [--json]
    obelixia panels [--json]
"""

import argparse
import asyncio
import json
import logging
import sys

from obelixia.config import get_settings
from obelixia.database import get_supabase_client
from obelixia.remote import RemoteCallError, RemoteFunctionClient
from obelixia.services.panels import PANELS

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def parse_param(raw: str) -> tuple[str, object]:
    """Split ``key=value``; values that parse as JSON keep their type."""
    key, sep, value = raw.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"Invalid parameter {raw!r}, expected KEY=VALUE")
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


def cmd_serve(args):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("obelixia.main:app", host=args.host, port=args.port, reload=args.reload)


def cmd_invoke(args):
    """Call one edge function action and print its result."""
    params = dict(parse_param(p) for p in (args.param or []))
    client = RemoteFunctionClient(get_supabase_client())

    try:
        result = asyncio.run(client.invoke(args.function, args.action, **params))
    except RemoteCallError as e:
        logger.error(e.user_message())
        sys.exit(1)

    if args.json:
        print(json.dumps(result.data, indent=2, default=str))
        return
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        print(f"{key}: {value}")


def cmd_panels(args):
    """List the engine panels with their endpoint and refresh interval."""
    settings = get_settings()
    rows = [
        {
            "name": spec.name,
            "function": getattr(settings, spec.function_setting),
            "default_action": spec.default_action,
            "refresh_seconds": getattr(settings, spec.interval_setting),
            "actions": list(spec.actions),
        }
        for spec in PANELS.values()
    ]

    if args.json:
        print(json.dumps(rows, indent=2))
        return
    for row in rows:
        print(f"{row['name']:<20} {row['function']:<26} every {row['refresh_seconds']:g}s")
        print(f"  default: {row['default_action']} ({len(row['actions'])} actions)")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="obelixia",
        description="ObelixIA backend tools",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    # invoke
    p_invoke = subparsers.add_parser("invoke", help="Call an edge function action")
    p_invoke.add_argument("function", help="Edge function name")
    p_invoke.add_argument("action", help="Action to run")
    p_invoke.add_argument("--param", "-p", action="append", help="Parameter KEY=VALUE (repeatable)")
    p_invoke.add_argument("--json", "-j", action="store_true")

    # panels
    p_panels = subparsers.add_parser("panels", help="List engine panels")
    p_panels.add_argument("--json", "-j", action="store_true")

    args = parser.parse_args(argv)

    try:
        if args.command == "serve":
            cmd_serve(args)
        elif args.command == "invoke":
            cmd_invoke(args)
        elif args.command == "panels":
            cmd_panels(args)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
