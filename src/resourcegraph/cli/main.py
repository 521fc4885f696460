#!/usr/bin/env python3
"""
resourcegraph CLI - Main entry point.

Usage:
    resourcegraph check resources.yaml                                 # Validate config, print argument schema
    resourcegraph serve resources.yaml --service-url http://svc:8001   # Run the API
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .. import __version__
from ..core.compiler import ResourceCompiler, compile_resources
from ..core.errors import GraphConfigError
from .config import Settings, load_resources


def cmd_check(args: argparse.Namespace) -> int:
    """Validate a resource config and print its argument schema."""
    try:
        config = load_resources(args.config)
    except GraphConfigError as e:
        print(f"Error: {e}")
        return 1

    result = ResourceCompiler().compile(config)
    if not result.success:
        print(f"Error: {args.config} has {len(result.errors)} problem(s):")
        for message in result.error_messages():
            print(f"  {message}")
        return 1

    print(json.dumps(result.registry.describe(), indent=2))
    print(f"\n{len(result.registry)} resource(s) OK")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the API against a resource service."""
    import uvicorn

    from ..api.router import create_app
    from ..runtime.pagination import PaginationEngine
    from ..runtime.resolver import Resolver
    from ..runtime.service_client import ServiceClient

    try:
        settings = Settings.from_env()
        registry = compile_resources(load_resources(args.config))
    except GraphConfigError as e:
        print(f"Error: {e}")
        return 1

    service_url = args.service_url or settings.service_url
    if not service_url:
        print("Error: no service URL. Pass --service-url or set RESOURCEGRAPH_SERVICE_URL.")
        return 1

    resolver = Resolver(
        registry,
        ServiceClient(service_url, timeout=settings.timeout),
        pagination=PaginationEngine(
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
        ),
        max_depth=settings.max_depth,
    )
    app = create_app(resolver, cors_origins=settings.cors_origins or None)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="resourcegraph",
        description="resourcegraph - declarative resource API resolution",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # check
    check_parser = subparsers.add_parser("check", help="Validate a resource config")
    check_parser.add_argument("config", help="Path to the resource YAML file")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API")
    serve_parser.add_argument("config", help="Path to the resource YAML file")
    serve_parser.add_argument("--service-url", help="Base URL of the resource service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    serve_parser.add_argument("--port", "-p", type=int, default=8000, help="Bind port")

    return parser


def app(args: Optional[List[str]] = None) -> int:
    """Main CLI application."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=parsed.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "check": cmd_check,
        "serve": cmd_serve,
    }

    handler = commands.get(parsed.command)
    if handler:
        return handler(parsed)

    parser.print_help()
    return 1


def main() -> None:
    """Entry point for CLI."""
    sys.exit(app())


if __name__ == "__main__":
    main()
