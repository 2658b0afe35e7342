"""
Graph operator tool for the ONS ACL server.

Commands:
- init: Create the graph schema
- stats: Print node and edge counts as JSON
- divergence: Compare a domain's records in the graph with the record store

Usage:
    ons-acl init
    ons-acl stats
    ons-acl divergence acme.io

Invariants:
    - Read-only except for init; divergence is reported, never repaired
    - divergence exits 1 when the two sides disagree
    - Output is sorted JSON for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from ..config import ServerConfig
from ..errors import AclError
from ..main import setup_logging
from ..service import AclService

logger = logging.getLogger(__name__)


class GraphCLI:
    """CLI commands over an AclService.

    Example:
        >>> cli = GraphCLI(service)
        >>> await cli.stats()  # Returns JSON text
    """

    def __init__(self, service: AclService) -> None:
        self.service = service

    async def init(self) -> str:
        await self.service.graph.initialize()
        return json.dumps({"initialized": str(self.service.graph.db_path)})

    async def stats(self) -> str:
        return json.dumps(await self.service.graph.get_stats(), indent=2, sort_keys=True)

    async def divergence(self, domain: str) -> tuple[bool, str]:
        """Report divergence for a domain.

        Returns:
            (diverged, JSON report)
        """
        report = await self.service.records.divergence(domain)
        return report.diverged, json.dumps(asdict(report), indent=2, sort_keys=True)


async def _run(args: argparse.Namespace, config: ServerConfig) -> int:
    async with AclService(config) as service:
        cli = GraphCLI(service)
        if args.command == "init":
            print(await cli.init())
            return 0

        if args.command == "stats":
            print(await cli.stats())
            return 0

        diverged, report = await cli.divergence(args.domain)
        print(report)
        return 1 if diverged else 0


def main() -> None:
    """CLI entry point for the graph tool."""
    parser = argparse.ArgumentParser(description="ONS ACL graph operator tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the graph schema")
    subparsers.add_parser("stats", help="Print node and edge counts")

    divergence_parser = subparsers.add_parser(
        "divergence", help="Compare a domain's records with the record store"
    )
    divergence_parser.add_argument("domain", help="Domain name")

    args = parser.parse_args()

    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config)

    try:
        sys.exit(asyncio.run(_run(args, config)))
    except AclError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
