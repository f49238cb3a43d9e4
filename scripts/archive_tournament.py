#!/usr/bin/env python3
"""
Tournament archive operator CLI.

Subcommands:
  archive         Snapshot a tournament to the object store and index it
  get             Print an archived snapshot (normalized)
  list            List archived tournaments, newest first
  delete-archive  Delete a snapshot, its index entry and the row's archive stamp
  reconcile       Delete a tournament's live data (run after archive succeeded)
  health          Write/read/delete check against the object store

Usage:
  source .env
  python scripts/archive_tournament.py archive 42 --by ops@example.com
  python scripts/archive_tournament.py list
  python scripts/archive_tournament.py reconcile 42 --keep-tournament
  python scripts/archive_tournament.py health

Exit codes: 0 success, 1 partial success (warnings), 2 failure.

Guardrails:
  - reconcile refuses to run before the tournament is archived unless --force
  - Output is JSON on stdout; logs go to stderr
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from tourney.archive.service import ArchiveService, OperationResult, ResultStatus
from tourney.database import async_session_maker, close_db, get_session_with_retry, init_db
from tourney.storage.r2_client import get_object_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("archive_tournament")

EXIT_CODES = {
    ResultStatus.SUCCESS: 0,
    ResultStatus.PARTIAL: 1,
    ResultStatus.FAILED: 2,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Tournament archive operator CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_archive = sub.add_parser("archive", help="Snapshot a tournament to the object store")
    p_archive.add_argument("tournament_id", type=int)
    p_archive.add_argument("--by", dest="actor", default="cli", help="Actor recorded as archived_by")

    p_get = sub.add_parser("get", help="Print an archived snapshot")
    p_get.add_argument("tournament_id", type=int)

    sub.add_parser("list", help="List archived tournaments")

    p_delete = sub.add_parser("delete-archive", help="Delete a snapshot and its index entry")
    p_delete.add_argument("tournament_id", type=int)

    p_reconcile = sub.add_parser("reconcile", help="Delete a tournament's live data")
    p_reconcile.add_argument("tournament_id", type=int)
    p_reconcile.add_argument(
        "--keep-tournament",
        action="store_true",
        help="Keep the tournament row (marked archived), delete everything else",
    )
    p_reconcile.add_argument(
        "--force",
        action="store_true",
        help="Run even if the tournament has no archive",
    )

    sub.add_parser("health", help="Check the object store")
    return parser


async def run(args: argparse.Namespace, service: ArchiveService) -> OperationResult:
    if args.command == "archive":
        return await service.archive(args.tournament_id, args.actor)
    if args.command == "get":
        return await service.get_archive(args.tournament_id)
    if args.command == "list":
        return await service.list_archives()
    if args.command == "delete-archive":
        return await service.delete_archive(args.tournament_id)
    if args.command == "reconcile":
        if not args.force:
            existing = await service.get_archive(args.tournament_id)
            if not existing.ok:
                logger.error(
                    f"Tournament {args.tournament_id} has no readable archive "
                    f"({existing.reason.value}); archive it first or pass --force"
                )
                return existing
        return await service.reconcile_deletion(args.tournament_id, keep_tournament_row=args.keep_tournament)
    if args.command == "health":
        return await service.storage_health()
    raise ValueError(f"Unknown command: {args.command}")


async def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Wait for a sleeping database before touching the schema
    async with get_session_with_retry():
        pass
    await init_db()
    try:
        result = await run(args, ArchiveService(async_session_maker, get_object_store()))
    finally:
        await close_db()

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2, default=str))
    for warning in result.warnings:
        logger.warning(warning)
    return EXIT_CODES[result.status]


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
