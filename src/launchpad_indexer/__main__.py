"""Command-line entry point: ``python -m launchpad_indexer <command>``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys

from launchpad_indexer.config import Settings, get_settings
from launchpad_indexer.service import IndexerService
from launchpad_indexer.storage.database import DatabaseManager
from launchpad_indexer.storage.repos import CampaignRepository

logger = logging.getLogger("launchpad_indexer")


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


async def _cmd_run(settings: Settings, args: argparse.Namespace) -> int:
    service = IndexerService(settings, dry_run=args.dry_run or None)
    await service.run()
    return 0


async def _cmd_pass(settings: Settings, args: argparse.Namespace) -> int:
    mode = "repair" if args.command == "repair" else "normal"
    service = IndexerService(settings, dry_run=args.dry_run or None)
    report = await service.run_once(mode)
    return 0 if report.ok else 1


async def _cmd_init_db(settings: Settings, args: argparse.Namespace) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()
    return 0


async def _cmd_deactivate(settings: Settings, args: argparse.Namespace) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        async with db.get_async_session() as session:
            found = await CampaignRepository(session).set_active(args.chain_id, args.address, active=False)
    finally:
        await db.dispose_async()
    if not found:
        logger.error("Campaign %s not found on chain %d", args.address, args.chain_id)
        return 1
    logger.info("Deactivated campaign %s on chain %d", args.address, args.chain_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="launchpad_indexer",
        description="Index launchpad campaigns, trades, candles and stats from EVM logs.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Run normal and repair passes on a schedule")
    run_parser.add_argument("--dry-run", action="store_true", help="Do not publish realtime deltas")
    run_parser.set_defaults(func=_cmd_run)

    once_parser = sub.add_parser("once", help="Run a single normal pass")
    once_parser.add_argument("--dry-run", action="store_true", help="Do not publish realtime deltas")
    once_parser.set_defaults(func=_cmd_pass)

    repair_parser = sub.add_parser("repair", help="Run a single repair pass")
    repair_parser.add_argument("--dry-run", action="store_true", help="Do not publish realtime deltas")
    repair_parser.set_defaults(func=_cmd_pass)

    init_parser = sub.add_parser("init-db", help="Create the schema from the models")
    init_parser.set_defaults(func=_cmd_init_db)

    deactivate_parser = sub.add_parser("deactivate", help="Stop indexing a campaign")
    deactivate_parser.add_argument("--chain-id", type=int, required=True)
    deactivate_parser.add_argument("--address", required=True)
    deactivate_parser.set_defaults(func=_cmd_deactivate)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    _configure_logging(settings)
    logger.info("Settings: %s", settings.redacted_summary())

    if args.command in ("run", "once", "repair"):
        try:
            settings.validate_requirements(command=args.command)
        except ValueError as e:
            logger.error("%s", e)
            return 2

    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(args.func(settings, args))
    return 130


if __name__ == "__main__":
    sys.exit(main())
