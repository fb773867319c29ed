"""
Command-line price sync.

Examples:
    python scripts/run_sync.py all 7
    python scripts/run_sync.py country lt 30
    python scripts/run_sync.py historical all 2024-01-01 2024-03-31
    python scripts/run_sync.py year 2023 ee
    python scripts/run_sync.py years 2020 2023
    python scripts/run_sync.py all-historical
    python scripts/run_sync.py efficient
    python scripts/run_sync.py initial
    python scripts/run_sync.py test
    python scripts/run_sync.py status
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, engine, init_models, wait_for_database
from core.exceptions import PriceSyncException
from core.logging import setup_logging
from ingestion.runner import SyncEngine

setup_logging()
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync day-ahead electricity prices")
    commands = parser.add_subparsers(dest="command", required=True)

    all_cmd = commands.add_parser("all", help="Trailing window for all countries")
    all_cmd.add_argument("days", nargs="?", type=int, default=1)

    country_cmd = commands.add_parser("country", help="Trailing window for one country")
    country_cmd.add_argument("country")
    country_cmd.add_argument("days", nargs="?", type=int, default=1)

    historical = commands.add_parser("historical", help="Arbitrary date range")
    historical.add_argument("country", help="Country code or 'all'")
    historical.add_argument("start", help="YYYY-MM-DD")
    historical.add_argument("end", help="YYYY-MM-DD")

    year = commands.add_parser("year", help="One calendar year")
    year.add_argument("year", type=int)
    year.add_argument("country", nargs="?", default="all")

    years = commands.add_parser("years", help="Range of calendar years")
    years.add_argument("start_year", type=int)
    years.add_argument("end_year", type=int)
    years.add_argument("country", nargs="?", default="all")

    all_historical = commands.add_parser("all-historical", help="Everything since the earliest date")
    all_historical.add_argument("country", nargs="?", default="all")

    commands.add_parser("efficient", help="Bring every country up to date")
    commands.add_parser("initial", help="Run or resume the initial backfill")
    commands.add_parser("test", help="Test the market API connection")
    commands.add_parser("status", help="Show completeness and backfill status")

    return parser


async def show_status(sync_engine: SyncEngine):
    status = await sync_engine.get_initial_sync_status()
    logger.info(
        f"Initial sync complete={status.is_complete} completed_at={status.completed_at} "
        f"last_chunk={status.last_chunk} records={status.records_count}"
    )
    if status.last_error:
        logger.info(f"Last backfill error: {status.last_error}")

    for label, completeness in (await sync_engine.recent_completeness()).items():
        counts = ", ".join(f"{c.upper()}={n}" for c, n in completeness.country_counts.items())
        verdict = "complete" if completeness.is_complete else "incomplete"
        logger.info(f"{label.capitalize()} ({completeness.date}): {verdict} [{counts}]")


async def run(args) -> int:
    await wait_for_database()
    await init_models()
    sync_engine = SyncEngine(async_session_maker)

    try:
        if args.command == "all":
            result = await sync_engine.sync_all_countries_days(args.days)
        elif args.command == "country":
            result = await sync_engine.sync_country_days(args.country, args.days)
        elif args.command == "historical":
            result = await sync_engine.sync_historical_range(args.start, args.end, args.country)
        elif args.command == "year":
            result = await sync_engine.sync_year(args.year, args.country)
        elif args.command == "years":
            result = await sync_engine.sync_year_range(args.start_year, args.end_year, args.country)
        elif args.command == "all-historical":
            result = await sync_engine.sync_all_historical(args.country)
        elif args.command == "efficient":
            result = await sync_engine.sync_efficient()
        elif args.command == "initial":
            result = await sync_engine.run_initial_sync()
        elif args.command == "test":
            return 0 if await sync_engine.client.test_connection() else 1
        else:
            await show_status(sync_engine)
            return 0
    except PriceSyncException as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        await engine.dispose()

    logger.info(
        f"{result.sync_type}: {result.status} - processed={result.records_processed} "
        f"created={result.records_created} updated={result.records_updated}"
    )
    return 0 if result.status != "error" else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(run(build_parser().parse_args())))
