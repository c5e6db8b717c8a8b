#!/usr/bin/env python
"""
Run StockStat statistic calculations.

Usage:
    python run_calculation.py status
    python run_calculation.py daily
    python run_calculation.py backfill KGHM PKOBP
"""

import argparse
import asyncio
import logging
import os
import sys

# Load environment
from dotenv import load_dotenv

project_dir = os.path.dirname(os.path.abspath(__file__))
load_dotenv(os.path.join(project_dir, ".env"))

from stockstat.core.config import settings
from stockstat.db.database import close_db, get_db_context, init_db
from stockstat.services.statistics import create_statistic_service

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def show_status() -> int:
    async with get_db_context() as session:
        service = create_statistic_service(session)
        initial = await service.check_if_initial_update()
        performed = await service.check_if_update_performed()
    print(f"Initial update pending: {initial}")
    print(f"Update performed today (or weekend): {performed}")
    return 0


async def run_daily() -> int:
    async with get_db_context() as session:
        report = await create_statistic_service(session).process_daily_calculation()
    for symbol, reason in report.errors.items():
        print(f"{symbol}: {reason}")
    print(f"{len(report.created)} statistics added, {len(report.errors)} companies skipped")
    return 1 if report.has_errors else 0


async def run_backfill(symbols: list[str]) -> int:
    async with get_db_context() as session:
        results = await create_statistic_service(session).process_calculation_for_companies(symbols)
    for symbol, ok in results.items():
        print(f"{symbol}: {'OK' if ok else 'FAILED'}")
    return 0 if all(results.values()) else 1


async def main(args: argparse.Namespace) -> int:
    await init_db()
    try:
        if args.command == "status":
            return await show_status()
        if args.command == "daily":
            return await run_daily()
        return await run_backfill(args.symbols)
    finally:
        await close_db()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=f"{settings.app_name} statistic calculations")
    parser.add_argument("--version", action="version", version=f"%(prog)s {settings.app_version}")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show update status checks")
    commands.add_parser("daily", help="Add today's statistics for all companies")
    backfill = commands.add_parser("backfill", help="Recompute statistics over full history")
    backfill.add_argument("symbols", nargs="+", help="Company symbols")
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
