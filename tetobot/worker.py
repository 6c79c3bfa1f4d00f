"""
tetobot.worker — Standalone Daily Reset Worker
===============================================

Wiring:
1. Load .env (DATABASE_URL).
2. Load config.yaml (economy + schedule).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build the economy services on the SQL store.
5. Either run one reset and exit (``--once``) or start the daily loop
   and block until interrupted.

Run with::

    python -m tetobot.worker            # daily loop
    python -m tetobot.worker --once     # one reset, then exit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from tetobot.config import load_config
from tetobot.database.engine import create_db_engine, init_db
from tetobot.database.repositories import sql_repositories
from tetobot.errors import DailyResetError
from tetobot.services.economy import build_economy
from tetobot.tasks import DailyResetScheduler, reset_time

logger = logging.getLogger("tetobot")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tetobot daily reset worker")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    parser.add_argument(
        "--once", action="store_true", help="Run a single daily reset and exit"
    )
    return parser.parse_args(argv)


async def _serve(scheduler: DailyResetScheduler) -> None:
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


def main(argv: list[str] | None = None) -> int:
    """Bootstrap and run the worker.  Returns the process exit code."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = _parse_args(argv)

    load_dotenv()
    cfg = load_config(args.config)

    engine = create_db_engine()
    init_db(engine)

    economy = build_economy(sql_repositories(engine), cfg.economy)
    scheduler = DailyResetScheduler(economy.daily_reset, reset_time(cfg.scheduler))

    if args.once:
        try:
            result = asyncio.run(scheduler.run_once())
        except DailyResetError:
            logger.exception("Daily reset failed")
            return 1
        logger.info("Daily reset result: %s", result.as_dict())
        return 0

    logger.info("Starting daily reset worker…")
    try:
        asyncio.run(_serve(scheduler))
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")
    return 0


if __name__ == "__main__":
    sys.exit(main())
