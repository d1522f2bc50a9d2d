"""Command-line entry point.

Usage:
    python -m launchpad_engine run
    python -m launchpad_engine init-db
    python -m launchpad_engine pools
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal

from pydantic import ValidationError

from launchpad_engine.config import Settings, get_settings
from launchpad_engine.context import create_context
from launchpad_engine.pipeline import Pipeline
from launchpad_engine.storage.database import DatabaseManager

logger = logging.getLogger("launchpad_engine")


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _run(settings: Settings) -> None:
    pipeline = Pipeline(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, pipeline.request_stop)
    await pipeline.run()


async def _init_db(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url, echo=settings.database.echo)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()


async def _pools(settings: Settings) -> None:
    ctx = create_context(settings)
    try:
        pools = await ctx.rewards.compute_reward_pools()
        print(json.dumps(pools.to_dict(), indent=2))
    finally:
        await ctx.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="launchpad-engine",
        description="Trade ingestion, quests, reward pools and agentic terminals",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="run ingestion jobs, terminals and the gateway")
    sub.add_parser("init-db", help="create database tables")
    sub.add_parser("pools", help="print the current reward pools as JSON")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except ValidationError as e:
        raise SystemExit(f"Invalid configuration: {e}") from e

    _configure_logging(settings)
    logger.info("Configuration: %s", settings.redacted_summary())

    commands = {"run": _run, "init-db": _init_db, "pools": _pools}
    try:
        asyncio.run(commands[args.command](settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
