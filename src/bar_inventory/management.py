"""Administrative commands for the bar inventory database."""
from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from . import models  # noqa: F401  registers the tables on Base.metadata
from .config import configure_logging, get_settings
from .database import Base, engine

logger = logging.getLogger(__name__)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create any missing tables."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def reset_database(db_engine: AsyncEngine | None = None) -> None:
    """Drop every table and create them again, empty."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def cli_init_database(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create the bar inventory tables.")
    parser.add_argument("--reset", action="store_true", help="drop existing tables and their data first")
    args = parser.parse_args(argv)

    configure_logging(get_settings())
    if args.reset:
        asyncio.run(reset_database())
        logger.warning("Database reset: all inventory, orders and history were removed")
    else:
        asyncio.run(init_database())
        logger.info("Database tables are in place")


if __name__ == "__main__":
    cli_init_database()
