"""Alembic environment for the launchpad schema.

The database URL comes from ``SQLALCHEMY_DATABASE_URL`` or ``DATABASE_URL``
(``.env`` is honoured), falling back to the ini option and then to the local
SQLite file the engine uses by default. Online migrations run on an async
engine, so the same URLs work here and in the application.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from launchpad_engine.storage.database import to_async_url
from launchpad_engine.storage.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

load_dotenv(override=False)

LOCAL_DATABASE_URL = "sqlite+aiosqlite:///launchpad.db"


def resolve_url() -> str:
    url = os.environ.get("SQLALCHEMY_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if url:
        return to_async_url(os.path.expandvars(url))
    return config.get_main_option("sqlalchemy.url") or LOCAL_DATABASE_URL


DATABASE_URL = resolve_url()
# SQLite cannot ALTER most constraints in place.
BATCH_MODE = DATABASE_URL.startswith("sqlite")


def _configure(**kwargs: object) -> None:
    context.configure(target_metadata=Base.metadata, render_as_batch=BATCH_MODE, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Emit SQL to stdout without a live connection."""
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})


async def run_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


def _migrate(connection: Connection) -> None:
    _configure(connection=connection)


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
