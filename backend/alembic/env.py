import asyncio
import logging
import os
import sys
from logging.config import fileConfig

# env.py lives in backend/alembic/; make 'devhance' importable without installing
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_engine_from_config

import devhance.models  # noqa: F401
from alembic import context
from devhance.core.config import settings
from devhance.db.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

# settings.DATABASE_URL wins over alembic.ini
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

CONNECT_ATTEMPTS = 10


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # SQLite cannot ALTER most constraints in place
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations on an async engine, retrying while the database comes up."""
    engine_kwargs = {}
    if settings.DATABASE_URL.startswith("postgresql"):
        engine_kwargs["connect_args"] = {"connect_timeout": 10}

    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        **engine_kwargs,
    )

    try:
        for attempt in range(1, CONNECT_ATTEMPTS + 1):
            try:
                async with connectable.connect() as connection:
                    await connection.run_sync(do_run_migrations)
                return
            except OperationalError:
                if attempt == CONNECT_ATTEMPTS:
                    raise
                delay_s = min(2 ** (attempt - 1), 10)
                logger.warning(
                    f"Database connection failed during migrations "
                    f"(attempt {attempt}/{CONNECT_ATTEMPTS}). Retrying in {delay_s}s..."
                )
                await asyncio.sleep(delay_s)
    finally:
        await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
