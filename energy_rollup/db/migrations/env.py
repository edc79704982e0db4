"""
Alembic environment for the rollup schema, run through the async engine.

Reads DATABASE_URL from the service settings and compares against the ORM
metadata for autogenerate. The rollup materialized views are managed by
hand-written revisions, so autogenerate is told to ignore them.

CHANGELOG:
- 2026-10-04: Exclude rollup views from autogenerate (STORY-022)
- 2026-10-03: Point metadata at the rollup models (STORY-021)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from energy_rollup.config import get_settings
from energy_rollup.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

ROLLUP_VIEWS = frozenset({"energy_hourly_buckets", "energy_daily_buckets"})


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip the hand-managed rollup views during autogenerate."""
    return not (type_ == "table" and name in ROLLUP_VIEWS)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit migration SQL to the script output without a live connection."""
    _configure(
        url=get_settings().DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    """Run migrations on a synchronous connection handed over by run_sync."""
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Open an asyncpg connection and run the migrations inside it."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = get_settings().DATABASE_URL

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
