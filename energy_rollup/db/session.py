"""
Async engine and session factory construction.

The service container calls these once per process and hands the session
factory to every repository; each repository call opens its own short
``AsyncSession``. Connections are opened lazily by the pool.

CHANGELOG:
- 2026-10-05: Drop module-level singletons in favor of the container (STORY-022)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from energy_rollup.config import Settings, get_settings


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Build the asyncpg engine for ``DATABASE_URL`` with pre-ping enabled."""
    settings = settings or get_settings()
    return create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to *engine*; ORM objects stay usable after commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
