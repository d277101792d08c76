"""
Async PostgreSQL engine for the bridge.

One engine per process. Every repository call opens its own short session
through Database.session(); there are no transactions spanning repositories,
so each state transition is a single conditional statement.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config import settings
from .models import Base

logger = logging.getLogger(__name__)

_ASYNC_SCHEMES = ("postgres://", "postgresql://")


def asyncpg_url(url: str) -> str:
    """Point a plain postgres URL at the asyncpg driver."""
    for scheme in _ASYNC_SCHEMES:
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme):]
    return url


def _engine_options() -> dict:
    if settings.environment == "test":
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


class Database:
    """Owns the engine and the session factory."""

    def __init__(self, url: Optional[str] = None):
        self.url = url if url is not None else settings.database_url
        self.engine: Optional[AsyncEngine] = None
        self.sessions: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def ready(self) -> bool:
        return self.sessions is not None

    async def connect(self) -> bool:
        """Create the engine and the bridge tables. Returns False when unavailable."""
        if self.ready:
            return True
        if not self.url:
            logger.warning("DATABASE_URL not set; persistence disabled")
            return False

        try:
            engine = create_async_engine(
                asyncpg_url(self.url),
                echo=settings.database_echo,
                connect_args={"server_settings": {"application_name": "chat-task-bridge"}},
                **_engine_options(),
            )
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            logger.error(f"Could not connect to PostgreSQL: {e}")
            return False

        self.engine = engine
        self.sessions = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
        logger.info(f"PostgreSQL ready (pool_size={settings.db_pool_size})")
        return True

    async def disconnect(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("PostgreSQL engine disposed")
        self.engine = None
        self.sessions = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits when the block exits cleanly and rolls back otherwise."""
        if not self.ready and not await self.connect():
            raise RuntimeError("Database is not configured")

        async with self.sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> dict:
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
        return {"status": "healthy"}


_database: Optional[Database] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database()
    return _database


async def init_database() -> bool:
    return await get_database().connect()


async def close_database() -> None:
    global _database
    if _database is not None:
        await _database.disconnect()
        _database = None
