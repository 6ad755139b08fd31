"""
Database Infrastructure
=======================

Engine and session lifecycle for PostgreSQL (asyncpg + pgvector).

Uses SQLAlchemy 2.0 async. A Database instance is created once per process
by the ServiceContainer and passed to whoever needs sessions; there is no
module-level engine.
"""

from contextlib import asynccontextmanager, contextmanager
from typing import AsyncGenerator, Iterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import Settings
from src.core import RepositoryException
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    """
    pass


@contextmanager
def repository_errors(operation: str) -> Iterator[None]:
    """Re-raise driver/ORM errors as RepositoryException (HTTP 503)."""
    try:
        yield
    except SQLAlchemyError as e:
        raise RepositoryException(
            f"Database operation failed: {operation}",
            {"operation": operation, "error": type(e).__name__}
        ) from e


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, settings: Settings):
        # asyncpg understands ssl=, not libpq's sslmode=
        database_url = settings.database_url.replace("sslmode=", "ssl=")

        self._engine: AsyncEngine = create_async_engine(
            database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
        self._session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Unit-of-work session: commits when the block exits cleanly and rolls
        back when it raises.

        Usage:
            async with database.session() as session:
                repo = SQLAlchemyDialogRepository(session)
                await repo.get_by_id("dlg_1")
        """
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """
        Enable pgvector and create all tables.

        Development convenience only; production uses migrations.
        """
        # Model modules must be imported so their tables are registered.
        import src.knowledge.infrastructure.models  # noqa: F401
        import src.solutions.infrastructure.models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """True when a connection can run a trivial query."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database ping failed", extra={"reason": str(e)})
            return False
        return True

    async def dispose(self) -> None:
        """Close pooled connections. Called on shutdown."""
        await self._engine.dispose()
