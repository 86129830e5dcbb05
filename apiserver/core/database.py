from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator, Optional
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)

from apiserver.config.settings import settings
from apiserver.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DatabaseConnection:
    """
    Handle returned by DatabaseManager.connect().
    `name` is the database name taken from the connection URL.
    """
    name: str
    engine: AsyncEngine


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def database_name(database_url: str) -> str:
    """
    Resolve a display name for the database behind a URL:
      postgresql+asyncpg://user:pw@host/orders -> "orders"
      sqlite+aiosqlite:///./data/app.db        -> "app"
      sqlite+aiosqlite://                      -> "memory"
    """
    url = make_url(database_url)
    database = url.database
    if _is_sqlite(database_url):
        if not database or database == ":memory:":
            return "memory"
        return Path(database).stem
    return database or url.host or "default"


class DatabaseManager:
    """
    Database connection manager with async support.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    async def connect(self) -> DatabaseConnection:
        """
        Initialize the connection pool and verify it with a round trip.

        Returns:
            DatabaseConnection: handle carrying the database name and engine

        Raises:
            Exception: Driver errors propagate unlogged; the caller decides
                whether they are fatal
        """
        engine_options = {
            "echo": settings.DB_ECHO,
            "pool_pre_ping": True,
        }
        if not _is_sqlite(self.database_url):
            engine_options.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
            )

        engine = create_async_engine(self.database_url, **engine_options)

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except BaseException:
            await engine.dispose()
            raise

        self.engine = engine
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info("Database connection pool initialized successfully")

        return DatabaseConnection(
            name=database_name(self.database_url),
            engine=self.engine,
        )

    async def disconnect(self) -> None:
        """
        Close database connections.
        """
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get database session as async context manager.
        Use this in handlers with 'async with db_manager.session() as db:'

        Yields:
            AsyncSession: Database session
        """
        if not self.session_factory:
            raise RuntimeError("Database not initialized. Call connect() first.")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


db_manager = DatabaseManager()
