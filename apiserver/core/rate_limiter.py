"""
Fixed-window rate limiter stored in the application database.

The limiter is created from the database connection once the server has
connected (see init_rate_limiter) and is used by RateLimitMiddleware.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from apiserver.common.exceptions import RateLimitExceeded
from apiserver.config.settings import settings
from apiserver.models.base import Base
from apiserver.models.rate_limit import RateLimitBucket
from apiserver.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """State of a key's window after a consume."""
    consumed_points: int
    remaining_points: int
    ms_before_next: int
    is_first_in_duration: bool


class RateLimiter:
    """
    Counts consumed points per key inside a window of `duration` seconds.
    The window opens on the first consume for a key.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        points: int,
        duration: int,
        key_prefix: str = "ratelimit",
    ):
        if points <= 0:
            raise ValueError("points must be positive")
        if duration <= 0:
            raise ValueError("duration must be positive")

        self.engine = engine
        self.points = points
        self.duration = duration
        self.key_prefix = key_prefix
        self._table_ready = False
        self._table_lock = asyncio.Lock()

    async def _ensure_table(self) -> None:
        if self._table_ready:
            return
        async with self._table_lock:
            if self._table_ready:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(
                    Base.metadata.create_all,
                    tables=[RateLimitBucket.__table__],
                )
            self._table_ready = True
            logger.info("Rate limit table ready")

    async def consume(self, key: str, points: int = 1) -> RateLimitResult:
        """
        Consume points for a key.

        Args:
            key: Identifier being limited (usually the client IP)
            points: Points to consume

        Returns:
            RateLimitResult for the key's current window

        Raises:
            RateLimitExceeded: If the window has no points left
        """
        await self._ensure_table()

        try:
            result = await self._consume_once(key, points)
        except IntegrityError:
            # Another request opened the window between our select and insert
            result = await self._consume_once(key, points)

        if result.consumed_points > self.points:
            raise RateLimitExceeded(key, result)
        return result

    async def _consume_once(self, key: str, points: int) -> RateLimitResult:
        storage_key = f"{self.key_prefix}:{key}"
        current = time.time()

        async with self.engine.begin() as conn:
            row = (
                await conn.execute(
                    select(RateLimitBucket.points, RateLimitBucket.expires_at)
                    .where(RateLimitBucket.key == storage_key)
                    .with_for_update()
                )
            ).first()

            if row is None:
                expires_at = current + self.duration
                consumed = points
                await conn.execute(
                    insert(RateLimitBucket).values(
                        key=storage_key, points=consumed, expires_at=expires_at
                    )
                )
            elif row.expires_at <= current:
                expires_at = current + self.duration
                consumed = points
                await conn.execute(
                    update(RateLimitBucket)
                    .where(RateLimitBucket.key == storage_key)
                    .values(points=consumed, expires_at=expires_at)
                )
            else:
                expires_at = row.expires_at
                consumed = row.points + points
                await conn.execute(
                    update(RateLimitBucket)
                    .where(RateLimitBucket.key == storage_key)
                    .values(points=RateLimitBucket.points + points)
                )

        return RateLimitResult(
            consumed_points=consumed,
            remaining_points=max(self.points - consumed, 0),
            ms_before_next=max(int((expires_at - current) * 1000), 0),
            is_first_in_duration=consumed == points,
        )


_rate_limiter: Optional[RateLimiter] = None


def init_rate_limiter(connection) -> RateLimiter:
    """
    Install the process-wide rate limiter on a database connection.

    Args:
        connection: DatabaseConnection returned by DatabaseManager.connect()

    Raises:
        ValueError: If the connection has no engine
    """
    global _rate_limiter

    engine = getattr(connection, "engine", None)
    if engine is None:
        raise ValueError("Rate limiter requires a connected database")

    _rate_limiter = RateLimiter(
        engine,
        points=settings.RATE_LIMIT_POINTS,
        duration=settings.RATE_LIMIT_DURATION,
    )
    return _rate_limiter


def get_rate_limiter() -> Optional[RateLimiter]:
    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None
