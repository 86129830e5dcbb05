from sqlalchemy import Column, Float, Integer, String

from apiserver.common.constants import RATE_LIMIT_TABLE
from apiserver.models.base import Base


class RateLimitBucket(Base):
    """
    One fixed window of consumed points for a rate limit key.
    `expires_at` is a unix timestamp; an expired row is reset on next use.
    """
    __tablename__ = RATE_LIMIT_TABLE

    key = Column(String(255), primary_key=True)
    points = Column(Integer, nullable=False, default=0)
    expires_at = Column(Float, nullable=False, index=True)
