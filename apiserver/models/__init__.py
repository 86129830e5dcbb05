from apiserver.models.base import Base
from apiserver.models.rate_limit import RateLimitBucket

__all__ = [
    "Base",
    "RateLimitBucket",
]
