"""Timezone-aware time helpers."""
from datetime import datetime
from zoneinfo import ZoneInfo

from apiserver.config.settings import settings


def now() -> datetime:
    """Current time in the application timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE))
