"""Health check service layer."""
import time
from typing import Optional

from apiserver.common.enums import HealthStatus, LifecycleState
from apiserver.config.settings import settings
from apiserver.schemas.health import HealthResponse
from apiserver.utils.datetime_utils import now


_start_time = time.time()


def get_uptime() -> float:
    """Get service uptime in seconds."""
    return round(time.time() - _start_time, 2)


def get_health(lifecycle) -> HealthResponse:
    """
    Build the health status from the process lifecycle.

    Args:
        lifecycle: LifecycleOrchestrator serving this app, or None before
            one is attached

    Returns:
        HealthResponse; status is healthy only once services are ready
    """
    state: Optional[LifecycleState] = getattr(lifecycle, "state", None)
    database = getattr(lifecycle, "database", None)
    database_connected = bool(getattr(database, "is_connected", False))

    healthy = state == LifecycleState.READY and database_connected

    return HealthResponse(
        status=HealthStatus.HEALTHY.value if healthy else HealthStatus.UNHEALTHY.value,
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifecycle=state.value if state is not None else LifecycleState.NOT_STARTED.value,
        database="connected" if database_connected else "disconnected",
        timestamp=now().isoformat(),
        uptime_seconds=get_uptime(),
    )
