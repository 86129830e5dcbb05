"""
Centralized enumerations used across the server, its lifecycle and schemas.
"""
from enum import Enum


class Environment(str, Enum):
    """Deployment environment"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LifecycleState(str, Enum):
    """
    Process lifecycle states.

    NOT_STARTED -> LISTENING -> INITIALIZING_SERVICES -> READY, with
    SHUTTING_DOWN -> TERMINATED reachable from any of them.
    """
    NOT_STARTED = "not_started"
    LISTENING = "listening"
    INITIALIZING_SERVICES = "initializing_services"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class HealthStatus(str, Enum):
    """Health endpoint status"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
