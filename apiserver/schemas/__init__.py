from apiserver.schemas.health import HealthResponse, RootResponse

__all__ = [
    "HealthResponse",
    "RootResponse",
]
