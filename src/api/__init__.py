"""ragvault API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    CollectionCreateRequest,
    CollectionResponse,
    ErrorResponse,
    HealthResponse,
    RetrieveRequest,
    RetrieveResponse,
)

__all__ = [
    "CollectionCreateRequest",
    "CollectionResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "RequestLoggingMiddleware",
    "RetrieveRequest",
    "RetrieveResponse",
    "configure_cors",
    "router",
]
