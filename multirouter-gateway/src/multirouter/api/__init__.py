"""API layer for the MultiRouter gateway."""

from multirouter.api.routes import router
from multirouter.api.schemas import (
    ChatCompletionRequest,
    ErrorResponse,
    HealthResponse,
    InstanceHealth,
    ModelList,
)
from multirouter.api.middleware import (
    ApiKeyAuthMiddleware,
    CorrelationIdMiddleware,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    setup_middleware,
)

__all__ = [
    "router",
    "ChatCompletionRequest",
    "ErrorResponse",
    "HealthResponse",
    "InstanceHealth",
    "ModelList",
    "ApiKeyAuthMiddleware",
    "CorrelationIdMiddleware",
    "RateLimitMiddleware",
    "RequestLoggingMiddleware",
    "setup_middleware",
]
