"""API middleware for request processing.

Provides middleware for correlation IDs, request logging, bearer token
authentication and per-client rate limiting.

Rate limiting covers every path and runs ahead of authentication, so
rejected credentials still spend the client budget. Only authentication
exempts the public paths.
"""

import logging
import secrets
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from multirouter.config import GatewaySettings
from multirouter.errors import AuthenticationError, RateLimitExceeded
from multirouter.resilience.rate_limiter import SlidingWindowRateLimiter
from shared.logging import with_correlation_id


logger = logging.getLogger(__name__)

# Paths reachable without credentials
PUBLIC_PATHS = frozenset({"/health"})


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation ID to requests.

    Extracts correlation ID from headers or generates a new one and binds
    it to the logging context for the rest of the request.
    """

    HEADER_NAME = "X-Correlation-ID"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """Process the request.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response with correlation ID header.
        """
        with with_correlation_id(request.headers.get(self.HEADER_NAME)) as correlation_id:
            request.state.correlation_id = correlation_id
            response = await call_next(request)

        response.headers[self.HEADER_NAME] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging.

    Logs request details and response timing.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_host": request.client.host if request.client else None,
            },
        )

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response


class ApiKeyAuthMiddleware(BaseHTTPMiddleware):
    """Require ``Authorization: Bearer <key>`` on every non-public path."""

    def __init__(self, app: ASGIApp, api_key: str) -> None:
        super().__init__(app)
        self._api_key = api_key.encode()

    def _is_authorized(self, header: str | None) -> bool:
        if not header:
            return False
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return secrets.compare_digest(token.strip().encode(), self._api_key)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        if request.method == "OPTIONS" or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        if not self._is_authorized(request.headers.get("Authorization")):
            logger.warning(
                "Rejected request with missing or invalid API key",
                extra={"path": request.url.path},
            )
            error = AuthenticationError("Invalid or missing API key")
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_dict(),
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client-host request budget.

    Over-budget requests get 429 with a ``Retry-After`` header.
    """

    def __init__(self, app: ASGIApp, limiter: SlidingWindowRateLimiter) -> None:
        super().__init__(app)
        self._limiter = limiter

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        key = request.client.host if request.client else "anonymous"
        try:
            info = await self._limiter.acquire(key)
        except RateLimitExceeded as e:
            logger.warning(
                "Rate limit exceeded",
                extra={"client_host": key, "limit": e.limit},
            )
            return JSONResponse(
                status_code=e.status_code,
                content=e.to_dict(),
                headers={
                    "Retry-After": str(max(1, int(e.retry_after + 0.999))),
                    "X-RateLimit-Limit": str(e.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(info.limit)
        response.headers["X-RateLimit-Remaining"] = str(info.remaining)
        return response


def setup_middleware(app: FastAPI, settings: GatewaySettings) -> None:
    """Set up all middleware on the application.

    Middleware added last runs first, so requests pass through
    correlation, logging, CORS, rate limiting and then auth.

    Args:
        app: FastAPI application instance.
        settings: Gateway settings.
    """
    if settings.auth_enabled:
        app.add_middleware(
            ApiKeyAuthMiddleware,
            api_key=settings.api_key.get_secret_value(),
        )
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=SlidingWindowRateLimiter(max_requests=settings.rate_limit_max),
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
