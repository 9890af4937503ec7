"""FastAPI application entry point.

Creates and configures the FastAPI application with all
middleware, routes, exception handlers and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from multirouter import __version__
from multirouter.api.middleware import setup_middleware
from multirouter.api.routes import router
from multirouter.config import GatewaySettings, get_gateway_settings
from multirouter.errors import GatewayError, InvalidRequestError
from multirouter.gateway import Gateway
from multirouter.routing.registry import ProviderRegistry
from shared.logging import configure_logging


logger = logging.getLogger(__name__)


def _validation_param(exc: RequestValidationError) -> str | None:
    """Dotted location of the first invalid field, without the ``body`` prefix."""
    errors = exc.errors()
    if not errors:
        return None
    loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
    return ".".join(loc) or None


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    param = _validation_param(exc)
    return f"{param}: {first.get('msg')}" if param else str(first.get("msg"))


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as an OpenAI-style error body.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                exc.message,
                extra={"status_code": exc.status_code, "path": request.url.path},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        error = InvalidRequestError(_validation_message(exc), param=_validation_param(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        error = GatewayError("An unexpected error occurred", code="internal_error")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app(
    settings: GatewaySettings | None = None,
    registry: ProviderRegistry | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Gateway settings. If None, loads from environment.
        registry: Pre-built provider registry. If None, the gateway builds
            one from the providers file on startup.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_gateway_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Handles startup and shutdown events.
        """
        gateway = Gateway(settings=settings, registry=registry)
        app.state.gateway = gateway
        app.state.settings = settings

        logger.info(f"Starting MultiRouter v{__version__}")
        await gateway.startup()

        yield

        logger.info("Shutting down MultiRouter")
        await gateway.shutdown()

    app = FastAPI(
        title="MultiRouter",
        description="OpenAI-compatible gateway that routes chat completions "
        "across multiple LLM providers with automatic failover.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    register_exception_handlers(app)
    setup_middleware(app, settings)
    app.include_router(router)

    return app


def _build_default_app() -> FastAPI:
    settings = get_gateway_settings()
    configure_logging(
        level=settings.log_level.value,
        format_type=settings.log_format,
        service=settings.app_name,
    )
    return create_app(settings)


# Create application instance
app = _build_default_app()


def main() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_gateway_settings()

    uvicorn.run(
        "multirouter.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
