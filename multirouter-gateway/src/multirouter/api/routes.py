"""API route definitions.

Defines the OpenAI-compatible FastAPI routes for the MultiRouter gateway.
Routing failures are raised as ``GatewayError`` and rendered by the
application's exception handlers.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from multirouter import __version__
from multirouter.api.schemas import (
    ChatCompletionRequest,
    ErrorResponse,
    HealthResponse,
    ModelList,
)
from multirouter.providers.models import ChatCompletion


logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_gateway(request: Request):
    """Dependency to get the gateway instance from app state."""
    return request.app.state.gateway


@router.post(
    "/v1/chat/completions",
    response_model=ChatCompletion,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        404: {"model": ErrorResponse, "description": "Model not found"},
        429: {"model": ErrorResponse, "description": "All providers rate-limited"},
        502: {"model": ErrorResponse, "description": "Provider error"},
        503: {"model": ErrorResponse, "description": "No providers available"},
    },
    summary="Create a chat completion",
    description="OpenAI-compatible chat completion, buffered or streamed as SSE.",
)
async def create_chat_completion(
    body: ChatCompletionRequest,
    request: Request,
    gateway=Depends(get_gateway),
):
    """Create a chat completion.

    Failover happens before any byte is sent; once a stream has started it
    stays on the instance that accepted it.
    """
    options = body.to_chat_options()

    if not body.stream:
        return await gateway.complete(body.messages, body.model, options)

    routed = await gateway.stream(body.messages, body.model, options)
    logger.debug(
        "Streaming completion committed",
        extra={"instance": routed.instance_id, "model": routed.model},
    )
    return StreamingResponse(
        routed.events(is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get(
    "/v1/models",
    response_model=ModelList,
    summary="List models",
    description="Every declared model plus the round-robin model.",
)
async def list_models(gateway=Depends(get_gateway)) -> ModelList:
    """List available models."""
    return ModelList(data=gateway.list_models())


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Routing status of every provider instance.",
)
async def health_check(gateway=Depends(get_gateway)) -> HealthResponse:
    """Perform a health check."""
    return gateway.health()


@router.get(
    "/",
    summary="Root endpoint",
    description="Basic information about the API.",
)
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "MultiRouter",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "models": "/v1/models",
        "chat_completions": "/v1/chat/completions",
    }
