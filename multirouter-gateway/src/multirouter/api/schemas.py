"""API request and response schemas.

Defines Pydantic models for API validation and documentation. The
completion response shapes are shared with the translator and live in
``multirouter.providers.models``.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from multirouter.providers.models import (
    ChatMessage,
    ChatOptions,
    InstanceStatus,
    ModelCard,
    RoutingStrategy,
)


class ChatCompletionRequest(BaseModel):
    """API schema for ``POST /v1/chat/completions``.

    Unknown fields are accepted and ignored.
    """

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "model": "llama-3.3-70b-versatile",
                    "messages": [{"role": "user", "content": "Hello!"}],
                    "stream": False,
                }
            ]
        },
    )

    messages: list[ChatMessage] = Field(
        min_length=1,
        description="Conversation messages",
    )
    model: str = Field(
        min_length=1,
        description="Model identifier, or 'multirouter-auto' for round-robin",
    )
    stream: bool = Field(default=False, description="Stream the response as SSE")
    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    top_p: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Nucleus sampling parameter",
    )
    max_tokens: int | None = Field(
        default=None,
        gt=0,
        description="Maximum tokens to generate (legacy name)",
    )
    max_completion_tokens: int | None = Field(
        default=None,
        gt=0,
        description="Maximum tokens to generate",
    )
    stop: str | list[str] | None = Field(default=None, description="Stop sequence(s)")
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)

    def to_chat_options(self) -> ChatOptions:
        """Build backend options. ``max_completion_tokens`` wins over ``max_tokens``."""
        return ChatOptions(
            temperature=self.temperature,
            max_completion_tokens=(
                self.max_completion_tokens
                if self.max_completion_tokens is not None
                else self.max_tokens
            ),
            top_p=self.top_p,
            stop=self.stop,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
        )


class ModelList(BaseModel):
    """API response for listing models."""

    object: str = "list"
    data: list[ModelCard] = Field(description="Available models")


class InstanceHealth(BaseModel):
    """Health of one provider instance."""

    id: str = Field(description="Instance identifier")
    type: str = Field(description="Backend kind")
    status: InstanceStatus = Field(description="Current routing status")
    models: list[str] = Field(description="Declared models")
    error_count: int = Field(description="Failures since last recovery")
    last_error_at: datetime | None = Field(default=None, description="Time of last failure")


class HealthResponse(BaseModel):
    """API schema for health check response."""

    status: str = Field(description="ok, degraded or unavailable")
    version: str = Field(description="Application version")
    default_strategy: RoutingStrategy = Field(description="Configured default strategy")
    timestamp: datetime = Field(description="Check timestamp")
    providers: list[InstanceHealth] = Field(description="Per-instance health")


class ErrorDetail(BaseModel):
    """OpenAI-style error fields."""

    message: str
    type: str
    param: str | None = None
    code: str | None = None


class ErrorResponse(BaseModel):
    """API schema for error responses."""

    error: ErrorDetail
