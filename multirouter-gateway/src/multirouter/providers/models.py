"""Provider-agnostic models for chat routing.

These models are the uniform internal vocabulary shared by the backend
adapters, the provider registry and the API layer.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Reserved model identifier that selects round-robin routing
AUTO_MODEL_ID = "multirouter-auto"
AUTO_MODEL_OWNER = "multirouter"


class ProviderType(str, Enum):
    """Backend kinds a provider instance can be configured as."""

    OPENAI = "openai"
    GROQ = "groq"
    CEREBRAS = "cerebras"
    OPENROUTER = "openrouter"
    GEMINI = "gemini"
    OPENAI_COMPATIBLE = "openai-compatible"


class RoutingStrategy(str, Enum):
    """Routing strategies understood by the gateway."""

    EXHAUST = "exhaust"
    ROUND_ROBIN = "round-robin"


class InstanceStatus(str, Enum):
    """Runtime status of a provider instance."""

    ACTIVE = "active"
    RATE_LIMITED = "rate-limited"


class MessageRole(str, Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single message in a conversation."""

    model_config = ConfigDict(extra="ignore")

    role: MessageRole = Field(description="Role of the message sender")
    content: str = Field(description="Content of the message")

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI API format."""
        return {"role": self.role.value, "content": self.content}


class ChatOptions(BaseModel):
    """Optional generation parameters forwarded to a backend.

    Unset fields are omitted from the upstream request entirely.
    """

    model_config = ConfigDict(extra="forbid")

    temperature: float | None = None
    max_completion_tokens: int | None = None
    top_p: float | None = None
    stop: str | list[str] | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None

    @property
    def stop_sequences(self) -> list[str] | None:
        """Stop sequence(s) normalized to a list."""
        if self.stop is None:
            return None
        if isinstance(self.stop, str):
            return [self.stop]
        return list(self.stop)


class ProviderInstanceConfig(BaseModel):
    """Immutable configuration of one backend connection."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1, description="Unique instance identifier")
    type: ProviderType = Field(description="Backend kind")
    api_key: str = Field(repr=False, description="Backend credential")
    base_url: str | None = Field(
        default=None,
        description="Endpoint override (required for openai-compatible)",
    )
    models: tuple[str, ...] = Field(
        min_length=1,
        description="Supported model identifiers, in declaration order",
    )

    @field_validator("models")
    @classmethod
    def _reject_virtual_model(cls, models: tuple[str, ...]) -> tuple[str, ...]:
        if AUTO_MODEL_ID in models:
            raise ValueError(f"'{AUTO_MODEL_ID}' is reserved for round-robin routing")
        return models

    def supports_model(self, model: str) -> bool:
        """Check if this instance declares a model."""
        return model in self.models

    @property
    def default_model(self) -> str:
        """First declared model, used when selected by round-robin."""
        return self.models[0]


class RoutingConfig(BaseModel):
    """Routing section of the providers file."""

    model_config = ConfigDict(frozen=True)

    default_strategy: RoutingStrategy = Field(
        default=RoutingStrategy.EXHAUST,
        description="Advisory default strategy",
    )
    retry_after_seconds: float = Field(
        default=300,
        ge=0,
        description="Seconds a rate-limited instance stays out of rotation",
    )


class ProvidersConfig(BaseModel):
    """Validated contents of the providers file."""

    model_config = ConfigDict(frozen=True)

    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    providers: tuple[ProviderInstanceConfig, ...] = Field(default=())


class ModelCard(BaseModel):
    """A model entry in the OpenAI ``/v1/models`` format."""

    id: str
    object: str = "model"
    created: int
    owned_by: str


class Usage(BaseModel):
    """Token usage block. Always zeros: the gateway does not count tokens."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AssistantMessage(BaseModel):
    """The assistant message inside a buffered completion choice."""

    role: MessageRole = MessageRole.ASSISTANT
    content: str


class CompletionChoice(BaseModel):
    """One choice of a buffered ``chat.completion`` object."""

    index: int = 0
    message: AssistantMessage
    finish_reason: str | None = "stop"


class ChatCompletion(BaseModel):
    """A buffered OpenAI ``chat.completion`` response."""

    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: list[CompletionChoice]
    usage: Usage = Field(default_factory=Usage)


class ChunkDelta(BaseModel):
    """Incremental content of one streamed frame."""

    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole | None = None
    content: str | None = None


class ChunkChoice(BaseModel):
    """One choice of a ``chat.completion.chunk`` frame."""

    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class ChatCompletionChunk(BaseModel):
    """One streamed OpenAI ``chat.completion.chunk`` frame."""

    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChunkChoice]

    def to_sse(self) -> str:
        """Render as one Server-Sent Events ``data:`` frame.

        Unset delta fields are left out so the stop frame carries an empty
        delta object, while ``finish_reason`` is always present.
        """
        payload = self.model_dump(mode="json")
        for choice in payload["choices"]:
            choice["delta"] = {k: v for k, v in choice["delta"].items() if v is not None}
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
