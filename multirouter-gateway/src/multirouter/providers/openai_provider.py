"""OpenAI-compatible chat backend.

Serves every backend kind that speaks the OpenAI chat completions
protocol: OpenAI itself, Groq, Cerebras, OpenRouter and arbitrary
``openai-compatible`` endpoints (Ollama, LM Studio, vLLM, ...).
"""

from typing import Any, AsyncIterator, Iterable, Sequence

import httpx

from multirouter.providers.base import ChatBackend
from multirouter.providers.models import ChatMessage, ChatOptions, ProviderType
from multirouter.providers.transport import build_client, open_event_stream


DEFAULT_BASE_URLS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "https://api.openai.com/v1",
    ProviderType.GROQ: "https://api.groq.com/openai/v1",
    ProviderType.CEREBRAS: "https://api.cerebras.ai/v1",
    ProviderType.OPENROUTER: "https://openrouter.ai/api/v1",
}

# OpenRouter still expects the legacy output-limit field name
_LEGACY_MAX_TOKENS = {ProviderType.OPENROUTER}

# Cerebras rejects the sampling penalties
_NO_PENALTIES = {ProviderType.CEREBRAS}


def _delta_content(event: dict[str, Any]) -> Iterable[str]:
    choices = event.get("choices") or []
    if not choices:
        return ()
    content = (choices[0].get("delta") or {}).get("content")
    return (content,) if isinstance(content, str) and content else ()


class OpenAICompatibleBackend(ChatBackend):
    """Backend speaking the OpenAI chat completions protocol.

    Parameter names are adjusted per backend kind; everything else is the
    same wire format.
    """

    def __init__(
        self,
        api_key: str,
        provider_type: ProviderType = ProviderType.OPENAI,
        base_url: str | None = None,
        timeout: float = 120.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: Backend API key.
            provider_type: Backend kind, selects default URL and quirks.
            base_url: Endpoint override.
            timeout: Read timeout in seconds.
            connect_timeout: Connection timeout in seconds.
            transport: Optional HTTP transport (used by tests).

        Raises:
            ValueError: If no base URL is known for the backend kind.
        """
        resolved_url = base_url or DEFAULT_BASE_URLS.get(provider_type)
        if not resolved_url:
            raise ValueError(f"{provider_type.value} backend requires a base_url")

        self._provider_type = provider_type
        self._base_url = resolved_url.rstrip("/")
        self._client = build_client(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            connect_timeout=connect_timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return self._provider_type.value

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_payload(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> dict[str, Any]:
        """Build the chat completions request body.

        Args:
            messages: Conversation messages.
            model: Model identifier.
            options: Optional generation parameters.

        Returns:
            JSON-serializable request body.
        """
        payload: dict[str, Any] = {
            "model": model,
            "messages": [msg.to_openai_format() for msg in messages],
            "stream": True,
        }
        if options is None:
            return payload

        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.max_completion_tokens is not None:
            key = (
                "max_tokens"
                if self._provider_type in _LEGACY_MAX_TOKENS
                else "max_completion_tokens"
            )
            payload[key] = options.max_completion_tokens
        if options.stop is not None:
            payload["stop"] = options.stop

        if self._provider_type not in _NO_PENALTIES:
            if options.frequency_penalty is not None:
                payload["frequency_penalty"] = options.frequency_penalty
            if options.presence_penalty is not None:
                payload["presence_penalty"] = options.presence_penalty

        return payload

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[str]:
        """Start a streamed chat completion.

        Raises:
            ProviderError: If the backend rejects the request.
        """
        return await open_event_stream(
            self._client,
            "/chat/completions",
            self.build_payload(messages, model, options),
            provider=self.name,
            extract=_delta_content,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
