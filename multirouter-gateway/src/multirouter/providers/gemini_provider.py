"""Google Gemini chat backend.

Talks to the Generative Language API ``streamGenerateContent`` endpoint in
SSE mode and maps the OpenAI-style conversation onto Gemini contents.
"""

from typing import Any, AsyncIterator, Iterable, Sequence

import httpx

from multirouter.providers.base import ChatBackend, ProviderError
from multirouter.providers.models import ChatMessage, ChatOptions, MessageRole
from multirouter.providers.transport import build_client, open_event_stream


GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _candidate_text(event: dict[str, Any]) -> Iterable[str]:
    candidates = event.get("candidates") or []
    if not candidates:
        return []
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return [part["text"] for part in parts if isinstance(part.get("text"), str)]


class GeminiBackend(ChatBackend):
    """Gemini backend using the REST streaming API."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 120.0,
        connect_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: Google AI Studio API key.
            base_url: Endpoint override.
            timeout: Read timeout in seconds.
            connect_timeout: Connection timeout in seconds.
            transport: Optional HTTP transport (used by tests).
        """
        self._client = build_client(
            base_url=base_url or GEMINI_BASE_URL,
            headers={"x-goog-api-key": api_key},
            timeout=timeout,
            connect_timeout=connect_timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "gemini"

    def build_payload(
        self,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> dict[str, Any]:
        """Build the ``streamGenerateContent`` request body.

        The first system message becomes the system instruction; assistant
        turns use Gemini's ``model`` role.

        Raises:
            ProviderError: If there is no non-system message to send.
        """
        system = next((m for m in messages if m.role == MessageRole.SYSTEM), None)
        turns = [m for m in messages if m.role != MessageRole.SYSTEM]
        if not turns:
            raise ProviderError(
                message="At least one user message is required",
                provider=self.name,
            )

        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == MessageRole.ASSISTANT else "user",
                    "parts": [{"text": m.content}],
                }
                for m in turns
            ],
        }
        if system is not None:
            payload["systemInstruction"] = {"parts": [{"text": system.content}]}

        generation_config: dict[str, Any] = {}
        if options is not None:
            if options.temperature is not None:
                generation_config["temperature"] = options.temperature
            if options.max_completion_tokens is not None:
                generation_config["maxOutputTokens"] = options.max_completion_tokens
            if options.top_p is not None:
                generation_config["topP"] = options.top_p
            if options.stop_sequences is not None:
                generation_config["stopSequences"] = options.stop_sequences
        if generation_config:
            payload["generationConfig"] = generation_config

        return payload

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[str]:
        """Start a streamed generation.

        Raises:
            ProviderError: If the backend rejects the request.
        """
        return await open_event_stream(
            self._client,
            f"/models/{model}:streamGenerateContent",
            self.build_payload(messages, options),
            provider=self.name,
            extract=_candidate_text,
            params={"alt": "sse"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
