"""Abstract base class for chat backends.

Defines the contract every backend adapter must follow: given messages, a
model and options, produce a lazy stream of text fragments or raise a
``ProviderError``.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Sequence

from multirouter.providers.models import ChatMessage, ChatOptions


class ProviderError(Exception):
    """Failure reported by a backend.

    ``status_code`` is the upstream HTTP status when one was received and
    ``None`` for transport-level failures (connection refused, DNS, a
    broken stream). Error classification only ever looks at this field.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """Initialize provider error.

        Args:
            message: Error message (server-side only, never sent to clients).
            provider: Instance id or backend kind that failed.
            status_code: Upstream HTTP status code if applicable.
            original_error: Original exception if wrapping.
        """
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.original_error = original_error

    def __str__(self) -> str:
        return f"[{self.provider}] {super().__str__()}"


class ChatBackend(ABC):
    """One configured backend connection.

    Implementations hold their own HTTP client and must release it in
    ``aclose``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend kind identifier (e.g. 'openai', 'gemini')."""
        ...

    @abstractmethod
    async def chat(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[str]:
        """Start a chat completion.

        The upstream request is issued before this coroutine returns, so
        rejections (rate limits, bad credentials) surface here as
        ``ProviderError``. The returned iterator yields non-empty text
        fragments in arrival order and may itself raise ``ProviderError``
        if the stream breaks. Closing it early releases the connection.

        Args:
            messages: Conversation messages.
            model: Backend model identifier.
            options: Optional generation parameters.

        Returns:
            Async iterator of text fragments.

        Raises:
            ProviderError: If the backend rejects the request.
        """
        ...

    async def aclose(self) -> None:
        """Release resources held by the backend."""
        return None
