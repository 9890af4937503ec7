"""Translation of fragment streams into the OpenAI wire format.

Streaming requests get Server-Sent Events frames; buffered requests get a
single ``chat.completion`` object. Either way the fragment iterator is
closed once translation stops, whether it finished or not.
"""

import logging
import time
import uuid
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable

from multirouter.providers.models import (
    AssistantMessage,
    ChatCompletion,
    ChatCompletionChunk,
    ChunkChoice,
    ChunkDelta,
    CompletionChoice,
    MessageRole,
)


logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n\n"

# Async probe returning True once the client has gone away
DisconnectProbe = Callable[[], Awaitable[bool]]


def generate_completion_id() -> str:
    """Generate a completion id of the form ``chatcmpl-<24 hex chars>``."""
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def _chunk(
    completion_id: str,
    created: int,
    model: str,
    delta: ChunkDelta,
    finish_reason: str | None = None,
) -> str:
    return ChatCompletionChunk(
        id=completion_id,
        created=created,
        model=model,
        choices=[ChunkChoice(delta=delta, finish_reason=finish_reason)],
    ).to_sse()


async def stream_sse(
    fragments: AsyncIterator[str],
    model: str,
    completion_id: str | None = None,
    created: int | None = None,
    is_disconnected: DisconnectProbe | None = None,
) -> AsyncIterator[str]:
    """Render a fragment stream as SSE frames.

    Emits a role frame, one content frame per non-empty fragment, a stop
    frame and the ``[DONE]`` sentinel. Every frame shares one id and one
    creation timestamp.

    If the client disconnects, nothing more is emitted and the fragment
    iterator is closed. Errors raised by the fragment iterator propagate
    after it has been closed.

    Args:
        fragments: Text fragments from the serving backend.
        model: Model name reported in every frame.
        completion_id: Completion id (generated if omitted).
        created: Creation timestamp in epoch seconds (now if omitted).
        is_disconnected: Optional probe checked before each content frame.

    Yields:
        SSE ``data:`` frames, each terminated by a blank line.
    """
    completion_id = completion_id or generate_completion_id()
    created = int(time.time()) if created is None else created

    async with aclosing(fragments) as stream:
        yield _chunk(completion_id, created, model, ChunkDelta(role=MessageRole.ASSISTANT))

        async for fragment in stream:
            if not fragment:
                continue
            if is_disconnected is not None and await is_disconnected():
                logger.info(
                    "Client disconnected, stopping stream",
                    extra={"completion_id": completion_id, "model": model},
                )
                return
            yield _chunk(completion_id, created, model, ChunkDelta(content=fragment))

        yield _chunk(completion_id, created, model, ChunkDelta(), finish_reason="stop")
        yield DONE_FRAME


async def collect_completion(
    fragments: AsyncIterator[str],
    model: str,
    completion_id: str | None = None,
    created: int | None = None,
) -> ChatCompletion:
    """Drain a fragment stream into one buffered completion.

    Usage is reported as zeros.

    Raises:
        Exception: Whatever the fragment iterator raises, after closing it.
    """
    parts: list[str] = []
    async with aclosing(fragments) as stream:
        async for fragment in stream:
            parts.append(fragment)

    return ChatCompletion(
        id=completion_id or generate_completion_id(),
        created=int(time.time()) if created is None else created,
        model=model,
        choices=[CompletionChoice(message=AssistantMessage(content="".join(parts)))],
    )
