"""Routing engine.

Chooses the strategy for each request, walks the provider instances and
fails over on transient backend errors.

The reserved model ``multirouter-auto`` selects round-robin: exactly one
instance is tried. Any other model selects exhaust: every active instance
declaring the model is tried in declaration order until one succeeds or a
non-retryable failure stops the walk.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Sequence, TypeVar

from multirouter.errors import (
    AllProvidersRateLimitedError,
    ModelNotFoundError,
    NoProvidersAvailableError,
    UpstreamProviderError,
)
from multirouter.providers.models import (
    AUTO_MODEL_ID,
    ChatCompletion,
    ChatMessage,
    ChatOptions,
    RoutingStrategy,
)
from multirouter.routing.classifier import classify_error
from multirouter.routing.registry import ProviderInstance, ProviderRegistry
from multirouter.streaming import DisconnectProbe, collect_completion, stream_sse


logger = logging.getLogger(__name__)

T = TypeVar("T")

# One attempt against one instance with the model it should serve
Attempt = Callable[[ProviderInstance, str], Awaitable[T]]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


@dataclass
class RoutedStream:
    """A streaming completion committed to one provider instance.

    The upstream request has already been accepted. Failures raised while
    reading the rest of the stream cannot fail over any more; they are
    logged and end the SSE output early.
    """

    instance_id: str
    model: str
    strategy: RoutingStrategy
    fragments: AsyncIterator[str]
    started_at: float = field(default_factory=time.perf_counter)

    async def events(
        self,
        is_disconnected: DisconnectProbe | None = None,
    ) -> AsyncIterator[str]:
        """SSE frames for the committed stream."""
        log_extra = {
            "instance": self.instance_id,
            "model": self.model,
            "strategy": self.strategy.value,
        }
        try:
            async for frame in stream_sse(
                self.fragments,
                self.model,
                is_disconnected=is_disconnected,
            ):
                yield frame
        except Exception as e:
            classification = classify_error(e)
            logger.error(
                f"Stream interrupted: {e}",
                extra={
                    **log_extra,
                    "status_code": classification.status_code,
                    "duration_ms": _elapsed_ms(self.started_at),
                },
            )
            return

        logger.info(
            "Stream finished",
            extra={**log_extra, "duration_ms": _elapsed_ms(self.started_at)},
        )


class RoutingEngine:
    """Routes chat requests across the registry's provider instances."""

    def __init__(self, registry: ProviderRegistry) -> None:
        """Initialize the engine.

        Args:
            registry: Registry supplying instances and health state.
        """
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @staticmethod
    def strategy_for(model: str) -> RoutingStrategy:
        """Strategy implied by the literal model value."""
        if model == AUTO_MODEL_ID:
            return RoutingStrategy.ROUND_ROBIN
        return RoutingStrategy.EXHAUST

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> ChatCompletion:
        """Run a buffered completion.

        The whole fragment stream is drained inside each attempt, so a
        retryable failure anywhere in it still fails over.

        Args:
            messages: Conversation messages.
            model: Requested model or ``multirouter-auto``.
            options: Optional generation parameters.

        Returns:
            The aggregated ChatCompletion.

        Raises:
            GatewayError: When routing fails (see ``errors``).
        """

        async def attempt(instance: ProviderInstance, served_model: str) -> ChatCompletion:
            fragments = await instance.backend.chat(messages, served_model, options)
            return await collect_completion(fragments, served_model)

        return await self._dispatch(model, attempt)

    async def open_stream(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> RoutedStream:
        """Start a streaming completion.

        Failover applies until a backend accepts the request; after that
        the stream is committed to that instance.

        Args:
            messages: Conversation messages.
            model: Requested model or ``multirouter-auto``.
            options: Optional generation parameters.

        Returns:
            RoutedStream whose ``events()`` yields SSE frames.

        Raises:
            GatewayError: When no instance accepts the request.
        """
        strategy = self.strategy_for(model)

        async def attempt(instance: ProviderInstance, served_model: str) -> RoutedStream:
            fragments = await instance.backend.chat(messages, served_model, options)
            return RoutedStream(
                instance_id=instance.id,
                model=served_model,
                strategy=strategy,
                fragments=fragments,
            )

        return await self._dispatch(model, attempt)

    async def _dispatch(self, model: str, attempt: Attempt[T]) -> T:
        if self._registry.size == 0:
            raise NoProvidersAvailableError()

        if self.strategy_for(model) == RoutingStrategy.ROUND_ROBIN:
            return await self._route_round_robin(attempt)
        return await self._route_exhaust(model, attempt)

    async def _route_round_robin(self, attempt: Attempt[T]) -> T:
        selection = self._registry.get_next_round_robin()
        if selection is None:
            raise NoProvidersAvailableError("No active providers available")

        instance = selection.instance
        start = time.perf_counter()
        try:
            result = await attempt(instance, selection.model)
        except Exception as e:
            classification = classify_error(e)
            logger.warning(
                f"Provider attempt failed: {e}",
                extra={
                    "instance": instance.id,
                    "model": selection.model,
                    "strategy": RoutingStrategy.ROUND_ROBIN.value,
                    "status_code": classification.status_code,
                    "duration_ms": _elapsed_ms(start),
                },
            )
            raise UpstreamProviderError(
                classification.message,
                status_code=classification.status_code,
                instance_id=instance.id,
                cause=e,
            ) from e

        self._log_success(instance, selection.model, RoutingStrategy.ROUND_ROBIN, start)
        return result

    async def _route_exhaust(self, model: str, attempt: Attempt[T]) -> T:
        candidates = self._registry.get_active_for_model(model)
        if not candidates:
            if not self._registry.has_model(model):
                raise ModelNotFoundError(model)
            raise AllProvidersRateLimitedError(model)

        for instance in candidates:
            start = time.perf_counter()
            try:
                result = await attempt(instance, model)
            except Exception as e:
                classification = classify_error(e)
                logger.warning(
                    f"Provider attempt failed: {e}",
                    extra={
                        "instance": instance.id,
                        "model": model,
                        "strategy": RoutingStrategy.EXHAUST.value,
                        "status_code": classification.status_code,
                        "retryable": classification.retryable,
                        "duration_ms": _elapsed_ms(start),
                    },
                )
                if classification.retryable:
                    self._registry.mark_failed(instance.id)
                    continue
                raise UpstreamProviderError(
                    classification.message,
                    status_code=classification.status_code,
                    instance_id=instance.id,
                    cause=e,
                ) from e

            self._log_success(instance, model, RoutingStrategy.EXHAUST, start)
            return result

        raise AllProvidersRateLimitedError(model, attempted=len(candidates))

    @staticmethod
    def _log_success(
        instance: ProviderInstance,
        model: str,
        strategy: RoutingStrategy,
        start: float,
    ) -> None:
        logger.info(
            "Provider attempt succeeded",
            extra={
                "instance": instance.id,
                "model": model,
                "strategy": strategy.value,
                "duration_ms": _elapsed_ms(start),
            },
        )
