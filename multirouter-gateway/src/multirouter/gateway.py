"""Main gateway orchestrator.

Owns the provider registry and routing engine for one application and
defines their lifecycle. One ``Gateway`` is created per FastAPI app and
stored on ``app.state``.
"""

import logging
from datetime import datetime, timezone
from typing import Sequence

from multirouter import __version__
from multirouter.api.schemas import HealthResponse, InstanceHealth
from multirouter.config import GatewaySettings, get_gateway_settings
from multirouter.providers.factory import BackendFactory
from multirouter.providers.loader import load_providers_config
from multirouter.providers.models import (
    ChatCompletion,
    ChatMessage,
    ChatOptions,
    ModelCard,
)
from multirouter.routing.engine import RoutedStream, RoutingEngine
from multirouter.routing.registry import ProviderRegistry


logger = logging.getLogger(__name__)


class Gateway:
    """Gateway orchestrating chat requests.

    Handles:
    - Loading providers and building the registry on startup
    - Routing buffered and streaming completions
    - Model listing and health reporting
    - Releasing backend connections on shutdown
    """

    def __init__(
        self,
        settings: GatewaySettings | None = None,
        registry: ProviderRegistry | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            settings: Gateway settings. If None, loads from environment.
            registry: Pre-built registry. If None, one is built from the
                providers file on startup.
        """
        self._settings = settings or get_gateway_settings()
        self._registry = registry
        self._engine = RoutingEngine(registry) if registry is not None else None

    @property
    def settings(self) -> GatewaySettings:
        return self._settings

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            raise RuntimeError("Gateway has not been started")
        return self._registry

    @property
    def engine(self) -> RoutingEngine:
        if self._engine is None:
            raise RuntimeError("Gateway has not been started")
        return self._engine

    async def startup(self) -> None:
        """Build the registry from the providers file if none was injected.

        Raises:
            ConfigurationError: If the providers file is not valid YAML.
        """
        if self._registry is None:
            config = load_providers_config(self._settings.providers_config_path)
            factory = BackendFactory(self._settings)
            self._registry = ProviderRegistry(config, factory.create)
            self._engine = RoutingEngine(self._registry)

        registry = self.registry
        logger.info(
            "MultiRouter gateway started",
            extra={
                "providers": [i.id for i in registry.get_all_instances()],
                "default_strategy": registry.default_strategy.value,
                "retry_after_seconds": registry.routing_config.retry_after_seconds,
            },
        )
        if registry.size == 0:
            logger.warning("No provider instances configured, every request will fail")

    async def shutdown(self) -> None:
        """Close backend connections."""
        if self._registry is not None:
            await self._registry.aclose()
        logger.info("MultiRouter gateway shutdown complete")

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> ChatCompletion:
        """Generate a buffered completion."""
        return await self.engine.complete(messages, model, options)

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: ChatOptions | None = None,
    ) -> RoutedStream:
        """Start a streaming completion committed to one instance."""
        return await self.engine.open_stream(messages, model, options)

    def list_models(self) -> list[ModelCard]:
        """All declared models plus the round-robin model."""
        return self.registry.get_all_models()

    def health(self) -> HealthResponse:
        """Snapshot of registry health.

        Reading health never changes instance state.

        Returns:
            HealthResponse with overall and per-instance status.
        """
        registry = self.registry
        instances = registry.get_all_instances()

        if not instances:
            status = "unavailable"
        elif any(i.is_active for i in instances):
            status = "ok"
        else:
            status = "degraded"

        return HealthResponse(
            status=status,
            version=__version__,
            default_strategy=registry.default_strategy,
            timestamp=datetime.now(timezone.utc),
            providers=[
                InstanceHealth(
                    id=i.id,
                    type=i.config.type.value,
                    status=i.status,
                    models=list(i.config.models),
                    error_count=i.error_count,
                    last_error_at=(
                        datetime.fromtimestamp(i.last_error_at, timezone.utc)
                        if i.last_error_at is not None
                        else None
                    ),
                )
                for i in instances
            ],
        )
