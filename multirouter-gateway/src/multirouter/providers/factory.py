"""Backend factory.

Maps each configured backend kind to the adapter that serves it. The
provider registry calls ``create`` once per configured instance.
"""

from typing import Callable

from multirouter.config import GatewaySettings, get_gateway_settings
from multirouter.providers.base import ChatBackend
from multirouter.providers.gemini_provider import GeminiBackend
from multirouter.providers.models import ProviderInstanceConfig, ProviderType
from multirouter.providers.openai_provider import OpenAICompatibleBackend


# Type for backend factory functions
BackendFactoryFunc = Callable[[ProviderInstanceConfig, GatewaySettings], ChatBackend]


def _create_openai_compatible(
    config: ProviderInstanceConfig,
    settings: GatewaySettings,
) -> ChatBackend:
    return OpenAICompatibleBackend(
        api_key=config.api_key,
        provider_type=config.type,
        base_url=config.base_url,
        timeout=settings.request_timeout,
        connect_timeout=settings.connect_timeout,
    )


def _create_gemini(
    config: ProviderInstanceConfig,
    settings: GatewaySettings,
) -> ChatBackend:
    return GeminiBackend(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=settings.request_timeout,
        connect_timeout=settings.connect_timeout,
    )


class BackendFactory:
    """Creates chat backends for provider instance configs.

    Built-in kinds are registered on construction; ``register`` can add or
    replace a kind.
    """

    def __init__(self, settings: GatewaySettings | None = None) -> None:
        """Initialize the backend factory.

        Args:
            settings: Gateway settings. If None, loads from environment.
        """
        self._settings = settings or get_gateway_settings()
        self._factory_funcs: dict[ProviderType, BackendFactoryFunc] = {}

        for provider_type in (
            ProviderType.OPENAI,
            ProviderType.GROQ,
            ProviderType.CEREBRAS,
            ProviderType.OPENROUTER,
            ProviderType.OPENAI_COMPATIBLE,
        ):
            self.register(provider_type, _create_openai_compatible)
        self.register(ProviderType.GEMINI, _create_gemini)

    def register(
        self,
        provider_type: ProviderType,
        factory_func: BackendFactoryFunc,
    ) -> None:
        """Register a backend factory function.

        Args:
            provider_type: Backend kind.
            factory_func: Function that creates the backend.
        """
        self._factory_funcs[provider_type] = factory_func

    def create(self, config: ProviderInstanceConfig) -> ChatBackend:
        """Create the backend for one provider instance.

        Args:
            config: Instance configuration.

        Returns:
            ChatBackend instance.

        Raises:
            ValueError: If the backend kind is unknown or misconfigured.
        """
        factory_func = self._factory_funcs.get(config.type)
        if factory_func is None:
            raise ValueError(f"Unknown provider type: {config.type}")
        return factory_func(config, self._settings)
