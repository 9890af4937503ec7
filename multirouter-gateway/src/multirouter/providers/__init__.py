"""Chat backend adapters and provider configuration."""

from multirouter.providers.base import ChatBackend, ProviderError
from multirouter.providers.models import (
    AUTO_MODEL_ID,
    AUTO_MODEL_OWNER,
    ChatMessage,
    ChatOptions,
    InstanceStatus,
    MessageRole,
    ModelCard,
    ProviderInstanceConfig,
    ProvidersConfig,
    ProviderType,
    RoutingConfig,
    RoutingStrategy,
)
from multirouter.providers.factory import BackendFactory
from multirouter.providers.loader import load_providers_config

__all__ = [
    # Base
    "ChatBackend",
    "ProviderError",
    # Models
    "AUTO_MODEL_ID",
    "AUTO_MODEL_OWNER",
    "ChatMessage",
    "ChatOptions",
    "InstanceStatus",
    "MessageRole",
    "ModelCard",
    "ProviderInstanceConfig",
    "ProvidersConfig",
    "ProviderType",
    "RoutingConfig",
    "RoutingStrategy",
    # Factory and loading
    "BackendFactory",
    "load_providers_config",
]
