"""Test configuration for the MultiRouter gateway."""

import pytest

from multirouter.config import GatewaySettings
from multirouter.providers.models import ChatMessage, MessageRole
from tests.fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    """Create a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def sample_messages() -> list[ChatMessage]:
    """Create sample messages."""
    return [
        ChatMessage(role=MessageRole.SYSTEM, content="You are a helpful assistant."),
        ChatMessage(role=MessageRole.USER, content="Hello!"),
    ]


@pytest.fixture
def settings(tmp_path) -> GatewaySettings:
    """Gateway settings with auth and rate limiting off."""
    return GatewaySettings(
        _env_file=None,
        providers_config_path=str(tmp_path / "providers.yaml"),
        api_key=None,
        rate_limit_enabled=False,
        log_format="text",
    )
