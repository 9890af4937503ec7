"""MultiRouter - OpenAI-compatible gateway over multiple LLM backends.

Requests are routed across independently configured provider instances
with automatic failover when a backend is rate-limited or unavailable.
"""

__version__ = "0.1.0"

from multirouter.config import GatewaySettings, get_gateway_settings
from multirouter.gateway import Gateway

__all__ = ["Gateway", "GatewaySettings", "get_gateway_settings", "__version__"]
