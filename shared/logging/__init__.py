"""Structured logging shared by the gateway services.

Provides:
- JSON formatted output for log aggregation
- Correlation ID tracking for request tracing
"""

from shared.logging.logger import (
    JSONFormatter,
    TextFormatter,
    configure_logging,
    get_correlation_id,
    with_correlation_id,
)

__all__ = [
    "JSONFormatter",
    "TextFormatter",
    "configure_logging",
    "get_correlation_id",
    "with_correlation_id",
]
