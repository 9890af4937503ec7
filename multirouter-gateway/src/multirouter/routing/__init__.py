"""Routing layer: provider registry, failover engine and error classifier."""

from multirouter.routing.classifier import (
    ErrorClassification,
    classify_error,
    is_retryable,
)
from multirouter.routing.registry import (
    ProviderInstance,
    ProviderRegistry,
    RoundRobinSelection,
)
from multirouter.routing.engine import RoutedStream, RoutingEngine

__all__ = [
    # Classifier
    "ErrorClassification",
    "classify_error",
    "is_retryable",
    # Registry
    "ProviderInstance",
    "ProviderRegistry",
    "RoundRobinSelection",
    # Engine
    "RoutedStream",
    "RoutingEngine",
]
