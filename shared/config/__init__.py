"""Shared configuration base built on Pydantic Settings."""

from shared.config.settings import (
    BaseSettings,
    LogLevel,
    Environment,
)

__all__ = [
    "BaseSettings",
    "LogLevel",
    "Environment",
]
