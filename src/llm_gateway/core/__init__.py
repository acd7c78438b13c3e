"""
Core gateway components.
"""

from .interface import AbstractProvider, ProviderCapability
from .registry import ProviderRegistry
from .config import ProviderConfig, GatewayConfig, load_config, apply_env_overrides, interpolate_env
from .errors import (
    GatewayError,
    ConfigurationError,
    ProviderError,
    ProviderNotFoundError,
    ProviderConnectionError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderResponseError,
    ToolExecutionError,
    StreamingError,
)

__all__ = [
    "AbstractProvider",
    "ProviderCapability",
    "ProviderRegistry",
    "ProviderConfig",
    "GatewayConfig",
    "load_config",
    "apply_env_overrides",
    "interpolate_env",
    "GatewayError",
    "ConfigurationError",
    "ProviderError",
    "ProviderNotFoundError",
    "ProviderConnectionError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ToolExecutionError",
    "StreamingError",
]
