"""
Provider registry for adapter classes and configured provider instances.
"""

import logging
import threading
from typing import Dict, List, Optional, Type, Any

import httpx

from .config import ProviderConfig
from .errors import ConfigurationError, ProviderNotFoundError
from .interface import AbstractProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of provider adapters and instances.

    Adapter classes are keyed by provider type; instances by their
    configured name. Instances are created once and reused across requests.
    """

    def __init__(self):
        """Initialize the registry."""
        self._adapters: Dict[str, Type[AbstractProvider]] = {}
        self._instances: Dict[str, AbstractProvider] = {}
        self._default_provider: Optional[str] = None
        self._lock = threading.RLock()

    def register_adapter(
        self,
        provider_type: str,
        adapter_class: Type[AbstractProvider]
    ) -> None:
        """
        Register a provider adapter class.

        Args:
            provider_type: Type identifier (e.g., "openai", "vllm")
            adapter_class: Adapter class to register
        """
        with self._lock:
            self._adapters[provider_type] = adapter_class
        logger.debug(f"Registered provider adapter: {provider_type}")

    def create_provider(
        self,
        name: str,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> AbstractProvider:
        """
        Create and store a provider instance.

        Args:
            name: Unique name for this instance
            config: Provider configuration; ``config.type`` selects the
                adapter and defaults to ``name``
            transport: Optional httpx transport passed to the adapter

        Returns:
            Configured provider instance

        Raises:
            ProviderNotFoundError: If the provider type is unknown
            ConfigurationError: If the adapter rejects the configuration
        """
        provider_type = (config.type or name).lower()
        with self._lock:
            adapter_class = self._adapters.get(provider_type)
        if adapter_class is None:
            raise ProviderNotFoundError(f"Unknown provider type: {provider_type}", provider=name)

        instance = adapter_class(name=name, config=config, transport=transport)
        with self._lock:
            self._instances[name] = instance

        logger.info(f"Created provider instance: {name} (type: {provider_type})")
        return instance

    def get_provider(self, name: Optional[str] = None) -> AbstractProvider:
        """
        Get a provider instance by name.

        Args:
            name: Provider name; the default provider when None

        Returns:
            Provider instance

        Raises:
            ProviderNotFoundError: If provider not found
        """
        with self._lock:
            key = name or self._default_provider
            provider = self._instances.get(key) if key else None
        if provider is None:
            raise ProviderNotFoundError(f"Provider '{key}' not found", provider=key)
        return provider

    def has_provider(self, name: str) -> bool:
        with self._lock:
            return name in self._instances

    def remove_provider(self, name: str) -> AbstractProvider:
        """
        Remove a provider instance.

        Raises:
            ConfigurationError: If it is the default provider
            ProviderNotFoundError: If provider not found
        """
        with self._lock:
            if name == self._default_provider:
                raise ConfigurationError(f"Cannot remove default provider '{name}'", provider=name)
            provider = self._instances.pop(name, None)
        if provider is None:
            raise ProviderNotFoundError(f"Provider '{name}' not found", provider=name)
        logger.info(f"Removed provider instance: {name}")
        return provider

    @property
    def default_provider(self) -> Optional[str]:
        return self._default_provider

    def set_default_provider(self, name: str) -> None:
        """
        Set the default provider.

        Args:
            name: Provider name to set as default
        """
        with self._lock:
            if name not in self._instances:
                raise ProviderNotFoundError(f"Provider '{name}' not found", provider=name)
            self._default_provider = name
        logger.info(f"Set default provider: {name}")

    def list_providers(self) -> List[Dict[str, Any]]:
        """
        List all provider instances.

        Returns:
            List of provider info dicts
        """
        with self._lock:
            instances = list(self._instances.values())
            default = self._default_provider
        return [dict(p.get_info(), is_default=p.name == default) for p in instances]

    def instances(self) -> List[AbstractProvider]:
        with self._lock:
            return list(self._instances.values())

    async def disconnect_all(self) -> None:
        """Disconnect all provider instances."""
        for provider in self.instances():
            try:
                await provider.disconnect()
            except Exception as e:
                logger.error(f"Failed to disconnect provider {provider.name}: {e}")
