"""
Shared HTTP plumbing for provider adapters.
"""

import logging
from typing import Optional, Set, List, Dict, Any, AsyncIterator, Type, FrozenSet

import httpx

from ..core.config import ProviderConfig, DEFAULT_TEMPERATURE
from ..core.errors import (
    ConfigurationError,
    ProviderConnectionError,
    ProviderResponseError,
    check_response_errors,
)
from ..core.interface import AbstractProvider, ProviderCapability
from ..models.response import Usage
from ..tools.converters import ToolConverter

logger = logging.getLogger(__name__)

BASE_CAPABILITIES: FrozenSet[ProviderCapability] = frozenset({
    ProviderCapability.STREAMING,
    ProviderCapability.SYSTEM_MESSAGES,
})

ALL_CAPABILITIES: FrozenSet[ProviderCapability] = frozenset(ProviderCapability)


def tool_choice_name(tool_choice: Any) -> Optional[str]:
    """Extract the forced function name from a tool_choice value, if any."""
    if isinstance(tool_choice, dict):
        function = tool_choice.get("function")
        if isinstance(function, dict) and function.get("name"):
            return function["name"]
        return tool_choice.get("name")
    if isinstance(tool_choice, str) and tool_choice not in ("auto", "none", "required", "any"):
        return tool_choice
    return None


def copy_options(body: Dict[str, Any], options: Dict[str, Any], mapping: Dict[str, str]) -> None:
    """Copy set options into a request body under vendor key names."""
    for option, key in mapping.items():
        value = options.get(option)
        if value is not None:
            body[key] = value


class HTTPProviderAdapter(AbstractProvider):
    """
    Base adapter talking to a vendor over HTTP with httpx.

    Subclasses declare the vendor type, default URL, capabilities and tool
    converter, and implement the formatting and parsing methods.
    """

    PROVIDER_TYPE = ""
    DEFAULT_BASE_URL = ""
    CAPABILITIES: FrozenSet[ProviderCapability] = BASE_CAPABILITIES
    CONVERTER_CLASS: Type[ToolConverter] = None
    REQUIRES_API_KEY = True
    MODELS: List[str] = []
    FINISH_REASONS: Dict[str, str] = {}

    def __init__(
        self,
        name: str,
        config: Optional[ProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize adapter.

        Args:
            name: Unique name for this provider instance
            config: Provider configuration; ``${VAR}`` references are resolved here
            transport: httpx transport override (mainly for tests)

        Raises:
            ConfigurationError: If the configuration is incomplete
        """
        self._name = name
        self._config = (config or ProviderConfig()).resolved()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._converter = self.CONVERTER_CLASS()
        self.validate_config()

    @property
    def name(self) -> str:
        return self._name

    @property
    def provider_type(self) -> str:
        return self.PROVIDER_TYPE

    @property
    def capabilities(self) -> Set[ProviderCapability]:
        return set(self.CAPABILITIES)

    @property
    def tool_converter(self) -> ToolConverter:
        return self._converter

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return (self._config.base_url or self.DEFAULT_BASE_URL).rstrip("/")

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def validate_config(self) -> None:
        if self.REQUIRES_API_KEY and not self._config.api_key:
            raise ConfigurationError(
                f"API key is required for provider {self._name}",
                provider=self._name,
                field="api_key",
            )
        if not self.base_url:
            raise ConfigurationError(
                f"Base URL is required for provider {self._name}",
                provider=self._name,
                field="base_url",
            )

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _endpoint(self, model: str, stream: bool) -> str:
        return "/chat/completions"

    def _query_params(self, stream: bool) -> Dict[str, str]:
        return {}

    def _temperature(self, options: Dict[str, Any]) -> float:
        temperature = options.get("temperature")
        return float(temperature) if temperature is not None else DEFAULT_TEMPERATURE

    def _finish_reason(self, raw: Optional[str]) -> Optional[str]:
        if not raw:
            return None
        return self.FINISH_REASONS.get(raw, raw)

    @staticmethod
    def _usage(prompt_tokens: Optional[int], completion_tokens: Optional[int]) -> Usage:
        return Usage.of(prompt_tokens or 0, completion_tokens or 0)

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is not None:
            return

        transport = self._transport or httpx.AsyncHTTPTransport(retries=self._config.retries)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self._config.timeout,
            transport=transport,
        )
        logger.info(f"Connected provider {self._name} ({self.PROVIDER_TYPE}) at {self.base_url}")

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(f"Disconnected provider {self._name}")

    async def send_request(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self._client:
            await self.connect()

        try:
            response = await self._client.post(
                self._endpoint(model, stream=False),
                json=body,
                params=self._query_params(stream=False),
            )
        except httpx.RequestError as e:
            raise ProviderConnectionError(str(e), provider=self._name)

        check_response_errors(response, self._name)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(
                f"Invalid JSON response: {e}",
                provider=self._name,
                status_code=response.status_code,
            )

    async def stream_request(self, model: str, body: Dict[str, Any]) -> AsyncIterator[str]:
        if not self._client:
            await self.connect()

        try:
            async with self._client.stream(
                "POST",
                self._endpoint(model, stream=True),
                json=body,
                params=self._query_params(stream=True),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    check_response_errors(response, self._name)

                async for line in response.aiter_lines():
                    yield line

        except httpx.RequestError as e:
            raise ProviderConnectionError(str(e), provider=self._name)

    async def _get_json(self, path: str) -> Dict[str, Any]:
        if not self._client:
            await self.connect()

        try:
            response = await self._client.get(path, params=self._query_params(stream=False))
        except httpx.RequestError as e:
            raise ProviderConnectionError(str(e), provider=self._name)

        check_response_errors(response, self._name)
        return response.json()

    async def list_models(self) -> List[Dict[str, Any]]:
        """
        List known models.

        Returns a static catalog; vendors differ too much in their model
        listing endpoints to rely on them.
        """
        return [{"id": model, "object": "model", "owned_by": self.PROVIDER_TYPE} for model in self.MODELS]

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({
            "base_url": self.base_url,
            "default_model": self._config.default_model,
            "connected": self.is_connected,
        })
        return info
