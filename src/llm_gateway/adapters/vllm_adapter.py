"""
vLLM OpenAI-compatible server adapter.
"""

import logging
from typing import Any, Dict

from ..core.interface import ProviderCapability
from ..models.message import Message
from ..tools.converters import VLLMToolConverter
from .base import BASE_CAPABILITIES
from .openai_adapter import OpenAIAdapter

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"


class VLLMAdapter(OpenAIAdapter):
    """
    Adapter for a self-hosted vLLM server.

    The base URL is mandatory and the API key optional. Tool schemas are
    sanitized by the converter and only ``json_object`` output is offered.
    """

    PROVIDER_TYPE = "vllm"
    DEFAULT_BASE_URL = ""
    REQUIRES_API_KEY = False
    CAPABILITIES = BASE_CAPABILITIES | {ProviderCapability.TOOLS, ProviderCapability.IMAGES}
    CONVERTER_CLASS = VLLMToolConverter
    MODELS = []

    @property
    def base_url(self) -> str:
        base = (self._config.base_url or "").rstrip("/")
        if base.endswith(CHAT_COMPLETIONS_PATH):
            return base[: -len(CHAT_COMPLETIONS_PATH)]
        return base

    def _endpoint(self, model: str, stream: bool) -> str:
        configured = (self._config.base_url or "").rstrip("/")
        if configured.endswith(CHAT_COMPLETIONS_PATH) or configured.endswith("/v1"):
            return CHAT_COMPLETIONS_PATH
        return f"/v1{CHAT_COMPLETIONS_PATH}"

    def _format_message(self, message: Message) -> Dict[str, Any]:
        formatted = super()._format_message(message)
        if message.tool_calls and not message.text_content():
            formatted["content"] = None
        return formatted

    def _format_response_format(self, response_format: Dict[str, Any]) -> Dict[str, Any]:
        if response_format.get("type") == "json_object":
            return {"type": "json_object"}
        logger.warning(f"vLLM provider {self._name} ignores response format {response_format.get('type')}")
        return {"type": "json_object"}

    async def list_models(self):
        """List models served by the vLLM instance."""
        path = "/models" if self.base_url.endswith("/v1") else "/v1/models"
        data = await self._get_json(path)
        return data.get("data", [])
