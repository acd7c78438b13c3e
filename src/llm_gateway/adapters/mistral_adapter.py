"""
Mistral chat completions adapter.
"""

import logging
from typing import Any, Dict

from ..models.message import Message
from ..tools.converters import MistralToolConverter
from .openai_adapter import OpenAIAdapter

logger = logging.getLogger(__name__)


def normalize_content(content: Any) -> str:
    """
    Flatten Mistral content to plain text.

    Content may be a string, a list of strings and ``{"type": "text"}``
    parts, or a single text part.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for part in content:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text" and part.get("text"):
                texts.append(part["text"])
        return "".join(texts)
    if isinstance(content, dict) and content.get("type") == "text":
        return content.get("text") or ""
    return str(content)


class MistralAdapter(OpenAIAdapter):
    """
    Mistral API adapter.

    OpenAI wire shape with a few differences: the seed is sent as
    ``random_seed`` and content may arrive as typed parts.
    """

    PROVIDER_TYPE = "mistral"
    DEFAULT_BASE_URL = "https://api.mistral.ai/v1"
    CONVERTER_CLASS = MistralToolConverter
    MODELS = ["mistral-large-latest", "mistral-small-latest", "pixtral-large-latest", "codestral-latest"]
    FINISH_REASONS = {"model_length": "length", "error": "stop"}

    OPTION_KEYS = {
        "max_tokens": "max_tokens",
        "top_p": "top_p",
        "presence_penalty": "presence_penalty",
        "frequency_penalty": "frequency_penalty",
        "stop": "stop",
        "seed": "random_seed",
    }

    def _format_content(self, message: Message) -> Any:
        if isinstance(message.content, str):
            return message.content
        if not message.has_images():
            return "".join(part.text for part in message.content if part.type == "text")
        return super()._format_content(message)

    def _format_response_format(self, response_format: Dict[str, Any]) -> Dict[str, Any]:
        if response_format.get("type") == "json_schema":
            return {
                "type": "json_schema",
                "json_schema": {
                    "name": response_format.get("name", "response"),
                    "schema": response_format.get("schema", {}),
                    "strict": True,
                },
            }
        return super()._format_response_format(response_format)

    def _text(self, content: Any) -> str:
        return normalize_content(content)
