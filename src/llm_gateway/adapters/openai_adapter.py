"""
OpenAI chat completions adapter.

Also the base for the OpenAI-compatible wire formats (Mistral, vLLM).
"""

import copy
import json
import logging
from typing import Optional, List, Dict, Any

from ..core.errors import ProviderResponseError
from ..models.message import Message, ContentPart
from ..models.response import ChatResponse, StreamChunk, ToolCallDelta
from ..tools.converters import OpenAIToolConverter
from .base import HTTPProviderAdapter, ALL_CAPABILITIES, copy_options, tool_choice_name

logger = logging.getLogger(__name__)


def enforce_strict_schema(schema: Any) -> Any:
    """Copy of a JSON schema with additionalProperties disabled on every object."""
    if not isinstance(schema, dict):
        return schema

    strict = copy.deepcopy(schema)
    if strict.get("type") == "object" or "properties" in strict:
        strict["additionalProperties"] = False
    if isinstance(strict.get("properties"), dict):
        strict["properties"] = {k: enforce_strict_schema(v) for k, v in strict["properties"].items()}
    if "items" in strict:
        strict["items"] = enforce_strict_schema(strict["items"])
    return strict


class OpenAIAdapter(HTTPProviderAdapter):
    """
    OpenAI API adapter.

    Messages and responses use the ``choices[0].message|delta`` shape with
    tool call arguments encoded as JSON strings.
    """

    PROVIDER_TYPE = "openai"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    CAPABILITIES = ALL_CAPABILITIES
    CONVERTER_CLASS = OpenAIToolConverter
    MODELS = ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"]
    FINISH_REASONS = {"function_call": "tool_calls"}

    # Request options copied verbatim when set
    OPTION_KEYS = {
        "max_tokens": "max_tokens",
        "top_p": "top_p",
        "presence_penalty": "presence_penalty",
        "frequency_penalty": "frequency_penalty",
        "stop": "stop",
        "seed": "seed",
    }

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def format_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        return [self._format_message(message) for message in messages]

    def _format_message(self, message: Message) -> Dict[str, Any]:
        formatted: Dict[str, Any] = {
            "role": message.role,
            "content": self._format_content(message),
        }

        if message.tool_calls:
            formatted["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments_json()},
                }
                for call in message.tool_calls
            ]

        if message.tool_call_id:
            formatted["tool_call_id"] = message.tool_call_id
        if message.name:
            formatted["name"] = message.name

        return formatted

    def _format_content(self, message: Message) -> Any:
        if isinstance(message.content, str):
            return message.content
        return [self._format_part(part) for part in message.content]

    def _format_part(self, part: ContentPart) -> Dict[str, Any]:
        if part.type == "text":
            return {"type": "text", "text": part.text}
        return {"type": "image_url", "image_url": {"url": part.data_url, "detail": "high"}}

    def build_request(self, model: str, messages: Any, options: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": bool(options.get("stream")),
            "temperature": self._temperature(options),
        }
        copy_options(body, options, self.OPTION_KEYS)

        tools = options.get("tools")
        if tools:
            body["tools"] = tools
            if options.get("tool_choice") is not None:
                body["tool_choice"] = self._format_tool_choice(options["tool_choice"])

        response_format = options.get("response_format")
        if response_format:
            body["response_format"] = self._format_response_format(response_format)

        return body

    def _format_tool_choice(self, tool_choice: Any) -> Any:
        name = tool_choice_name(tool_choice)
        if name:
            return {"type": "function", "function": {"name": name}}
        return tool_choice

    def _format_response_format(self, response_format: Dict[str, Any]) -> Dict[str, Any]:
        if response_format.get("type") == "json_schema":
            return {
                "type": "json_schema",
                "json_schema": {
                    "name": response_format.get("name", "response"),
                    "schema": enforce_strict_schema(response_format.get("schema", {})),
                    "strict": True,
                },
            }
        if response_format.get("type") == "json_object":
            return {"type": "json_object"}
        return response_format

    def _text(self, content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        return str(content)

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        if data.get("error"):
            raise ProviderResponseError(_error_message(data["error"]), provider=self._name)

        choices = data.get("choices") or []
        if not choices:
            raise ProviderResponseError("Response contained no choices", provider=self._name)

        choice = choices[0]
        message = choice.get("message") or {}
        usage = data.get("usage") or {}

        return ChatResponse(
            id=data.get("id") or "",
            model=data.get("model") or "",
            provider=self._name,
            content=self._text(message.get("content")),
            tool_calls=self.tool_converter.parse_tool_calls(message.get("tool_calls") or []),
            finish_reason=self._finish_reason(choice.get("finish_reason")),
            usage=self._usage(usage.get("prompt_tokens"), usage.get("completion_tokens")) if usage else None,
        )

    def _parse_stream_event(self, event: Dict[str, Any]) -> Optional[StreamChunk]:
        if event.get("error"):
            return StreamChunk(error=_error_message(event["error"]))

        usage_data = event.get("usage")
        usage = self._usage(usage_data.get("prompt_tokens"), usage_data.get("completion_tokens")) if usage_data else None

        choices = event.get("choices") or []
        if not choices:
            return StreamChunk(id=event.get("id"), usage=usage) if usage else None

        choice = choices[0]
        delta = choice.get("delta") or choice.get("message") or {}

        return StreamChunk(
            id=event.get("id"),
            content=self._text(delta.get("content")) or None,
            tool_calls=[
                _tool_call_delta(raw, position)
                for position, raw in enumerate(delta.get("tool_calls") or [])
            ],
            finish_reason=self._finish_reason(choice.get("finish_reason")),
            usage=usage,
        )


def _tool_call_delta(raw: Dict[str, Any], position: int) -> ToolCallDelta:
    function = raw.get("function") or {}
    arguments = function.get("arguments") or ""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ToolCallDelta(
        index=raw.get("index", position),
        id=raw.get("id"),
        name=function.get("name"),
        arguments=arguments,
    )


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)
