"""
Direct Anthropic Messages API adapter.

System prompts travel outside the message list, tool use is expressed as
typed content blocks, and streaming uses typed events.
"""

import json
import logging
from typing import Optional, List, Dict, Any

from ..core.errors import ProviderResponseError
from ..models.message import Message, ContentPart
from ..models.response import ChatResponse, StreamChunk, ToolCallDelta, FinishReason
from ..tools.converters import AnthropicToolConverter
from .base import HTTPProviderAdapter, ALL_CAPABILITIES, tool_choice_name

logger = logging.getLogger(__name__)

# Tool used to force structured JSON output
JSON_RESPONSE_TOOL = "json_response"


class AnthropicAdapter(HTTPProviderAdapter):
    """
    Anthropic API adapter.

    Connects directly to Anthropic's Claude API.
    """

    PROVIDER_TYPE = "anthropic"
    DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 4096
    CAPABILITIES = ALL_CAPABILITIES
    CONVERTER_CLASS = AnthropicToolConverter
    MODELS = [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-haiku-20240307",
    ]
    FINISH_REASONS = {
        "end_turn": FinishReason.STOP.value,
        "stop_sequence": FinishReason.STOP.value,
        "max_tokens": FinishReason.LENGTH.value,
        "tool_use": FinishReason.TOOL_CALLS.value,
        "refusal": FinishReason.CONTENT_FILTER.value,
    }

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["x-api-key"] = self._config.api_key
        headers["anthropic-version"] = self._config.api_version or self.ANTHROPIC_VERSION
        return headers

    def _endpoint(self, model: str, stream: bool) -> str:
        return "/messages"

    def format_messages(self, messages: List[Message]) -> Dict[str, Any]:
        """
        Convert messages to Anthropic format.

        Returns:
            Dict with ``system`` (joined system prompts or None) and ``messages``
        """
        system_parts: List[str] = []
        formatted: List[Dict[str, Any]] = []

        for message in messages:
            if message.role == "system":
                system_parts.append(message.text_content())
                continue

            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.text_content(),
                    "is_error": message.is_error,
                }
                # Results answering one assistant turn share a single user turn
                if formatted and _is_tool_result_turn(formatted[-1]):
                    formatted[-1]["content"].append(block)
                else:
                    formatted.append({"role": "user", "content": [block]})
                continue

            if message.role == "assistant" and message.tool_calls:
                content: List[Dict[str, Any]] = []
                text = message.text_content()
                if text:
                    content.append({"type": "text", "text": text})
                content.extend(
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                    for call in message.tool_calls
                )
                formatted.append({"role": "assistant", "content": content})
                continue

            formatted.append({"role": message.role, "content": self._format_content(message)})

        return {
            "system": "\n\n".join(system_parts) if system_parts else None,
            "messages": formatted,
        }

    def _format_content(self, message: Message) -> Any:
        if isinstance(message.content, str):
            return message.content
        return [self._format_part(part) for part in message.content]

    def _format_part(self, part: ContentPart) -> Dict[str, Any]:
        if part.type == "text":
            return {"type": "text", "text": part.text}
        if part.base64:
            return {
                "type": "image",
                "source": {"type": "base64", "media_type": part.mime_type, "data": part.raw_base64},
            }
        return {"type": "image", "source": {"type": "url", "url": part.url}}

    def build_request(self, model: str, messages: Any, options: Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(messages, list):
            messages = {"system": None, "messages": messages}

        body: Dict[str, Any] = {
            "model": model,
            "messages": messages["messages"],
            "max_tokens": options.get("max_tokens") or self.DEFAULT_MAX_TOKENS,
            "stream": bool(options.get("stream")),
            "temperature": self._temperature(options),
        }

        if messages.get("system"):
            body["system"] = messages["system"]
        if options.get("top_p") is not None:
            body["top_p"] = options["top_p"]
        if options.get("stop"):
            body["stop_sequences"] = options["stop"]

        tools = list(options.get("tools") or [])
        response_format = options.get("response_format")

        if response_format and response_format.get("type") in ("json_schema", "json_object"):
            tools.append({
                "name": JSON_RESPONSE_TOOL,
                "description": "Respond with structured JSON matching the schema",
                "input_schema": response_format.get("schema") or {"type": "object"},
            })
            body["tool_choice"] = {"type": "tool", "name": JSON_RESPONSE_TOOL}
        elif tools and options.get("tool_choice") is not None:
            tool_choice = self._format_tool_choice(options["tool_choice"])
            if tool_choice:
                body["tool_choice"] = tool_choice

        if tools:
            body["tools"] = tools

        return body

    def _format_tool_choice(self, tool_choice: Any) -> Optional[Dict[str, Any]]:
        name = tool_choice_name(tool_choice)
        if name:
            return {"type": "tool", "name": name}
        if tool_choice == "auto":
            return {"type": "auto"}
        if tool_choice in ("required", "any"):
            return {"type": "any"}
        # "none" is expressed by omitting tool_choice
        return None

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        if data.get("type") == "error":
            error = data.get("error") or {}
            raise ProviderResponseError(error.get("message") or str(error), provider=self._name)

        text_parts: List[str] = []
        tool_calls = []
        structured = False

        for position, block in enumerate(data.get("content") or []):
            if block.get("type") == "text":
                text_parts.append(block.get("text") or "")
            elif block.get("type") == "tool_use":
                if block.get("name") == JSON_RESPONSE_TOOL:
                    text_parts.append(json.dumps(block.get("input") or {}))
                    structured = True
                else:
                    tool_calls.append(self.tool_converter.parse_tool_call(block, position))

        finish_reason = self._finish_reason(data.get("stop_reason"))
        if structured and not tool_calls:
            finish_reason = FinishReason.STOP.value

        usage = data.get("usage") or {}
        return ChatResponse(
            id=data.get("id") or "",
            model=data.get("model") or "",
            provider=self._name,
            content="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=self._usage(usage.get("input_tokens"), usage.get("output_tokens")) if usage else None,
        )

    def _parse_stream_event(self, event: Dict[str, Any]) -> Optional[StreamChunk]:
        event_type = event.get("type")

        if event_type == "message_start":
            message = event.get("message") or {}
            usage = message.get("usage")
            return StreamChunk(
                id=message.get("id"),
                usage=self._usage(usage.get("input_tokens"), usage.get("output_tokens")) if usage else None,
            )

        if event_type == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                return StreamChunk(tool_calls=[
                    ToolCallDelta(index=event.get("index", 0), id=block.get("id"), name=block.get("name"))
                ])
            if block.get("type") == "text" and block.get("text"):
                return StreamChunk(content=block["text"])
            return None

        if event_type == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta":
                return StreamChunk(content=delta.get("text") or None)
            if delta.get("type") == "input_json_delta":
                return StreamChunk(tool_calls=[
                    ToolCallDelta(index=event.get("index", 0), arguments=delta.get("partial_json") or "")
                ])
            return None

        if event_type == "message_delta":
            delta = event.get("delta") or {}
            usage = event.get("usage")
            return StreamChunk(
                finish_reason=self._finish_reason(delta.get("stop_reason")),
                usage=self._usage(usage.get("input_tokens"), usage.get("output_tokens")) if usage else None,
            )

        if event_type == "message_stop":
            return StreamChunk(complete=True)

        if event_type == "error":
            error = event.get("error") or {}
            return StreamChunk(error=error.get("message") or str(error))

        # ping, content_block_stop
        return None


def _is_tool_result_turn(turn: Dict[str, Any]) -> bool:
    content = turn.get("content")
    return (
        turn.get("role") == "user"
        and isinstance(content, list)
        and bool(content)
        and all(block.get("type") == "tool_result" for block in content)
    )
