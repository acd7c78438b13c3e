"""
Bridge to the legacy buffer-oriented adapter interface.

Older consumers read a stream line by line and expect each line to come
back as::

    {"content": [...], "tool_calls": [...], "complete": bool,
     "error": bool, "errorMessage": str | None, "finishReason": str | None}

Per-vendor quirks of that format are reproduced as they were, including
raw vendor tool-call fragments and unnormalized finish reasons.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from .client import GatewayClient
from .models.message import Message, ToolCall
from .models.request import ChatRequest
from .tools.converters import OpenAIToolConverter

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

_openai_converter = OpenAIToolConverter()


def _legacy_result(
    content: Optional[List[str]] = None,
    tool_calls: Optional[List[Dict[str, Any]]] = None,
    complete: bool = False,
    error: bool = False,
    error_message: Optional[str] = None,
    finish_reason: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "content": content if content is not None else [],
        "tool_calls": tool_calls if tool_calls is not None else [],
        "complete": complete,
        "error": error,
        "errorMessage": error_message,
        "finishReason": finish_reason,
    }


def _first(items: Any) -> Optional[Dict[str, Any]]:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _process_openai(parsed: Dict[str, Any]) -> Dict[str, Any]:
    result = _legacy_result()
    choice = _first(parsed.get("choices"))
    if not choice:
        return result

    for key in ("delta", "message"):
        payload = choice.get(key)
        if not payload:
            continue
        if payload.get("content"):
            result["content"].append(payload["content"])
        if payload.get("tool_calls"):
            result["tool_calls"].extend(payload["tool_calls"])

    if choice.get("finish_reason"):
        result["complete"] = True
        result["finishReason"] = choice["finish_reason"]
    return result


def _process_anthropic(parsed: Dict[str, Any]) -> Dict[str, Any]:
    result = _legacy_result()
    event_type = parsed.get("type")
    delta = parsed.get("delta") or {}

    if event_type == "content_block_delta":
        if delta.get("text"):
            result["content"].append(delta["text"])

    elif event_type == "message_delta":
        stop_reason = delta.get("stop_reason")
        if stop_reason:
            result["complete"] = True
            result["finishReason"] = "stop" if stop_reason == "end_turn" else stop_reason

    elif event_type == "message_stop":
        result["complete"] = True

    elif event_type == "content_block_start":
        block = parsed.get("content_block") or {}
        if block.get("type") == "tool_use":
            result["tool_calls"].append({
                "index": parsed.get("index"),
                "id": block.get("id"),
                "type": "function",
                "function": {"name": block.get("name"), "arguments": ""},
            })

    return result


def _process_google(parsed: Dict[str, Any]) -> Dict[str, Any]:
    result = _legacy_result()
    candidate = _first(parsed.get("candidates"))
    if not candidate:
        return result

    content = candidate.get("content") or {}
    for part in content.get("parts") or []:
        if part.get("text"):
            result["content"].append(part["text"])
        elif part.get("functionCall"):
            call = part["functionCall"]
            result["tool_calls"].append({
                "id": f"call_{int(time.time() * 1000)}",
                "type": "function",
                "function": {
                    "name": call.get("name"),
                    "arguments": json.dumps(call.get("args") or {}),
                },
            })

    if candidate.get("finishReason"):
        result["complete"] = True
        result["finishReason"] = candidate["finishReason"].lower()
    return result


def _mistral_texts(content: Any) -> List[str]:
    if isinstance(content, list):
        return [
            part if isinstance(part, str) else part["text"]
            for part in content
            if isinstance(part, str) or (isinstance(part, dict) and part.get("type") == "text" and part.get("text"))
        ]
    if isinstance(content, dict) and content.get("type") == "text":
        return [content.get("text")]
    return [content or ""]


def _process_mistral(parsed: Dict[str, Any]) -> Dict[str, Any]:
    result = _legacy_result()
    choice = _first(parsed.get("choices"))
    if not choice:
        return result

    for key in ("delta", "message"):
        payload = choice.get(key)
        if not payload:
            continue
        if payload.get("content"):
            result["content"].extend(_mistral_texts(payload["content"]))
        if payload.get("tool_calls"):
            result["tool_calls"].extend(payload["tool_calls"])

    if choice.get("finish_reason"):
        result["complete"] = True
        result["finishReason"] = choice["finish_reason"]
    return result


_PROCESSORS = {
    "openai": _process_openai,
    "vllm": _process_openai,
    "anthropic": _process_anthropic,
    "google": _process_google,
    "mistral": _process_mistral,
}


def to_messages(messages: List[Any]) -> List[Message]:
    """
    Convert legacy message dicts to canonical messages.

    Legacy messages carry OpenAI-shaped ``tool_calls`` and attach images as
    ``imageData: {"base64": ..., "fileType": ...}``. Message instances are
    passed through.
    """
    converted = []
    for msg in messages:
        if isinstance(msg, Message):
            converted.append(msg)
            continue

        role = msg.get("role")
        content = msg.get("content") or ""
        if role == "tool":
            converted.append(Message.tool_response(msg.get("tool_call_id"), content, name=msg.get("name")))
        elif role == "assistant" and msg.get("tool_calls"):
            calls = [
                call if isinstance(call, ToolCall) else _openai_converter.parse_tool_call(call, index)
                for index, call in enumerate(msg["tool_calls"])
            ]
            converted.append(Message.assistant_with_tool_calls(content, calls))
        elif msg.get("imageData"):
            image = msg["imageData"]
            converted.append(Message.user_with_image(
                content,
                base64=image.get("base64"),
                mime_type=image.get("fileType") or "image/jpeg",
            ))
        else:
            converted.append(Message(role=role, content=content))
    return converted


class LegacyBridge:
    """
    Legacy adapter interface backed by a GatewayClient.
    """

    def __init__(self, client: GatewayClient):
        self._client = client

    @property
    def client(self) -> GatewayClient:
        return self._client

    def process_response_buffer(self, provider: str, buffer: Optional[str]) -> Dict[str, Any]:
        """
        Parse one raw stream line into the legacy result shape.

        Args:
            provider: Vendor name selecting the parsing rules
            buffer: Raw line, with or without a ``data: `` prefix

        Returns:
            Legacy result dict; parse failures set ``error`` and
            ``errorMessage`` instead of raising
        """
        if buffer and buffer.startswith("data: "):
            buffer = buffer[len("data: "):]

        if not buffer or buffer == DONE_SENTINEL:
            done = buffer == DONE_SENTINEL
            return _legacy_result(complete=done, finish_reason="stop" if done else None)

        try:
            parsed = json.loads(buffer)
            processor = _PROCESSORS.get(provider)
            if processor is None:
                return _legacy_result()
            return processor(parsed)
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.error(f"Error processing response buffer from {provider}: {e}")
            return _legacy_result(error=True, error_message=str(e))

    def create_completion_request(
        self,
        model: Dict[str, Any],
        messages: List[Any],
        api_key: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Build a legacy request description around a canonical request.

        Args:
            model: Legacy model dict with ``provider``, ``modelId`` and ``url``
            messages: Legacy message dicts
            api_key: Key echoed in the Authorization header
            options: ``temperature``, ``maxTokens``, ``stream``, ``tools``,
                ``toolChoice``, ``responseSchema`` and ``responseFormat``

        Returns:
            Dict with ``url``, ``method``, ``headers``, ``body`` and the
            canonical request under ``_sdk_request``
        """
        options = options or {}

        if options.get("responseSchema"):
            response_format = {"type": "json_schema", "schema": options["responseSchema"]}
        elif options.get("responseFormat") == "json":
            response_format = {"type": "json_object"}
        else:
            response_format = None

        request = ChatRequest(
            provider=model.get("provider") or self._client.default_provider,
            model=model.get("modelId"),
            messages=to_messages(messages),
            temperature=options.get("temperature"),
            max_tokens=options.get("maxTokens"),
            stream=bool(options.get("stream", False)),
            tools=self._tool_names(options.get("tools")),
            tool_choice=options.get("toolChoice"),
            response_format=response_format,
        )

        return {
            "url": model.get("url"),
            "method": "POST",
            "headers": {"Authorization": f"Bearer {api_key}"},
            "body": request.model_dump(mode="json", exclude_none=True),
            "_sdk_request": request,
        }

    def _tool_names(self, tools: Optional[List[Any]]) -> Optional[List[str]]:
        # Legacy callers pass either names or OpenAI-shaped definitions
        if tools is None:
            return None
        names = []
        for tool in tools:
            if isinstance(tool, str):
                names.append(tool)
                continue
            definition = tool.get("function", tool)
            if not self._client.tools.has_tool(definition.get("name", "")):
                self._client.tools.register_tool({
                    "name": definition.get("name"),
                    "description": definition.get("description", ""),
                    "parameters": definition.get("parameters"),
                })
            names.append(definition.get("name"))
        return names

    def format_messages(self, provider: str, messages: List[Any]) -> Any:
        """Format legacy messages for a configured provider."""
        return self._client.get_provider(provider).format_messages(to_messages(messages))
