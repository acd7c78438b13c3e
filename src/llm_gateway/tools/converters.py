"""
Per-vendor tool converters.

Each converter maps canonical tool definitions to the vendor's tool schema,
vendor tool calls back to canonical ToolCalls, and ToolResults to the
message the vendor expects in the conversation.
"""

import copy
import json
import time
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Iterable

from ..models.message import ToolCall
from ..models.tools import ToolDefinition, ToolResult

# Key holding the raw text of arguments that were not valid JSON
MALFORMED_ARGUMENTS_KEY = "_parse_error"

# JSON-Schema keywords rejected by vLLM's guided decoding
VLLM_UNSUPPORTED_SCHEMA_KEYS = (
    "additionalProperties",
    "patternProperties",
    "dependencies",
    "allOf",
    "anyOf",
    "oneOf",
    "not",
    "$ref",
    "format",
)


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """
    Decode tool-call arguments into a dict.

    Malformed text is kept under MALFORMED_ARGUMENTS_KEY instead of raising.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {MALFORMED_ARGUMENTS_KEY: raw}
        if isinstance(parsed, dict):
            return parsed
        return {MALFORMED_ARGUMENTS_KEY: raw}
    return {MALFORMED_ARGUMENTS_KEY: str(raw)}


def result_text(result: ToolResult) -> str:
    """Text form of a tool result as sent back to the model."""
    if result.is_error:
        return f"Error: {result.error.message}"
    if isinstance(result.result, str):
        return result.result
    return json.dumps(result.result, default=str)


def sanitize_schema(schema: Any) -> Any:
    """Return a copy of a JSON schema without keywords vLLM rejects."""
    if not isinstance(schema, dict):
        return schema

    cleaned = {k: copy.deepcopy(v) for k, v in schema.items() if k not in VLLM_UNSUPPORTED_SCHEMA_KEYS}

    if isinstance(cleaned.get("properties"), dict):
        cleaned["properties"] = {
            name: sanitize_schema(prop) for name, prop in cleaned["properties"].items()
        }
    if "items" in cleaned:
        if isinstance(cleaned["items"], list):
            cleaned["items"] = [sanitize_schema(item) for item in cleaned["items"]]
        else:
            cleaned["items"] = sanitize_schema(cleaned["items"])
    return cleaned


def synthesize_call_id(name: str, index: int = 0) -> str:
    """Build an id for vendors that do not issue tool-call ids."""
    stamp = int(time.time() * 1000)
    if index:
        return f"{name}_{stamp}_{index}"
    return f"{name}_{stamp}"


class ToolConverter(ABC):
    """Converts tools between canonical and one vendor's format."""

    provider_type: str = ""

    @abstractmethod
    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        pass

    @abstractmethod
    def parse_tool_call(self, raw: Dict[str, Any], index: int = 0) -> ToolCall:
        pass

    @abstractmethod
    def format_tool_response(self, result: ToolResult) -> Dict[str, Any]:
        pass

    def format_tools(self, tools: Iterable[ToolDefinition]) -> List[Dict[str, Any]]:
        return [self.format_tool(tool) for tool in tools]

    def parse_tool_calls(self, raw_calls: Iterable[Dict[str, Any]]) -> List[ToolCall]:
        return [self.parse_tool_call(raw, index) for index, raw in enumerate(raw_calls or [])]

    def format_tool_responses(self, results: Iterable[ToolResult]) -> List[Dict[str, Any]]:
        return [self.format_tool_response(result) for result in results]


class OpenAIToolConverter(ToolConverter):
    """OpenAI function tools with JSON-string arguments."""

    provider_type = "openai"

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": self._parameters(tool),
            },
        }

    def _parameters(self, tool: ToolDefinition) -> Dict[str, Any]:
        return tool.parameters

    def parse_tool_call(self, raw: Dict[str, Any], index: int = 0) -> ToolCall:
        function = raw.get("function") or {}
        name = function.get("name") or raw.get("name") or ""
        return ToolCall(
            id=raw.get("id") or synthesize_call_id(name, index),
            name=name,
            arguments=parse_arguments(function.get("arguments", raw.get("arguments"))),
        )

    def format_tool_response(self, result: ToolResult) -> Dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": result.tool_call_id,
            "name": result.name,
            "content": result_text(result),
        }


class MistralToolConverter(OpenAIToolConverter):
    """Mistral uses the OpenAI tool shape."""

    provider_type = "mistral"


class VLLMToolConverter(OpenAIToolConverter):
    """OpenAI tool shape with schemas sanitized for vLLM."""

    provider_type = "vllm"

    def _parameters(self, tool: ToolDefinition) -> Dict[str, Any]:
        return sanitize_schema(tool.parameters)


class AnthropicToolConverter(ToolConverter):
    """Anthropic tools: input_schema in, structured tool_use input out."""

    provider_type = "anthropic"

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.parameters,
        }

    def parse_tool_call(self, raw: Dict[str, Any], index: int = 0) -> ToolCall:
        name = raw.get("name") or ""
        return ToolCall(
            id=raw.get("id") or synthesize_call_id(name, index),
            name=name,
            arguments=parse_arguments(raw.get("input")),
        )

    def format_tool_response(self, result: ToolResult) -> Dict[str, Any]:
        return {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": result.tool_call_id,
                    "content": result_text(result),
                    "is_error": result.is_error,
                }
            ],
        }


class GoogleToolConverter(ToolConverter):
    """Gemini function declarations; calls carry an args object and no id."""

    provider_type = "google"

    def _declaration(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        }

    def format_tool(self, tool: ToolDefinition) -> Dict[str, Any]:
        return {"functionDeclarations": [self._declaration(tool)]}

    def format_tools(self, tools: Iterable[ToolDefinition]) -> List[Dict[str, Any]]:
        declarations = [self._declaration(tool) for tool in tools]
        if not declarations:
            return []
        return [{"functionDeclarations": declarations}]

    def parse_tool_call(self, raw: Dict[str, Any], index: int = 0) -> ToolCall:
        call = raw.get("functionCall", raw)
        name = call.get("name") or ""
        return ToolCall(
            id=call.get("id") or synthesize_call_id(name, index),
            name=name,
            arguments=parse_arguments(call.get("args")),
        )

    def format_tool_response(self, result: ToolResult) -> Dict[str, Any]:
        return {
            "role": "function",
            "parts": [{"functionResponse": function_response(result.name, result)}],
        }


def function_response(name: str, result: ToolResult) -> Dict[str, Any]:
    """Gemini functionResponse payload; the response must be an object."""
    if result.is_error:
        response = {"error": result.error.message}
    elif isinstance(result.result, dict):
        response = result.result
    else:
        response = {"name": name, "content": result.result}
    return {"name": name, "response": response}


def default_converters() -> Dict[str, ToolConverter]:
    return {
        "openai": OpenAIToolConverter(),
        "anthropic": AnthropicToolConverter(),
        "google": GoogleToolConverter(),
        "mistral": MistralToolConverter(),
        "vllm": VLLMToolConverter(),
    }
