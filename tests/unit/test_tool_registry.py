"""
Unit tests for the tool registry and per-vendor converters.
"""
import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from llm_gateway.core.errors import ConfigurationError, ProviderError
from llm_gateway.models import ToolDefinition, ToolResult
from llm_gateway.tools import (
    AnthropicToolConverter,
    GoogleToolConverter,
    MALFORMED_ARGUMENTS_KEY,
    MistralToolConverter,
    OpenAIToolConverter,
    ToolRegistry,
    VLLMToolConverter,
    normalize_tool_name,
)

WEATHER_TOOL = {
    "name": "get_weather",
    "description": "Look up the weather",
    "parameters": {
        "type": "object",
        "properties": {
            "city": {"type": "string"},
            "days": {"type": "integer"},
        },
        "required": ["city"],
    },
}

ARGUMENTS = {"city": "Berlin", "days": 3}


class TestToolNames:
    """Test tool name normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("get_weather", "get_weather"),
        ("get weather!", "get_weather_"),
        ("9lives", "tool_9lives"),
        ("web.search-v2", "web.search-v2"),
    ])
    def test_normalize(self, raw, expected):
        """Test normalization of assorted names."""
        assert normalize_tool_name(raw) == expected

    def test_registered_name_is_normalized(self):
        """Test that lookups return the normalized name."""
        registry = ToolRegistry()
        registry.register_tool(dict(WEATHER_TOOL, name="get weather"))
        tool = registry.get_tool("get weather")
        assert tool.name == normalize_tool_name("get weather")


class TestToolRegistry:
    """Test tool registration."""

    def test_register_twice_is_idempotent(self):
        """Test that identical re-registration does not grow the registry."""
        registry = ToolRegistry()
        registry.register_tool(WEATHER_TOOL)
        registry.register_tool(WEATHER_TOOL)
        assert len(registry.list_tools()) == 1

    def test_register_with_handler(self):
        """Test that handlers are kept with the definition."""
        registry = ToolRegistry()
        registry.register_tool(WEATHER_TOOL, handler=lambda args, ctx: "sunny")
        assert registry.has_handler("get_weather")

    def test_rejects_non_object_parameters(self):
        """Test schema validation on registration."""
        registry = ToolRegistry()
        with pytest.raises(ConfigurationError):
            registry.register_tool(dict(WEATHER_TOOL, parameters={"type": "array"}))

    def test_rejects_missing_description(self):
        """Test that a description is required."""
        registry = ToolRegistry()
        with pytest.raises(ConfigurationError):
            registry.register_tool({"name": "x"})

    def test_register_tools_validates_all_first(self):
        """Test that one bad definition stores nothing."""
        registry = ToolRegistry()
        with pytest.raises(ConfigurationError):
            registry.register_tools([WEATHER_TOOL, {"name": "", "description": "bad"}])
        assert len(registry) == 0

    def test_unregister(self):
        """Test removing a tool."""
        registry = ToolRegistry()
        registry.register_tool(WEATHER_TOOL)
        assert registry.unregister_tool("get_weather") is True
        assert registry.unregister_tool("get_weather") is False

    def test_unknown_converter(self):
        """Test that an unknown vendor raises ProviderError."""
        registry = ToolRegistry()
        with pytest.raises(ProviderError, match="No tool converter found for provider: cohere"):
            registry.get_converter("cohere")

    def test_register_incomplete_converter(self):
        """Test that converters missing methods are rejected."""
        registry = ToolRegistry()
        with pytest.raises(ConfigurationError):
            registry.register_converter("custom", object())

    def test_tools_for_provider_skips_unknown_names(self, tool_registry):
        """Test that unknown requested names are skipped."""
        tools = tool_registry.get_tools_for_provider("openai", ["math", "ghost"])
        assert [t["function"]["name"] for t in tools] == ["math"]

    def test_builtins_registered(self, tool_registry):
        """Test the built-in tool set."""
        assert set(tool_registry.list_tools()) == {"echo", "math", "datetime"}
        assert tool_registry.get_stats()["tools_with_handlers"] == 3

    def test_concurrent_registration_and_lookup(self):
        """Test that lookups during concurrent registration see whole definitions."""
        registry = ToolRegistry()
        torn = []

        def register(start):
            for i in range(start, start + 50):
                registry.register_tool(dict(WEATHER_TOOL, name=f"tool_{i}"))

        def read():
            for _ in range(200):
                names = registry.list_tools()
                for tool in registry.get_all_tools():
                    if tool.required != ["city"] or set(tool.properties) != {"city", "days"}:
                        torn.append(tool.name)
                for name in names:
                    if registry.get_tool(name) is None:
                        torn.append(name)

        with ThreadPoolExecutor(max_workers=6) as pool:
            futures = [pool.submit(register, n * 50) for n in range(3)]
            futures += [pool.submit(read) for _ in range(3)]
            for future in futures:
                future.result()

        assert torn == []
        assert len(registry.list_tools()) == 150
        assert registry.get_stats()["total_tools"] == 150


class TestConverterRoundTrip:
    """Test that vendor tool calls referencing a formatted tool parse back."""

    def setup_method(self):
        self.tool = ToolDefinition(**WEATHER_TOOL)

    def test_openai(self):
        """Test OpenAI format and JSON-string arguments."""
        converter = OpenAIToolConverter()
        formatted = converter.format_tool(self.tool)
        assert formatted["type"] == "function"
        raw = {
            "id": "call_1",
            "type": "function",
            "function": {"name": formatted["function"]["name"], "arguments": json.dumps(ARGUMENTS)},
        }
        call = converter.parse_tool_call(raw)
        assert (call.id, call.name, call.arguments) == ("call_1", "get_weather", ARGUMENTS)

    def test_mistral(self):
        """Test Mistral uses the OpenAI shape."""
        converter = MistralToolConverter()
        formatted = converter.format_tool(self.tool)
        raw = {"id": "abc", "function": {"name": formatted["function"]["name"], "arguments": json.dumps(ARGUMENTS)}}
        assert converter.parse_tool_call(raw).arguments == ARGUMENTS

    def test_vllm_sanitizes_schema(self):
        """Test vLLM drops unsupported schema keywords."""
        converter = VLLMToolConverter()
        tool = ToolDefinition(
            name="t",
            description="d",
            parameters={
                "type": "object",
                "additionalProperties": False,
                "properties": {"when": {"type": "string", "format": "date-time"}},
            },
        )
        parameters = converter.format_tool(tool)["function"]["parameters"]
        assert "additionalProperties" not in parameters
        assert parameters["properties"]["when"] == {"type": "string"}

    def test_anthropic(self):
        """Test Anthropic input_schema and object input."""
        converter = AnthropicToolConverter()
        formatted = converter.format_tool(self.tool)
        assert formatted["input_schema"] == self.tool.parameters
        raw = {"type": "tool_use", "id": "toolu_1", "name": formatted["name"], "input": ARGUMENTS}
        call = converter.parse_tool_call(raw)
        assert (call.id, call.name, call.arguments) == ("toolu_1", "get_weather", ARGUMENTS)

    def test_google(self):
        """Test Gemini declarations and synthesized ids."""
        converter = GoogleToolConverter()
        formatted = converter.format_tools([self.tool])
        declaration = formatted[0]["functionDeclarations"][0]
        raw = {"functionCall": {"name": declaration["name"], "args": ARGUMENTS}}
        call = converter.parse_tool_call(raw)
        assert call.name == "get_weather"
        assert call.arguments == ARGUMENTS
        assert call.id.startswith("get_weather_")

    def test_google_merges_declarations(self):
        """Test that all tools share one functionDeclarations entry."""
        converter = GoogleToolConverter()
        other = ToolDefinition(name="other", description="d")
        formatted = converter.format_tools([self.tool, other])
        assert len(formatted) == 1
        assert len(formatted[0]["functionDeclarations"]) == 2

    def test_malformed_arguments_are_kept(self):
        """Test that unparseable arguments do not raise."""
        call = OpenAIToolConverter().parse_tool_call(
            {"id": "c", "function": {"name": "get_weather", "arguments": "{city: Berlin"}}
        )
        assert call.arguments == {MALFORMED_ARGUMENTS_KEY: "{city: Berlin"}


class TestToolResponses:
    """Test formatting of tool results for each vendor."""

    def test_openai_response(self):
        """Test OpenAI tool message."""
        message = OpenAIToolConverter().format_tool_response(ToolResult.success("c1", "math", 4))
        assert message == {"role": "tool", "tool_call_id": "c1", "name": "math", "content": "4"}

    def test_anthropic_error_response(self):
        """Test Anthropic tool_result block flags errors."""
        message = AnthropicToolConverter().format_tool_response(ToolResult.failure("c1", "math", "bad"))
        block = message["content"][0]
        assert message["role"] == "user"
        assert block["is_error"] is True
        assert block["content"] == "Error: bad"

    def test_google_response_wraps_scalars(self):
        """Test Gemini functionResponse is always an object."""
        message = GoogleToolConverter().format_tool_response(ToolResult.success("c1", "math", 4))
        response = message["parts"][0]["functionResponse"]
        assert response == {"name": "math", "response": {"name": "math", "content": 4}}
