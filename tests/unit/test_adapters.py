"""
Unit tests for the vendor adapters.
"""
import json

import httpx
import pytest

from llm_gateway.adapters import (
    AnthropicAdapter,
    GoogleAdapter,
    MistralAdapter,
    OpenAIAdapter,
    VLLMAdapter,
)
from llm_gateway.core.config import ProviderConfig
from llm_gateway.core.errors import (
    ConfigurationError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from llm_gateway.core.interface import ProviderCapability
from llm_gateway.models import Message, ToolCall


def conversation():
    return [
        Message.system("You are terse."),
        Message.user("Weather in Paris?"),
        Message.assistant_with_tool_calls(
            "", [ToolCall(id="call_1", name="get_weather", arguments={"city": "Paris"})]
        ),
        Message.tool_response("call_1", "sunny", name="get_weather"),
    ]


class TestOpenAIAdapter:
    """Test the OpenAI adapter."""

    def setup_method(self):
        self.adapter = OpenAIAdapter("openai", ProviderConfig(api_key="sk-test"))

    def test_requires_api_key(self):
        """Test that a missing key is a configuration error."""
        with pytest.raises(ConfigurationError):
            OpenAIAdapter("openai", ProviderConfig())

    def test_capabilities(self):
        """Test that OpenAI supports every capability."""
        assert self.adapter.supports_tools()
        assert self.adapter.supports_structured_output()
        assert self.adapter.supports(ProviderCapability.IMAGES)

    def test_format_messages(self):
        """Test message conversion including tool calls."""
        formatted = self.adapter.format_messages(conversation())
        assert formatted[0] == {"role": "system", "content": "You are terse."}
        call = formatted[2]["tool_calls"][0]
        assert call["function"]["arguments"] == json.dumps({"city": "Paris"})
        assert formatted[3]["tool_call_id"] == "call_1"

    def test_format_image(self):
        """Test image parts become image_url entries."""
        formatted = self.adapter.format_messages([Message.user_with_image("look", base64="QUJD")])
        image = formatted[0]["content"][1]
        assert image == {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,QUJD", "detail": "high"}}

    def test_build_request(self):
        """Test request body construction."""
        body = self.adapter.build_request("gpt-4o", [], {
            "stream": True,
            "temperature": 0.2,
            "max_tokens": 100,
            "tools": [{"type": "function", "function": {"name": "x"}}],
            "tool_choice": "x",
            "response_format": {"type": "json_schema", "schema": {"type": "object", "properties": {}}},
        })
        assert body["stream"] is True
        assert body["max_tokens"] == 100
        assert body["tool_choice"] == {"type": "function", "function": {"name": "x"}}
        assert body["response_format"]["json_schema"]["strict"] is True
        assert body["response_format"]["json_schema"]["schema"]["additionalProperties"] is False

    def test_parse_response(self):
        """Test parsing a tool-call response."""
        response = self.adapter.parse_response({
            "id": "chatcmpl-1",
            "model": "gpt-4o",
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "call_9",
                        "type": "function",
                        "function": {"name": "math", "arguments": "{\"expression\": \"2+2\"}"},
                    }],
                },
                "finish_reason": "tool_calls",
            }],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        })
        assert response.content == ""
        assert response.tool_calls[0].arguments == {"expression": "2+2"}
        assert response.finish_reason == "tool_calls"
        assert response.usage.total_tokens == 15

    def test_parse_response_without_choices(self):
        """Test that an empty choice list is an error."""
        with pytest.raises(ProviderResponseError):
            self.adapter.parse_response({"choices": []})

    def test_stream_text_then_done(self):
        """Test text delta parsing and the [DONE] sentinel."""
        chunk = self.adapter.parse_stream_chunk(json.dumps({"choices": [{"delta": {"content": "hi"}}]}))
        assert chunk.content == "hi"
        assert chunk.complete is False
        assert self.adapter.parse_stream_chunk("[DONE]").complete is True
        assert self.adapter.parse_stream_chunk("data: [DONE]").complete is True

    def test_stream_tool_call_delta(self):
        """Test tool-call fragments keep their index."""
        chunk = self.adapter.parse_stream_chunk("data: " + json.dumps({
            "choices": [{"delta": {"tool_calls": [
                {"index": 1, "id": "call_2", "function": {"name": "echo", "arguments": "{\"te"}}
            ]}}]
        }))
        delta = chunk.tool_calls[0]
        assert (delta.index, delta.id, delta.name, delta.arguments) == (1, "call_2", "echo", "{\"te")

    def test_stream_ignores_non_payload_lines(self):
        """Test blank lines and SSE comments yield nothing."""
        assert self.adapter.parse_stream_chunk("") is None
        assert self.adapter.parse_stream_chunk(": keep-alive") is None
        assert self.adapter.parse_stream_chunk("event: message") is None

    def test_stream_malformed_json(self):
        """Test malformed lines become error chunks."""
        chunk = self.adapter.parse_stream_chunk("data: {not json")
        assert chunk.is_error
        assert chunk.complete is False


class TestAnthropicAdapter:
    """Test the Anthropic adapter."""

    def setup_method(self):
        self.adapter = AnthropicAdapter("anthropic", ProviderConfig(api_key="sk-ant"))

    def test_format_messages(self):
        """Test system extraction and tool blocks."""
        formatted = self.adapter.format_messages(conversation())
        assert formatted["system"] == "You are terse."
        messages = formatted["messages"]
        assert messages[1]["content"][0] == {
            "type": "tool_use", "id": "call_1", "name": "get_weather", "input": {"city": "Paris"},
        }
        assert messages[2]["role"] == "user"
        assert messages[2]["content"][0]["tool_use_id"] == "call_1"

    def test_consecutive_tool_results_share_a_turn(self):
        """Test that tool results answering one turn are merged."""
        formatted = self.adapter.format_messages([
            Message.user("go"),
            Message.assistant_with_tool_calls("", [ToolCall(id="a", name="x"), ToolCall(id="b", name="y")]),
            Message.tool_response("a", "1"),
            Message.tool_response("b", "2"),
        ])
        assert len(formatted["messages"]) == 3
        assert len(formatted["messages"][2]["content"]) == 2

    def test_build_request(self):
        """Test body layout, defaults and tool choice mapping."""
        formatted = self.adapter.format_messages([Message.system("sys"), Message.user("hi")])
        body = self.adapter.build_request("claude-3-5-haiku-20241022", formatted, {
            "stop": ["END"],
            "tools": [{"name": "x", "description": "", "input_schema": {}}],
            "tool_choice": "required",
        })
        assert body["system"] == "sys"
        assert body["max_tokens"] == 4096
        assert body["stop_sequences"] == ["END"]
        assert body["tool_choice"] == {"type": "any"}

    def test_structured_output_uses_json_tool(self):
        """Test that a JSON schema forces the json_response tool."""
        body = self.adapter.build_request("claude", {"system": None, "messages": []}, {
            "response_format": {"type": "json_schema", "schema": {"type": "object"}},
        })
        assert body["tools"][-1]["name"] == "json_response"
        assert body["tool_choice"] == {"type": "tool", "name": "json_response"}

    def test_parse_response(self):
        """Test text, tool use and stop reason mapping."""
        response = self.adapter.parse_response({
            "id": "msg_1",
            "model": "claude",
            "content": [
                {"type": "text", "text": "Checking."},
                {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 7, "output_tokens": 3},
        })
        assert response.content == "Checking."
        assert response.tool_calls[0].id == "toolu_1"
        assert response.finish_reason == "tool_calls"
        assert response.usage.prompt_tokens == 7

    def test_parse_structured_response(self):
        """Test the json_response tool input becomes content."""
        response = self.adapter.parse_response({
            "content": [{"type": "tool_use", "id": "t", "name": "json_response", "input": {"a": 1}}],
            "stop_reason": "tool_use",
        })
        assert json.loads(response.content) == {"a": 1}
        assert response.tool_calls == []
        assert response.finish_reason == "stop"

    def test_stream_tool_use_start(self):
        """Test content_block_start for tool use yields id and name."""
        chunk = self.adapter.parse_stream_chunk(json.dumps({
            "type": "content_block_start",
            "index": 1,
            "content_block": {"type": "tool_use", "id": "toolu_7", "name": "get_weather", "input": {}},
        }))
        delta = chunk.tool_calls[0]
        assert (delta.index, delta.id, delta.name) == (1, "toolu_7", "get_weather")

    def test_stream_events(self):
        """Test text, json deltas, stop reason and message_stop."""
        text = self.adapter.parse_stream_chunk(json.dumps({
            "type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hel"},
        }))
        partial = self.adapter.parse_stream_chunk(json.dumps({
            "type": "content_block_delta", "index": 1,
            "delta": {"type": "input_json_delta", "partial_json": "{\"city\""},
        }))
        stop = self.adapter.parse_stream_chunk(json.dumps({
            "type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 4},
        }))
        end = self.adapter.parse_stream_chunk(json.dumps({"type": "message_stop"}))
        ping = self.adapter.parse_stream_chunk(json.dumps({"type": "ping"}))

        assert text.content == "Hel"
        assert partial.tool_calls[0].arguments == "{\"city\""
        assert stop.finish_reason == "stop"
        assert end.complete is True
        assert ping is None

    def test_headers(self):
        """Test authentication headers."""
        headers = self.adapter._headers()
        assert headers["x-api-key"] == "sk-ant"
        assert headers["anthropic-version"] == "2023-06-01"


class TestGoogleAdapter:
    """Test the Gemini adapter."""

    def setup_method(self):
        self.adapter = GoogleAdapter("google", ProviderConfig(api_key="g-key"))

    def test_no_structured_output(self):
        """Test the capability set."""
        assert self.adapter.supports_tools()
        assert not self.adapter.supports_structured_output()

    def test_format_messages(self):
        """Test roles, system instruction and function parts."""
        formatted = self.adapter.format_messages(conversation())
        assert formatted["systemInstruction"] == {"parts": [{"text": "You are terse."}]}
        contents = formatted["contents"]
        assert [c["role"] for c in contents] == ["user", "model", "function"]
        assert contents[1]["parts"][0] == {"functionCall": {"name": "get_weather", "args": {"city": "Paris"}}}
        assert contents[2]["parts"][0]["functionResponse"]["name"] == "get_weather"

    def test_build_request(self):
        """Test generation config and tool config."""
        formatted = self.adapter.format_messages([Message.user("hi")])
        body = self.adapter.build_request("gemini-1.5-flash", formatted, {
            "temperature": 0.1,
            "stop": ["X"],
            "response_format": {"type": "json_object"},
            "tools": [{"functionDeclarations": [{"name": "x"}]}],
            "tool_choice": "x",
        })
        config = body["generationConfig"]
        assert config["maxOutputTokens"] == 2048
        assert config["stopSequences"] == ["X"]
        assert config["responseMimeType"] == "application/json"
        assert body["toolConfig"] == {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["x"]}}

    def test_endpoints(self):
        """Test model-in-path URLs and the key parameter."""
        assert self.adapter._endpoint("gemini-1.5-pro", stream=False) == "/models/gemini-1.5-pro:generateContent"
        assert self.adapter._endpoint("gemini-1.5-pro", stream=True) == "/models/gemini-1.5-pro:streamGenerateContent"
        assert self.adapter._query_params(stream=True) == {"key": "g-key", "alt": "sse"}

    def test_parse_function_call_response(self):
        """Test synthesized ids and STOP mapped to tool_calls."""
        response = self.adapter.parse_response({
            "candidates": [{
                "content": {"parts": [{"functionCall": {"name": "get_weather", "args": {"city": "Paris"}}}]},
                "finishReason": "STOP",
            }],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 2},
        })
        assert response.tool_calls[0].id.startswith("get_weather_")
        assert response.finish_reason == "tool_calls"
        assert response.usage.total_tokens == 6

    def test_parse_blocked_response(self):
        """Test that a response without candidates is an error."""
        with pytest.raises(ProviderResponseError, match="SAFETY"):
            self.adapter.parse_response({"promptFeedback": {"blockReason": "SAFETY"}})

    def test_stream_chunk_with_finish_reason_completes(self):
        """Test that a finish reason ends the stream."""
        chunk = self.adapter.parse_stream_chunk("data: " + json.dumps({
            "candidates": [{"content": {"parts": [{"text": "Bye"}]}, "finishReason": "MAX_TOKENS"}],
        }))
        assert chunk.content == "Bye"
        assert chunk.finish_reason == "length"
        assert chunk.complete is True


class TestMistralAdapter:
    """Test the Mistral adapter."""

    def setup_method(self):
        self.adapter = MistralAdapter("mistral", ProviderConfig(api_key="m-key"))

    def test_seed_renamed(self):
        """Test that seed is sent as random_seed."""
        body = self.adapter.build_request("mistral-small-latest", [], {"seed": 7})
        assert body["random_seed"] == 7
        assert "seed" not in body

    def test_text_parts_flattened(self):
        """Test text-only part lists become a string."""
        message = Message.user([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])
        assert self.adapter.format_messages([message])[0]["content"] == "ab"

    def test_typed_content_in_stream(self):
        """Test that typed content parts are flattened when streaming."""
        chunk = self.adapter.parse_stream_chunk(json.dumps({
            "choices": [{"delta": {"content": [{"type": "text", "text": "Bon"}, "jour"]}}],
        }))
        assert chunk.content == "Bonjour"


class TestVLLMAdapter:
    """Test the vLLM adapter."""

    def test_requires_base_url(self):
        """Test that vLLM needs a base URL but no key."""
        with pytest.raises(ConfigurationError):
            VLLMAdapter("local", ProviderConfig())

    @pytest.mark.parametrize("base_url,endpoint", [
        ("http://gpu:8000", "/v1/chat/completions"),
        ("http://gpu:8000/v1", "/chat/completions"),
        ("http://gpu:8000/v1/chat/completions", "/chat/completions"),
    ])
    def test_endpoint_resolution(self, base_url, endpoint):
        """Test the chat endpoint for different base URL styles."""
        adapter = VLLMAdapter("local", ProviderConfig(base_url=base_url))
        assert adapter._endpoint("m", stream=False) == endpoint
        assert not adapter.base_url.endswith("/chat/completions")

    def test_capabilities(self):
        """Test vLLM offers tools and images but no structured output."""
        adapter = VLLMAdapter("local", ProviderConfig(base_url="http://gpu:8000"))
        assert adapter.supports_tools()
        assert not adapter.supports_structured_output()

    def test_tool_call_message_has_null_content(self):
        """Test assistant tool-call turns send null content."""
        adapter = VLLMAdapter("local", ProviderConfig(base_url="http://gpu:8000"))
        formatted = adapter.format_messages(conversation())
        assert formatted[2]["content"] is None


class TestHTTPTransport:
    """Test the shared HTTP plumbing against a mock transport."""

    @pytest.mark.asyncio
    async def test_send_request(self, recording_transport):
        """Test a successful round trip."""
        transport = recording_transport(lambda request: httpx.Response(200, json={"ok": True}))
        adapter = OpenAIAdapter("openai", ProviderConfig(api_key="sk-test"), transport=transport)

        data = await adapter.send_request("gpt-4o", {"model": "gpt-4o"})
        await adapter.disconnect()

        assert data == {"ok": True}
        request = transport.requests[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (401, ProviderAuthenticationError),
        (429, ProviderRateLimitError),
        (500, ProviderResponseError),
    ])
    async def test_error_statuses(self, recording_transport, status, error):
        """Test that HTTP errors map to gateway errors."""
        transport = recording_transport(
            lambda request: httpx.Response(status, json={"error": {"message": "no"}}, headers={"retry-after": "3"})
        )
        adapter = OpenAIAdapter("openai", ProviderConfig(api_key="sk-test"), transport=transport)
        with pytest.raises(error):
            await adapter.send_request("gpt-4o", {})
        await adapter.disconnect()

    @pytest.mark.asyncio
    async def test_stream_request_lines(self, recording_transport, sse):
        """Test that streamed responses are yielded line by line."""
        body = sse({"choices": [{"delta": {"content": "a"}}]}, "[DONE]")
        transport = recording_transport(lambda request: httpx.Response(200, content=body))
        adapter = OpenAIAdapter("openai", ProviderConfig(api_key="sk-test"), transport=transport)

        lines = [line async for line in adapter.stream_request("gpt-4o", {"stream": True})]
        await adapter.disconnect()

        assert [line for line in lines if line] == [
            'data: {"choices": [{"delta": {"content": "a"}}]}',
            "data: [DONE]",
        ]

    @pytest.mark.asyncio
    async def test_vllm_list_models(self, recording_transport):
        """Test that vLLM lists served models."""
        transport = recording_transport(
            lambda request: httpx.Response(200, json={"data": [{"id": "llama-3"}]})
        )
        adapter = VLLMAdapter("local", ProviderConfig(base_url="http://gpu:8000/v1"), transport=transport)
        models = await adapter.list_models()
        await adapter.disconnect()
        assert models == [{"id": "llama-3"}]
        assert transport.requests[0].url.path == "/v1/models"
