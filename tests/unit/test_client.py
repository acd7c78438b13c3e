"""
Unit tests for the gateway client.
"""
import json

import httpx
import pytest

from llm_gateway import GatewayClient
from llm_gateway.core.config import GatewayConfig, ProviderConfig
from llm_gateway.core.errors import ConfigurationError, ProviderNotFoundError
from llm_gateway.models import ChatRequest, Message

PROVIDERS = {
    "openai": {"api_key": "sk-test", "default_model": "gpt-4o-mini", "temperature": 0.3},
    "gemini": {"type": "google", "api_key": "g-key", "default_model": "gemini-1.5-flash"},
    "local": {"type": "vllm", "base_url": "http://gpu:8000/v1"},
}


def completion(content=None, tool_calls=None, finish_reason="stop"):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-1",
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 2},
    }


def math_call(call_id="call_1", expression="2+2"):
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": "math", "arguments": json.dumps({"expression": expression})},
    }


def user_request(text="Hi", **kwargs):
    return ChatRequest(messages=[Message.user(text)], **kwargs)


class TestClientSetup:
    """Test client construction and provider management."""

    def test_requires_providers(self):
        """Test that at least one provider is needed."""
        with pytest.raises(ConfigurationError, match="At least one provider must be configured"):
            GatewayClient({})

    def test_default_provider_is_first(self):
        """Test the implicit default provider."""
        client = GatewayClient(PROVIDERS)
        assert client.default_provider == "openai"

    def test_unknown_default_provider(self):
        """Test that the default must be configured."""
        with pytest.raises(ConfigurationError):
            GatewayClient(PROVIDERS, default_provider="cohere")

    def test_unknown_provider_type(self):
        """Test that unknown vendor types are rejected."""
        with pytest.raises(ProviderNotFoundError, match="Unknown provider type: cohere"):
            GatewayClient({"cohere": {"api_key": "x"}})

    def test_from_config(self):
        """Test building a client from a GatewayConfig."""
        config = GatewayConfig(
            default_provider="local",
            providers={"local": ProviderConfig(type="vllm", base_url="http://gpu:8000")},
        )
        client = GatewayClient.from_config(config)
        assert client.get_provider().provider_type == "vllm"

    def test_list_providers(self):
        """Test provider listing marks the default."""
        client = GatewayClient(PROVIDERS, default_provider="gemini")
        info = {p["name"]: p for p in client.list_providers()}
        assert info["gemini"]["is_default"] is True
        assert info["local"]["type"] == "vllm"

    @pytest.mark.asyncio
    async def test_remove_provider(self):
        """Test removing providers; the default cannot be removed."""
        client = GatewayClient(PROVIDERS)
        with pytest.raises(ConfigurationError):
            await client.remove_provider("openai")
        await client.remove_provider("local")
        assert not client.has_provider("local")

    @pytest.mark.asyncio
    async def test_list_models(self):
        """Test the static model catalog."""
        client = GatewayClient(PROVIDERS)
        models = await client.list_models("gemini")
        assert {"id": "gemini-1.5-flash", "object": "model", "owned_by": "google"} in models


class TestChat:
    """Test non-streaming chat."""

    @pytest.mark.asyncio
    async def test_chat(self, recording_transport):
        """Test a plain completion."""
        transport = recording_transport(lambda request: httpx.Response(200, json=completion("Hello!")))
        async with GatewayClient(PROVIDERS, transport=transport) as client:
            response = await client.chat({"messages": [{"role": "user", "content": "Hi"}]})

        assert response.content == "Hello!"
        assert response.provider == "openai"
        body = transport.json_bodies()[0]
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0.3
        assert body["stream"] is False

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        """Test requesting a provider that is not configured."""
        client = GatewayClient(PROVIDERS)
        with pytest.raises(ProviderNotFoundError, match="Provider 'ghost' not found"):
            await client.chat(user_request(provider="ghost"))

    @pytest.mark.asyncio
    async def test_missing_model(self):
        """Test that a model must come from the request or the config."""
        client = GatewayClient(PROVIDERS)
        with pytest.raises(ConfigurationError):
            await client.chat(user_request(provider="local"))

    @pytest.mark.asyncio
    async def test_structured_output_unsupported(self):
        """Test that json_schema output is rejected for providers without it."""
        client = GatewayClient(PROVIDERS)
        with pytest.raises(ConfigurationError, match="structured output"):
            await client.chat(user_request(
                provider="gemini",
                response_format={"type": "json_schema", "schema": {"type": "object"}},
            ))

    @pytest.mark.asyncio
    async def test_named_tools_are_formatted(self, recording_transport, tool_registry):
        """Test that named tools are sent in the vendor's format."""
        transport = recording_transport(lambda request: httpx.Response(200, json=completion("ok")))
        client = GatewayClient(PROVIDERS, tool_registry=tool_registry, transport=transport)
        await client.chat(user_request(tools=["math"], tool_choice="math", max_tokens=50))
        await client.close()

        body = transport.json_bodies()[0]
        assert [t["function"]["name"] for t in body["tools"]] == ["math"]
        assert body["tool_choice"] == {"type": "function", "function": {"name": "math"}}
        assert body["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_google_request(self, recording_transport):
        """Test routing to a non-default provider."""
        payload = {"candidates": [{"content": {"parts": [{"text": "Hallo"}]}, "finishReason": "STOP"}]}
        transport = recording_transport(lambda request: httpx.Response(200, json=payload))
        client = GatewayClient(PROVIDERS, transport=transport)
        response = await client.chat(user_request(provider="gemini"))
        await client.close()

        request = transport.requests[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-flash:generateContent"
        assert request.url.params["key"] == "g-key"
        assert response.content == "Hallo"
        assert response.finish_reason == "stop"


class TestStream:
    """Test streaming chat."""

    @pytest.mark.asyncio
    async def test_stream_collect(self, recording_transport, sse):
        """Test streaming text through the client."""
        body = sse(
            {"id": "s1", "choices": [{"delta": {"content": "Hel"}}]},
            {"id": "s1", "choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
            "[DONE]",
        )
        transport = recording_transport(lambda request: httpx.Response(200, content=body))
        client = GatewayClient(PROVIDERS, transport=transport)
        response = await client.stream(user_request()).collect()
        await client.close()

        assert response.content == "Hello"
        assert response.finish_reason == "stop"
        assert transport.json_bodies()[0]["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_validates_eagerly(self):
        """Test that capability errors surface before iteration."""
        client = GatewayClient(PROVIDERS)
        with pytest.raises(ConfigurationError):
            client.stream(user_request(provider="local"))


class TestToolRoundTrips:
    """Test chat_with_tools and stream_with_tools."""

    @pytest.mark.asyncio
    async def test_chat_with_tools(self, recording_transport, tool_registry):
        """Test one tool round followed by a final answer."""
        responses = iter([
            completion(tool_calls=[math_call()], finish_reason="tool_calls"),
            completion("The answer is 4."),
        ])
        transport = recording_transport(lambda request: httpx.Response(200, json=next(responses)))
        client = GatewayClient(PROVIDERS, tool_registry=tool_registry, transport=transport)
        response = await client.chat_with_tools(user_request("What is 2+2?"))
        await client.close()

        assert response.content == "The answer is 4."
        assert response.metadata["rounds"] == 2
        assert response.metadata["max_rounds_reached"] is False
        assert response.metadata["tool_results"][0].result == 4
        assert response.usage.total_tokens == 24

        first, second = transport.json_bodies()
        assert len(first["tools"]) == 3
        assert second["messages"][-1] == {
            "role": "tool", "content": "4", "tool_call_id": "call_1", "name": "math",
        }

    @pytest.mark.asyncio
    async def test_round_limit(self, recording_transport, tool_registry):
        """Test that the loop stops after max_rounds."""
        transport = recording_transport(
            lambda request: httpx.Response(200, json=completion(tool_calls=[math_call()], finish_reason="tool_calls"))
        )
        client = GatewayClient(PROVIDERS, tool_registry=tool_registry, transport=transport)
        response = await client.chat_with_tools(user_request(), max_rounds=2)
        await client.close()

        assert response.metadata["rounds"] == 2
        assert response.metadata["max_rounds_reached"] is True
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_tool_failures_are_sent_back(self, recording_transport, tool_registry):
        """Test that failed tool calls are reported to the model as errors."""
        responses = iter([
            completion(tool_calls=[math_call(expression="1/0")], finish_reason="tool_calls"),
            completion("Cannot divide by zero."),
        ])
        transport = recording_transport(lambda request: httpx.Response(200, json=next(responses)))
        client = GatewayClient(PROVIDERS, tool_registry=tool_registry, transport=transport)
        response = await client.chat_with_tools(user_request())
        await client.close()

        assert response.metadata["tool_results"][0].is_error
        tool_message = transport.json_bodies()[1]["messages"][-1]
        assert tool_message["content"].startswith("Error: ")

    @pytest.mark.asyncio
    async def test_stream_with_tools(self, recording_transport, tool_registry, sse):
        """Test streamed tool round trips yield tool results between rounds."""
        bodies = iter([
            sse(
                {"choices": [{"delta": {"tool_calls": [
                    {"index": 0, "id": "call_1", "function": {"name": "echo", "arguments": ""}}
                ]}}]},
                {"choices": [{"delta": {"tool_calls": [
                    {"index": 0, "function": {"arguments": "{\"text\": \"ping\"}"}}
                ]}}]},
                {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
                "[DONE]",
            ),
            sse({"choices": [{"delta": {"content": "pong"}, "finish_reason": "stop"}]}, "[DONE]"),
        ])
        transport = recording_transport(lambda request: httpx.Response(200, content=next(bodies)))
        client = GatewayClient(PROVIDERS, tool_registry=tool_registry, transport=transport)

        chunks = [chunk async for chunk in client.stream_with_tools(user_request())]
        await client.close()

        results = [r for chunk in chunks for r in chunk.tool_results]
        assert [r.result for r in results] == ["ping"]
        assert "".join(c.content or "" for c in chunks) == "pong"
        assert transport.json_bodies()[1]["messages"][-1]["content"] == "ping"
