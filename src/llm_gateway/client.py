"""
Gateway client.

Public entry point: resolves providers by name, validates requests against
provider capabilities, drives the streaming and non-streaming paths and
runs bounded tool-call round trips.
"""

import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

import httpx

from .adapters import ADAPTERS
from .core.config import GatewayConfig, ProviderConfig
from .core.errors import ConfigurationError
from .core.interface import AbstractProvider
from .core.registry import ProviderRegistry
from .models.message import Message
from .models.request import ChatRequest
from .models.response import ChatResponse, StreamChunk, Usage
from .models.tools import ToolDefinition, ToolResult
from .streaming.response import StreamingResponse
from .tools.executor import ToolExecutor, DEFAULT_TIMEOUT, DEFAULT_MAX_CONCURRENT
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5

RequestLike = Union[ChatRequest, Dict[str, Any]]


class GatewayClient:
    """
    Provider-agnostic chat client.

    Owns one provider instance per configured provider and one ToolRegistry;
    both are reused across requests.
    """

    def __init__(
        self,
        providers: Dict[str, Union[ProviderConfig, Dict[str, Any]]],
        default_provider: Optional[str] = None,
        tool_registry: Optional[ToolRegistry] = None,
        tool_timeout: float = DEFAULT_TIMEOUT,
        max_concurrent_tools: int = DEFAULT_MAX_CONCURRENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            providers: Provider configs by name; ``type`` selects the vendor
                protocol and defaults to the name
            default_provider: Provider used when a request names none;
                defaults to the first configured provider
            tool_registry: Registry to use instead of a fresh one
            tool_timeout: Default per-call tool timeout in seconds
            max_concurrent_tools: Default tool batch size
            transport: httpx transport shared by all providers

        Raises:
            ConfigurationError: If no provider is configured or the default
                is not among them
        """
        if not providers:
            raise ConfigurationError("At least one provider must be configured", field="providers")

        self._transport = transport
        self._registry = ProviderRegistry()
        for provider_type, adapter_class in ADAPTERS.items():
            self._registry.register_adapter(provider_type, adapter_class)

        for name, config in providers.items():
            self.add_provider(name, config)

        default = default_provider or next(iter(providers))
        if not self._registry.has_provider(default):
            raise ConfigurationError(
                f"Default provider '{default}' is not configured",
                provider=default,
                field="default_provider",
            )
        self._registry.set_default_provider(default)

        self._tools = tool_registry if tool_registry is not None else ToolRegistry()
        self._executor = ToolExecutor(
            self._tools,
            default_timeout=tool_timeout,
            max_concurrent=max_concurrent_tools,
        )
        logger.info(f"Gateway client ready with providers: {', '.join(providers)} (default: {default})")

    @classmethod
    def from_config(cls, config: GatewayConfig, **kwargs) -> "GatewayClient":
        return cls(config.providers, default_provider=config.default_provider, **kwargs)

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close every provider's HTTP client."""
        await self._registry.disconnect_all()
        logger.info("Gateway client closed")

    # Providers

    @property
    def default_provider(self) -> Optional[str]:
        return self._registry.default_provider

    def get_provider(self, name: Optional[str] = None) -> AbstractProvider:
        return self._registry.get_provider(name)

    def has_provider(self, name: str) -> bool:
        return self._registry.has_provider(name)

    def add_provider(self, name: str, config: Union[ProviderConfig, Dict[str, Any]]) -> AbstractProvider:
        if not isinstance(config, ProviderConfig):
            config = ProviderConfig.from_dict(config or {})
        return self._registry.create_provider(name, config, transport=self._transport)

    async def remove_provider(self, name: str) -> None:
        provider = self._registry.remove_provider(name)
        await provider.disconnect()

    def set_default_provider(self, name: str) -> None:
        self._registry.set_default_provider(name)

    def list_providers(self) -> List[Dict[str, Any]]:
        return self._registry.list_providers()

    async def list_models(self, provider: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self.get_provider(provider).list_models()

    # Tools

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def executor(self) -> ToolExecutor:
        return self._executor

    def register_tool(
        self,
        name: str,
        description: str,
        parameters: Optional[Dict[str, Any]] = None,
        handler: Optional[Callable[..., Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ToolDefinition:
        return self._tools.register_tool({
            "name": name,
            "description": description,
            "parameters": parameters,
            "handler": handler,
            "metadata": metadata,
        })

    # Requests

    def _coerce(self, request: RequestLike) -> ChatRequest:
        if isinstance(request, ChatRequest):
            return request
        return ChatRequest(**request)

    def _validate_capabilities(
        self,
        provider: AbstractProvider,
        request: ChatRequest,
        stream: bool,
        sends_tools: bool,
    ) -> None:
        if sends_tools and not provider.supports_tools():
            raise ConfigurationError(
                f"Provider '{provider.name}' does not support tools",
                provider=provider.name,
                field="tools",
            )
        if request.requires_images() and not provider.supports_images():
            raise ConfigurationError(
                f"Provider '{provider.name}' does not support images",
                provider=provider.name,
                field="messages",
            )
        response_format = request.response_format or {}
        if response_format.get("type") == "json_schema" and not provider.supports_structured_output():
            raise ConfigurationError(
                f"Provider '{provider.name}' does not support structured output",
                provider=provider.name,
                field="response_format",
            )
        if stream and not provider.supports_streaming():
            raise ConfigurationError(
                f"Provider '{provider.name}' does not support streaming",
                provider=provider.name,
                field="stream",
            )

    def _prepare(
        self,
        request: ChatRequest,
        stream: bool,
        all_tools: bool = False,
    ) -> Tuple[AbstractProvider, str, Dict[str, Any]]:
        """
        Resolve the provider and build the vendor request body.

        Args:
            request: Canonical request
            stream: Whether the body is for a streaming call
            all_tools: Send every registered tool when the request names none

        Returns:
            (provider, model, body)
        """
        provider = self.get_provider(request.provider)
        config = provider.config

        model = request.model or config.default_model
        if not model:
            raise ConfigurationError(
                f"No model specified and provider '{provider.name}' has no default model",
                provider=provider.name,
                field="model",
            )

        tools: List[Dict[str, Any]] = []
        if request.tools:
            tools = self._tools.get_tools_for_provider(provider.provider_type, request.tools)
        elif request.tools is None and all_tools and len(self._tools):
            tools = self._tools.get_tools_for_provider(provider.provider_type)

        self._validate_capabilities(provider, request, stream, sends_tools=bool(tools))

        options = {
            "stream": stream,
            "temperature": request.temperature if request.temperature is not None else config.temperature,
            "max_tokens": request.max_tokens or config.max_tokens,
            "top_p": request.top_p,
            "stop": request.stop_sequences(),
            "presence_penalty": request.presence_penalty,
            "frequency_penalty": request.frequency_penalty,
            "seed": request.seed,
            "tools": tools or None,
            "tool_choice": request.tool_choice,
            "response_format": request.response_format,
        }
        options = {k: v for k, v in options.items() if v is not None}

        body = provider.build_request(model, provider.format_messages(request.messages), options)
        logger.debug(f"Prepared {'streaming ' if stream else ''}request for {provider.name} (model: {model})")
        return provider, model, body

    async def chat(self, request: RequestLike) -> ChatResponse:
        """
        Send a non-streaming chat request.

        Args:
            request: ChatRequest or its dict form

        Returns:
            Canonical response

        Raises:
            ConfigurationError: If the request needs an unsupported capability
            ProviderError: If the provider is unknown or the call fails
        """
        request = self._coerce(request)
        return await self._send(request)

    async def _send(self, request: ChatRequest, all_tools: bool = False) -> ChatResponse:
        provider, model, body = self._prepare(request, stream=False, all_tools=all_tools)
        data = await provider.send_request(model, body)
        response = provider.parse_response(data)
        if not response.model:
            response = response.model_copy(update={"model": model})
        return response

    def stream(self, request: RequestLike) -> StreamingResponse:
        """
        Start a streaming chat request.

        Validation happens immediately; the HTTP request is sent when the
        returned stream is first iterated.

        Args:
            request: ChatRequest or its dict form

        Returns:
            Stream of canonical chunks
        """
        request = self._coerce(request)
        return self._open_stream(request)

    def _open_stream(self, request: ChatRequest, all_tools: bool = False) -> StreamingResponse:
        provider, model, body = self._prepare(request, stream=True, all_tools=all_tools)
        return StreamingResponse.from_events(lambda: provider.stream_request(model, body), provider)

    async def chat_with_tools(
        self,
        request: RequestLike,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        context: Optional[Dict[str, Any]] = None,
        tool_timeout: Optional[float] = None,
        fail_fast: bool = False,
    ) -> ChatResponse:
        """
        Chat and execute requested tool calls until the model stops asking.

        Each round sends the conversation, executes returned tool calls and
        appends their results. Requests that name no tools offer every
        registered tool.

        Args:
            request: ChatRequest or its dict form
            max_rounds: Maximum number of model calls
            context: Passed to tool handlers
            tool_timeout: Per-call tool timeout in seconds
            fail_fast: Abort a tool batch on its first failure

        Returns:
            Final response; metadata holds ``rounds``, ``tool_results``,
            ``messages`` and ``max_rounds_reached``
        """
        request = self._coerce(request)
        if max_rounds < 1:
            raise ConfigurationError("max_rounds must be at least 1", field="max_rounds")

        messages = list(request.messages)
        results: List[ToolResult] = []
        usage: Optional[Usage] = None

        for round_number in range(1, max_rounds + 1):
            response = await self._send(request.model_copy(update={"messages": messages}), all_tools=True)
            usage = response.usage if usage is None else usage.add(response.usage)

            if not response.tool_calls:
                messages.append(Message.assistant(response.content))
                return _with_round_metadata(response, round_number, results, messages, usage, False)

            messages.append(Message.assistant_with_tool_calls(response.content, response.tool_calls))
            round_results = await self._executor.execute_tools(
                response.tool_calls, context=context, timeout=tool_timeout, fail_fast=fail_fast,
            )
            results.extend(round_results)
            messages.extend(Message.from_tool_result(result) for result in round_results)
            logger.debug(f"Round {round_number}: executed {len(round_results)} tool calls")

        logger.warning(f"Tool round-trip limit of {max_rounds} reached")
        return _with_round_metadata(response, max_rounds, results, messages, usage, True)

    async def stream_with_tools(
        self,
        request: RequestLike,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        context: Optional[Dict[str, Any]] = None,
        tool_timeout: Optional[float] = None,
        fail_fast: bool = False,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat, executing tool calls between rounds.

        Yields every chunk of every round. After a round's tool calls are
        executed, one extra chunk carrying ``tool_results`` is yielded
        before the next round starts.
        """
        request = self._coerce(request)
        if max_rounds < 1:
            raise ConfigurationError("max_rounds must be at least 1", field="max_rounds")

        messages = list(request.messages)

        for round_number in range(1, max_rounds + 1):
            stream = self._open_stream(request.model_copy(update={"messages": messages}), all_tools=True)
            content: List[str] = []
            tool_calls = []

            async for chunk in stream:
                if chunk.content:
                    content.append(chunk.content)
                tool_calls.extend(chunk.completed_tool_calls)
                yield chunk

            if not tool_calls:
                return

            messages.append(Message.assistant_with_tool_calls("".join(content), tool_calls))
            results = await self._executor.execute_tools(
                tool_calls, context=context, timeout=tool_timeout, fail_fast=fail_fast,
            )
            messages.extend(Message.from_tool_result(result) for result in results)
            yield StreamChunk(tool_results=results)

        logger.warning(f"Tool round-trip limit of {max_rounds} reached while streaming")

    def get_info(self) -> Dict[str, Any]:
        return {
            "default_provider": self.default_provider,
            "providers": self.list_providers(),
            "tools": self._tools.get_stats(),
        }


def _with_round_metadata(
    response: ChatResponse,
    rounds: int,
    results: List[ToolResult],
    messages: List[Message],
    usage: Optional[Usage],
    limit_reached: bool,
) -> ChatResponse:
    metadata = dict(response.metadata)
    metadata.update({
        "rounds": rounds,
        "tool_results": results,
        "messages": messages,
        "max_rounds_reached": limit_reached,
    })
    return response.model_copy(update={"metadata": metadata, "usage": usage})
