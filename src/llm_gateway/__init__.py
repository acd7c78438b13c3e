"""
LLM Gateway

A provider-agnostic client for chat-completion APIs:
- One canonical request/response model across OpenAI, Anthropic, Google,
  Mistral and vLLM
- Tool registry with per-vendor converters
- Concurrent, timeout-bounded tool execution
- Normalized streaming with tool-call assembly
- Bridge for the legacy buffer-oriented adapter interface
"""

from .client import GatewayClient
from .legacy import LegacyBridge
from .core.interface import AbstractProvider, ProviderCapability
from .core.registry import ProviderRegistry
from .core.config import ProviderConfig, GatewayConfig, load_config
from .core.errors import (
    GatewayError,
    ConfigurationError,
    ProviderError,
    ProviderNotFoundError,
    ToolExecutionError,
    StreamingError,
)
from .models import (
    ChatRequest,
    ChatResponse,
    ContentPart,
    Message,
    StreamChunk,
    ToolCall,
    ToolDefinition,
    ToolResult,
    Usage,
)
from .streaming import StreamingResponse, StreamState
from .tools import ToolExecutor, ToolRegistry, register_builtin_tools

__version__ = "0.1.0"

__all__ = [
    "GatewayClient",
    "LegacyBridge",
    "AbstractProvider",
    "ProviderCapability",
    "ProviderRegistry",
    "ProviderConfig",
    "GatewayConfig",
    "load_config",
    "GatewayError",
    "ConfigurationError",
    "ProviderError",
    "ProviderNotFoundError",
    "ToolExecutionError",
    "StreamingError",
    "ChatRequest",
    "ChatResponse",
    "ContentPart",
    "Message",
    "StreamChunk",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "Usage",
    "StreamingResponse",
    "StreamState",
    "ToolExecutor",
    "ToolRegistry",
    "register_builtin_tools",
]
