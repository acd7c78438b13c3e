"""
Canonical data models.
"""

from .message import ContentPart, Message, ToolCall, estimate_token_count
from .tools import ToolDefinition, ToolError, ToolResult
from .response import ChatResponse, FinishReason, StreamChunk, ToolCallDelta, Usage
from .request import ChatRequest

__all__ = [
    "ContentPart",
    "Message",
    "ToolCall",
    "estimate_token_count",
    "ToolDefinition",
    "ToolError",
    "ToolResult",
    "ChatResponse",
    "FinishReason",
    "StreamChunk",
    "ToolCallDelta",
    "Usage",
    "ChatRequest",
]
