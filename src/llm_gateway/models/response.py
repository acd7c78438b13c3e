"""
Canonical response and stream chunk models.
"""

from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from .message import ToolCall
from .tools import ToolResult


class FinishReason(str, Enum):
    """Reasons for completion finishing."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


class Usage(BaseModel):
    """Token usage information."""
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: Optional["Usage"]) -> "Usage":
        if other is None:
            return self
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def of(cls, prompt_tokens: int = 0, completion_tokens: int = 0) -> "Usage":
        prompt_tokens = prompt_tokens or 0
        completion_tokens = completion_tokens or 0
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class ToolCallDelta(BaseModel):
    """A streamed fragment of a tool call, keyed by its index in the turn."""
    model_config = ConfigDict(frozen=True)

    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


class StreamChunk(BaseModel):
    """
    Canonical incremental unit of a streamed response.

    ``tool_calls`` holds raw fragments as the vendor sent them;
    ``completed_tool_calls`` is filled by the streaming normalizer once a
    call's fragments are fully assembled.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    complete: bool = False
    usage: Optional[Usage] = None
    error: Optional[str] = None
    completed_tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls) or bool(self.completed_tool_calls)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class ChatResponse(BaseModel):
    """Canonical non-streaming response."""
    model_config = ConfigDict(frozen=True)

    id: str = ""
    model: str = ""
    provider: str = ""
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
