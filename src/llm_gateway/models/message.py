"""
Canonical conversation models.

Messages are immutable values; a conversation is a plain list of them
owned by the caller.
"""

import json
import math
from typing import Optional, List, Dict, Any, Union, Literal, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .tools import ToolResult

Role = Literal["system", "user", "assistant", "tool"]


class ContentPart(BaseModel):
    """A typed piece of message content: text or an image reference."""
    model_config = ConfigDict(frozen=True)

    type: Literal["text", "image"]
    text: Optional[str] = None
    url: Optional[str] = None
    base64: Optional[str] = None
    mime_type: str = "image/jpeg"

    @model_validator(mode="after")
    def _check_payload(self) -> "ContentPart":
        if self.type == "text" and self.text is None:
            raise ValueError("Text part requires text")
        if self.type == "image" and not (self.url or self.base64):
            raise ValueError("Image part requires url or base64 data")
        return self

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(type="text", text=text)

    @classmethod
    def of_image(
        cls,
        url: Optional[str] = None,
        base64: Optional[str] = None,
        mime_type: str = "image/jpeg",
    ) -> "ContentPart":
        return cls(type="image", url=url, base64=base64, mime_type=mime_type)

    @property
    def data_url(self) -> str:
        """URL form of an image part, inlining base64 data when needed."""
        if self.url:
            return self.url
        if self.base64.startswith("data:"):
            return self.base64
        return f"data:{self.mime_type};base64,{self.base64}"

    @property
    def raw_base64(self) -> Optional[str]:
        """Base64 payload without any ``data:...;base64,`` prefix."""
        if self.base64 and self.base64.startswith("data:") and "," in self.base64:
            return self.base64.split(",", 1)[1]
        return self.base64


class ToolCall(BaseModel):
    """A model's request to invoke a named tool."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)

    def arguments_json(self) -> str:
        return json.dumps(self.arguments)


class Message(BaseModel):
    """
    One conversation turn.

    Supports:
    - System messages
    - User messages (text or multimodal)
    - Assistant messages (with optional tool calls)
    - Tool messages (results bound to a tool call id)
    """
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Union[str, List[ContentPart]] = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    is_error: bool = False

    @model_validator(mode="after")
    def _check_role_fields(self) -> "Message":
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages must have tool_call_id")

        if self.tool_calls:
            if self.role != "assistant":
                raise ValueError("Only assistant messages can carry tool calls")
            ids = [call.id for call in self.tool_calls]
            if any(not call_id for call_id in ids):
                raise ValueError("Tool calls must have an id")
            if len(set(ids)) != len(ids):
                raise ValueError("Tool call ids must be unique within a message")
        return self

    # Factories

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: Union[str, List[ContentPart]]) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def user_with_image(
        cls,
        text: str,
        url: Optional[str] = None,
        base64: Optional[str] = None,
        mime_type: str = "image/jpeg",
    ) -> "Message":
        """Create a user message with text followed by one image."""
        parts = []
        if text:
            parts.append(ContentPart.of_text(text))
        parts.append(ContentPart.of_image(url=url, base64=base64, mime_type=mime_type))
        return cls(role="user", content=parts)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)

    @classmethod
    def assistant_with_tool_calls(
        cls,
        content: str,
        tool_calls: Sequence[Union[ToolCall, Dict[str, Any]]],
    ) -> "Message":
        """
        Create an assistant message that requests tool calls.

        Args:
            content: Accompanying text (may be empty)
            tool_calls: ToolCall objects or their dict form

        Returns:
            Assistant message
        """
        calls = [c if isinstance(c, ToolCall) else ToolCall(**c) for c in tool_calls]
        return cls(role="assistant", content=content or "", tool_calls=calls)

    @classmethod
    def tool_response(
        cls,
        tool_call_id: str,
        content: Any,
        name: Optional[str] = None,
        is_error: bool = False,
    ) -> "Message":
        """
        Create a tool message carrying a tool's output.

        Non-string content is JSON-encoded.
        """
        if not isinstance(content, str):
            content = json.dumps(content, default=str)
        return cls(
            role="tool",
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            is_error=is_error,
        )

    @classmethod
    def from_tool_result(cls, result: ToolResult) -> "Message":
        if result.is_error:
            return cls.tool_response(
                result.tool_call_id,
                f"Error: {result.error.message}",
                name=result.name,
                is_error=True,
            )
        return cls.tool_response(result.tool_call_id, result.result, name=result.name)

    # Helpers

    def has_images(self) -> bool:
        return isinstance(self.content, list) and any(p.type == "image" for p in self.content)

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def text_content(self) -> str:
        """Text of the message, with text parts joined by a space."""
        if isinstance(self.content, str):
            return self.content
        return " ".join(p.text for p in self.content if p.type == "text")

    def image_parts(self) -> List[ContentPart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if p.type == "image"]


def estimate_token_count(messages: Sequence[Message]) -> int:
    """
    Rough token estimate for a conversation.

    Four characters per token, plus fixed overheads for each message,
    tool call and image.
    """
    total = 0
    for message in messages:
        total += math.ceil(len(message.text_content()) / 4) + 4
        total += 10 * len(message.tool_calls or [])
        total += 85 * len(message.image_parts())
    return total
