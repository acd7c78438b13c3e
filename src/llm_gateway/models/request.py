"""
Unified chat request model.
"""

from typing import Optional, List, Dict, Any, Union

from pydantic import BaseModel, ConfigDict, Field

from .message import Message


class ChatRequest(BaseModel):
    """
    Canonical chat completion request.

    ``tools`` names registered tools; the client formats them for the
    selected provider. ``response_format`` is ``{"type": "json_object"}`` or
    ``{"type": "json_schema", "schema": {...}}``.
    """
    model_config = ConfigDict(extra="allow")

    messages: List[Message] = Field(..., description="Conversation messages")
    provider: Optional[str] = None
    model: Optional[str] = None

    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    stop: Optional[Union[str, List[str]]] = None
    presence_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2, le=2)
    seed: Optional[int] = None
    stream: bool = False

    # Tool use
    tools: Optional[List[str]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None

    response_format: Optional[Dict[str, Any]] = None

    def requires_images(self) -> bool:
        return any(m.has_images() for m in self.messages)

    def stop_sequences(self) -> Optional[List[str]]:
        if self.stop is None:
            return None
        return self.stop if isinstance(self.stop, list) else [self.stop]
