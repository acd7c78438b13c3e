"""
Tool definition and tool result models.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolDefinition(BaseModel):
    """A registered tool: schema plus optional handler."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    handler: Optional[Callable[..., Any]] = Field(default=None, exclude=True)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def required(self) -> list:
        return list(self.parameters.get("required") or [])

    @property
    def properties(self) -> Dict[str, Any]:
        return dict(self.parameters.get("properties") or {})


class ToolError(BaseModel):
    """Failure details of a tool execution."""
    model_config = ConfigDict(frozen=True)

    message: str
    type: str = "Error"


class ToolResult(BaseModel):
    """Outcome of one tool call. Exactly one of result or error is meaningful."""
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    name: str
    result: Any = None
    error: Optional[ToolError] = None
    execution_time_ms: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_outcome(self) -> "ToolResult":
        if self.error is not None and self.result is not None:
            raise ValueError("ToolResult cannot carry both result and error")
        return self

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, tool_call_id: str, name: str, result: Any, **kwargs) -> "ToolResult":
        return cls(tool_call_id=tool_call_id, name=name, result=result, **kwargs)

    @classmethod
    def failure(
        cls,
        tool_call_id: str,
        name: str,
        message: str,
        error_type: str = "Error",
        **kwargs,
    ) -> "ToolResult":
        return cls(
            tool_call_id=tool_call_id,
            name=name,
            error=ToolError(message=message, type=error_type),
            **kwargs,
        )
