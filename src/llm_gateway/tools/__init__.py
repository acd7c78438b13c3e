"""
Tool registry, converters and execution.
"""

from .converters import (
    ToolConverter,
    OpenAIToolConverter,
    AnthropicToolConverter,
    GoogleToolConverter,
    MistralToolConverter,
    VLLMToolConverter,
    MALFORMED_ARGUMENTS_KEY,
)
from .registry import ToolRegistry, normalize_tool_name
from .executor import ToolExecutor
from .builtin import register_builtin_tools

__all__ = [
    "ToolConverter",
    "OpenAIToolConverter",
    "AnthropicToolConverter",
    "GoogleToolConverter",
    "MistralToolConverter",
    "VLLMToolConverter",
    "MALFORMED_ARGUMENTS_KEY",
    "ToolRegistry",
    "normalize_tool_name",
    "ToolExecutor",
    "register_builtin_tools",
]
