"""
Streaming normalization.
"""

from .accumulator import ToolCallAccumulator
from .response import StreamingResponse, StreamState, StreamController

__all__ = [
    "ToolCallAccumulator",
    "StreamingResponse",
    "StreamState",
    "StreamController",
]
