"""
Abstract provider interface definition.

Defines the contract that every vendor adapter must implement: message
formatting, request building, response and stream-chunk parsing, and the
capability probes the client checks before dispatch.
"""

import json
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, List, Dict, Any, AsyncIterator, Optional, Set, Union

from ..models.message import Message
from ..models.response import ChatResponse, StreamChunk
from .config import ProviderConfig

if TYPE_CHECKING:
    from ..tools.converters import ToolConverter

DONE_SENTINEL = "[DONE]"

# SSE fields that never carry a payload
_SSE_META_FIELD = re.compile(r"^(event|id|retry):")


class ProviderCapability(str, Enum):
    """Capabilities that a provider may support."""
    STREAMING = "streaming"
    SYSTEM_MESSAGES = "system_messages"
    TOOLS = "tools"
    IMAGES = "images"
    STRUCTURED_OUTPUT = "structured_output"


class AbstractProvider(ABC):
    """
    Abstract base class for LLM provider adapters.

    Formatting and parsing methods are pure; transport methods own an HTTP
    client that is reused across requests.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Configured name of this provider instance.

        Returns:
            Provider name (e.g., "openai", "local-vllm")
        """
        pass

    @property
    @abstractmethod
    def provider_type(self) -> str:
        """
        Vendor wire protocol implemented by this adapter.

        Returns:
            One of "openai", "anthropic", "google", "mistral", "vllm"
        """
        pass

    @property
    @abstractmethod
    def capabilities(self) -> Set[ProviderCapability]:
        """
        Set of capabilities this provider supports.

        Returns:
            Set of ProviderCapability values
        """
        pass

    @property
    @abstractmethod
    def config(self) -> ProviderConfig:
        """Resolved configuration of this provider instance."""
        pass

    @property
    @abstractmethod
    def tool_converter(self) -> "ToolConverter":
        """Converter between canonical tools and this vendor's tool format."""
        pass

    @abstractmethod
    def format_messages(self, messages: List[Message]) -> Any:
        """
        Convert canonical messages to the vendor's message format.

        Args:
            messages: Canonical conversation

        Returns:
            Vendor messages; a list, or a dict when the vendor carries the
            system prompt separately
        """
        pass

    @abstractmethod
    def build_request(self, model: str, messages: Any, options: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build the vendor request body.

        Args:
            model: Model identifier
            messages: Output of format_messages
            options: Merged request options (temperature, max_tokens, stream,
                tools already in vendor format, tool_choice, response_format, ...)

        Returns:
            JSON-serializable request body
        """
        pass

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        """
        Parse a non-streaming vendor response.

        Args:
            data: Decoded response body

        Returns:
            Canonical response
        """
        pass

    @abstractmethod
    def _parse_stream_event(self, event: Dict[str, Any]) -> Optional[StreamChunk]:
        """Parse one decoded stream event. Returning None skips the event."""
        pass

    def parse_stream_chunk(self, raw: Union[str, bytes, Dict[str, Any]]) -> Optional[StreamChunk]:
        """
        Parse one raw streaming event into a canonical chunk.

        Accepts an SSE line, a bare JSON line, or an already decoded event.
        Malformed input never raises; it becomes a chunk with ``error`` set
        so the stream can continue.

        Args:
            raw: Raw vendor event

        Returns:
            Canonical chunk, or None for lines that carry no payload
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        if isinstance(raw, str):
            line = raw.strip()
            if not line or line.startswith(":") or _SSE_META_FIELD.match(line):
                return None
            if line.startswith("data:"):
                line = line[5:].strip()
            if line == DONE_SENTINEL:
                return StreamChunk(complete=True)
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                return StreamChunk(error=f"Invalid JSON in {self.provider_type} stream chunk: {e}")
        else:
            event = raw

        if not isinstance(event, dict):
            return StreamChunk(error=f"Unexpected {self.provider_type} stream event: {event!r}")

        try:
            return self._parse_stream_event(event)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            return StreamChunk(error=f"Failed to parse {self.provider_type} stream chunk: {e}")

    def supports(self, capability: ProviderCapability) -> bool:
        """
        Check if provider supports a capability.

        Args:
            capability: Capability to check

        Returns:
            True if supported
        """
        return capability in self.capabilities

    def supports_tools(self) -> bool:
        return self.supports(ProviderCapability.TOOLS)

    def supports_images(self) -> bool:
        return self.supports(ProviderCapability.IMAGES)

    def supports_structured_output(self) -> bool:
        return self.supports(ProviderCapability.STRUCTURED_OUTPUT)

    def supports_streaming(self) -> bool:
        return self.supports(ProviderCapability.STREAMING)

    @abstractmethod
    async def connect(self) -> None:
        """Create the HTTP client. Called lazily on first use."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the HTTP client."""
        pass

    @abstractmethod
    async def send_request(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a non-streaming request.

        Args:
            model: Model identifier (part of the URL for some vendors)
            body: Output of build_request

        Returns:
            Decoded response body
        """
        pass

    @abstractmethod
    def stream_request(self, model: str, body: Dict[str, Any]) -> AsyncIterator[str]:
        """
        Send a streaming request.

        Args:
            model: Model identifier
            body: Output of build_request with stream enabled

        Yields:
            Raw response lines in arrival order
        """
        pass

    @abstractmethod
    async def list_models(self) -> List[Dict[str, Any]]:
        """
        List models known for this provider.

        Returns:
            List of model information dicts
        """
        pass

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.provider_type,
            "capabilities": sorted(c.value for c in self.capabilities),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, type={self.provider_type!r})"
