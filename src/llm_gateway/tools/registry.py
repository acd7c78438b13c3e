"""
Tool registry for canonical tool definitions and per-vendor converters.
"""

import logging
import re
import threading
from typing import Callable, Dict, List, Any, Iterable, Optional, Union

from ..core.errors import ConfigurationError, ProviderError
from ..models.message import ToolCall
from ..models.tools import ToolDefinition, ToolResult
from .converters import ToolConverter, default_converters

logger = logging.getLogger(__name__)

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")
_VALID_NAME_START = re.compile(r"^[A-Za-z_]")

_CONVERTER_METHODS = ("format_tool", "parse_tool_call", "format_tool_response")


def normalize_tool_name(name: Any) -> str:
    """
    Normalize a tool name to a vendor-safe token.

    Characters outside letters, digits, underscore, dot and hyphen become
    underscores; names not starting with a letter or underscore get a
    ``tool_`` prefix.
    """
    if not isinstance(name, str) or not name.strip():
        return "unnamed_tool"
    normalized = _INVALID_NAME_CHARS.sub("_", name.strip())
    if not _VALID_NAME_START.match(normalized):
        normalized = f"tool_{normalized}"
    return normalized


def validate_parameters_schema(name: str, parameters: Any) -> Dict[str, Any]:
    """Check that parameters is a minimal JSON-Schema object description."""
    if parameters is None:
        return {"type": "object", "properties": {}}

    if not isinstance(parameters, dict):
        raise ConfigurationError(f"Parameters for tool '{name}' must be an object", field="parameters")

    schema_type = parameters.get("type", "object")
    if schema_type != "object":
        raise ConfigurationError(
            f"Parameters for tool '{name}' must have type 'object', got {schema_type!r}",
            field="parameters.type",
        )

    properties = parameters.get("properties", {})
    if not isinstance(properties, dict):
        raise ConfigurationError(f"Properties for tool '{name}' must be an object", field="parameters.properties")
    for prop_name, prop in properties.items():
        if not isinstance(prop, dict):
            raise ConfigurationError(
                f"Property '{prop_name}' of tool '{name}' must be an object",
                field="parameters.properties",
            )

    required = parameters.get("required", [])
    if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
        raise ConfigurationError(
            f"Required list for tool '{name}' must be a list of names",
            field="parameters.required",
        )

    schema = dict(parameters)
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema


class ToolRegistry:
    """
    Registry of tool definitions.

    Owned by a client rather than shared globally, so independent clients
    can run with distinct tool sets. Lookups and mutations are guarded by a
    single lock; the last registration of a name wins.
    """

    def __init__(self, converters: Optional[Dict[str, ToolConverter]] = None):
        """
        Initialize the registry.

        Args:
            converters: Converters by vendor name, replacing the defaults
        """
        self._tools: Dict[str, ToolDefinition] = {}
        self._converters: Dict[str, ToolConverter] = dict(converters or default_converters())
        self._lock = threading.RLock()

    def register_tool(
        self,
        tool: Union[ToolDefinition, Dict[str, Any]],
        handler: Optional[Callable[..., Any]] = None,
    ) -> ToolDefinition:
        """
        Register a tool.

        Args:
            tool: ToolDefinition or a dict with name, description,
                parameters, handler and metadata
            handler: Handler overriding the one in ``tool``

        Returns:
            The stored definition, with its name normalized

        Raises:
            ConfigurationError: If the definition is invalid
        """
        definition = self._build_definition(tool, handler)

        with self._lock:
            if definition.name in self._tools:
                logger.warning(f"Overwriting existing tool: {definition.name}")
            self._tools[definition.name] = definition

        logger.info(f"Registered tool: {definition.name}")
        return definition

    def _build_definition(
        self,
        tool: Union[ToolDefinition, Dict[str, Any]],
        handler: Optional[Callable[..., Any]] = None,
    ) -> ToolDefinition:
        data = tool.model_dump() if isinstance(tool, ToolDefinition) else dict(tool or {})
        if isinstance(tool, ToolDefinition) and handler is None:
            handler = tool.handler
        handler = handler or data.get("handler")

        raw_name = data.get("name")
        if not isinstance(raw_name, str) or not raw_name.strip():
            raise ConfigurationError("Tool name must be a non-empty string", field="name")

        description = data.get("description")
        if not isinstance(description, str):
            raise ConfigurationError(f"Description for tool '{raw_name}' must be a string", field="description")

        if handler is not None and not callable(handler):
            raise ConfigurationError(f"Handler for tool '{raw_name}' must be callable", field="handler")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ConfigurationError(f"Metadata for tool '{raw_name}' must be an object", field="metadata")

        name = normalize_tool_name(raw_name)
        return ToolDefinition(
            name=name,
            description=description,
            parameters=validate_parameters_schema(name, data.get("parameters")),
            handler=handler,
            metadata=metadata,
        )

    def register_tools(self, tools: List[Union[ToolDefinition, Dict[str, Any]]]) -> List[ToolDefinition]:
        """Register several tools; all are validated before any is stored."""
        if not isinstance(tools, list):
            raise ConfigurationError("Tools must be provided as a list", field="tools")
        definitions = [self._build_definition(tool) for tool in tools]
        return [self.register_tool(definition) for definition in definitions]

    def unregister_tool(self, name: str) -> bool:
        key = normalize_tool_name(name)
        with self._lock:
            removed = self._tools.pop(key, None)
        if removed is not None:
            logger.info(f"Unregistered tool: {key}")
        return removed is not None

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        with self._lock:
            return self._tools.get(normalize_tool_name(name))

    def has_tool(self, name: str) -> bool:
        return self.get_tool(name) is not None

    def list_tools(self) -> List[str]:
        with self._lock:
            return list(self._tools)

    def get_all_tools(self) -> List[ToolDefinition]:
        with self._lock:
            return list(self._tools.values())

    def get_handler(self, name: str) -> Optional[Callable[..., Any]]:
        tool = self.get_tool(name)
        return tool.handler if tool else None

    def has_handler(self, name: str) -> bool:
        return self.get_handler(name) is not None

    def register_converter(self, provider: str, converter: ToolConverter) -> None:
        """
        Register a converter for a vendor.

        Raises:
            ConfigurationError: If the converter lacks a required method
        """
        missing = [m for m in _CONVERTER_METHODS if not callable(getattr(converter, m, None))]
        if missing:
            raise ConfigurationError(
                f"Converter for '{provider}' is missing: {', '.join(missing)}",
                provider=provider,
            )
        with self._lock:
            self._converters[provider.lower()] = converter
        logger.info(f"Registered tool converter: {provider}")

    def get_converter(self, provider: str) -> ToolConverter:
        """
        Get the converter for a vendor.

        Raises:
            ProviderError: If no converter is registered
        """
        with self._lock:
            converter = self._converters.get((provider or "").lower())
        if converter is None:
            raise ProviderError(f"No tool converter found for provider: {provider}", provider=provider)
        return converter

    def get_tools_for_provider(
        self,
        provider: str,
        names: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Format registered tools for a vendor.

        Args:
            provider: Vendor name
            names: Subset of tool names; all tools when None

        Returns:
            Tools in the vendor's schema
        """
        converter = self.get_converter(provider)

        if names is None:
            tools = self.get_all_tools()
        else:
            tools = []
            for name in names:
                tool = self.get_tool(name)
                if tool is None:
                    logger.warning(f"Requested tool not registered: {name}")
                    continue
                tools.append(tool)

        return converter.format_tools(tools)

    def parse_tool_calls(self, raw_calls: Iterable[Dict[str, Any]], provider: str) -> List[ToolCall]:
        return self.get_converter(provider).parse_tool_calls(raw_calls)

    def format_tool_responses(self, results: Iterable[ToolResult], provider: str) -> List[Dict[str, Any]]:
        return self.get_converter(provider).format_tool_responses(results)

    def clear(self) -> None:
        with self._lock:
            self._tools.clear()
        logger.info("Cleared tool registry")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            tools = list(self._tools.values())
            converters = sorted(self._converters)
        return {
            "total_tools": len(tools),
            "tools_with_handlers": sum(1 for t in tools if t.handler is not None),
            "converters": converters,
            "tools": [t.name for t in tools],
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)
