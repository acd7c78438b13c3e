"""
Shared fixtures for unit tests.
"""
import json

import httpx
import pytest

from llm_gateway.tools import ToolRegistry, register_builtin_tools


def sse_body(*events) -> bytes:
    """Encode events as an SSE response body; strings are sent verbatim."""
    lines = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines).encode()


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def json_bodies(self):
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def tool_registry():
    """Registry preloaded with the built-in tools."""
    registry = ToolRegistry()
    register_builtin_tools(registry)
    return registry


@pytest.fixture
def recording_transport():
    """Factory for a RecordingTransport around a request handler."""
    return RecordingTransport


@pytest.fixture
def sse():
    """Encoder for SSE response bodies."""
    return sse_body
