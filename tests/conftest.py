"""
Core pytest fixtures for the chat bridge test suite.

Provides fake MCP transport clients and connections so that connector,
catalog, invoker and aggregator logic can be exercised without any
network I/O.
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import the top-level packages
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

from clients.http_factory import HttpClientFactory
from chat_bridge.tools.mcp.mcp_config import McpServerConfig
from chat_bridge.tools.mcp.mcp_connector import MCPClientConnection
from chat_bridge.tools.mcp.mcp_protocol import TRANSPORT_STREAMABLE_HTTP


# ============================================================================
# MCP Fakes
# ============================================================================


class FakeMCPClient:
    """In-memory stand-in for a connected MCP transport client."""

    def __init__(
        self,
        tools: Optional[List[Dict[str, Any]]] = None,
        capabilities: Optional[Dict[str, Any]] = None,
        transport: str = TRANSPORT_STREAMABLE_HTTP,
    ):
        self.transport = transport
        self.connected = True
        self.server_capabilities = {"tools": {}} if capabilities is None else capabilities
        self.list_tools = AsyncMock(return_value=list(tools or []))
        self.call_tool = AsyncMock(return_value={"content": [{"type": "text", "text": "ok"}]})
        self.connect = AsyncMock()
        self.disconnect = AsyncMock(side_effect=self._disconnect)

    async def _disconnect(self) -> None:
        self.connected = False


def _make_tool(name: str, description: Optional[str] = None, **schema_props) -> Dict[str, Any]:
    """Build a tools/list entry."""
    tool: Dict[str, Any] = {
        "name": name,
        "inputSchema": {"type": "object", "properties": dict(schema_props)},
    }
    if description is not None:
        tool["description"] = description
    return tool


@pytest.fixture
def make_tool():
    """Factory for tools/list entries."""
    return _make_tool


@pytest.fixture
def http_factory() -> HttpClientFactory:
    """HTTP factory with no proxy."""
    return HttpClientFactory()


@pytest.fixture
def fake_client_factory():
    """Factory for FakeMCPClient instances."""
    return FakeMCPClient


@pytest.fixture
def make_connection():
    """Factory for MCPClientConnection records wrapping a FakeMCPClient."""

    def _make(tools=None, capabilities=None, transport=TRANSPORT_STREAMABLE_HTTP):
        client = FakeMCPClient(tools=tools, capabilities=capabilities, transport=transport)
        return MCPClientConnection(client=client, transport=transport)

    return _make


@pytest.fixture
def server_config():
    """Factory for McpServerConfig records."""

    def _make(server_id="srv", url="https://mcp.example.com/mcp", headers=None, enabled_tools=None):
        return McpServerConfig(
            id=server_id,
            url=url,
            headers=list(headers or []),
            enabled_tools=enabled_tools,
        )

    return _make
