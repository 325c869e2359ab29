"""MCP (Model Context Protocol) client subsystem for the chat bridge.

Provides:
- MCPStreamableHTTPClient: JSON-RPC over Streamable HTTP (primary transport)
- MCPSSEClient: JSON-RPC over HTTP/SSE (fallback transport)
- connect_server: Transport selection with SSE fallback
- list_mcp_tools / call_mcp_tool: One-shot catalog and invocation
- load_mcp_tools_for_chat: Multi-server tool aggregation for a chat turn
- McpTransportError / normalize_error: The single error shape for callers
"""

from chat_bridge.tools.mcp.mcp_aggregator import LoadedMCPTools, McpToolSummary, load_mcp_tools_for_chat
from chat_bridge.tools.mcp.mcp_config import McpServerConfig, build_header_record, load_mcp_config
from chat_bridge.tools.mcp.mcp_connector import MCPClientConnection, connect_server, should_fallback_to_sse
from chat_bridge.tools.mcp.mcp_errors import McpTransportError, normalize_error
from chat_bridge.tools.mcp.mcp_http_client import MCPStreamableHTTPClient
from chat_bridge.tools.mcp.mcp_protocol import AbortSignal
from chat_bridge.tools.mcp.mcp_sse_client import MCPSSEClient
from chat_bridge.tools.mcp.mcp_tool_adapter import MCPToolAdapter
from chat_bridge.tools.mcp.mcp_tools import McpCallToolResult, McpToolDescriptor, call_mcp_tool, list_mcp_tools

__all__ = [
    "AbortSignal",
    "LoadedMCPTools",
    "MCPClientConnection",
    "MCPSSEClient",
    "MCPStreamableHTTPClient",
    "MCPToolAdapter",
    "McpCallToolResult",
    "McpServerConfig",
    "McpToolDescriptor",
    "McpToolSummary",
    "McpTransportError",
    "build_header_record",
    "call_mcp_tool",
    "connect_server",
    "list_mcp_tools",
    "load_mcp_config",
    "load_mcp_tools_for_chat",
    "normalize_error",
    "should_fallback_to_sse",
]
