"""
MCP Tools — one-shot catalog listing and tool invocation against a single server.

Each call opens its own connection and releases it before returning,
whether the call succeeded or failed. All failures surface as
McpTransportError.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from clients.http_factory import HttpClientFactory
from chat_bridge.tools.mcp.mcp_config import McpServerConfig
from chat_bridge.tools.mcp.mcp_connector import assert_tools_capability, open_connection
from chat_bridge.tools.mcp.mcp_errors import McpTransportError, normalize_error
from chat_bridge.tools.mcp.mcp_protocol import AbortSignal

logger = logging.getLogger(__name__)


@dataclass
class McpToolDescriptor:
    """A tool as listed by a remote server, passed through verbatim."""

    name: str
    description: Optional[str] = None
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, tool: Dict[str, Any]) -> "McpToolDescriptor":
        return cls(
            name=tool.get("name", ""),
            description=tool.get("description"),
            input_schema=tool.get("inputSchema"),
            output_schema=tool.get("outputSchema"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape (camelCase keys), omitting absent fields."""
        data: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            data["description"] = self.description
        if self.input_schema is not None:
            data["inputSchema"] = self.input_schema
        if self.output_schema is not None:
            data["outputSchema"] = self.output_schema
        return data


@dataclass
class McpCallToolResult:
    tool_name: str
    result: Dict[str, Any]


def _require_url(server: McpServerConfig) -> None:
    if not server.url or not isinstance(server.url, str):
        raise McpTransportError("Missing MCP server URL", status=400)


def summarize_result(result: Dict[str, Any]) -> Dict[str, bool]:
    """Shape of a tools/call result, for logging without dumping content."""
    content = result.get("content")
    return {
        "has_content": isinstance(content, list) and len(content) > 0,
        "has_structured": bool(result.get("structuredContent")),
        "is_error": bool(result.get("isError")),
    }


async def list_mcp_tools(
    server: McpServerConfig,
    http: Optional[HttpClientFactory] = None,
) -> List[McpToolDescriptor]:
    """List the tools exposed by one MCP server.

    Raises:
        McpTransportError: 400 for a missing/invalid URL or missing tools
            capability; otherwise the normalized transport/protocol failure
    """
    _require_url(server)
    server_id = server.id or "unknown"

    try:
        async with open_connection(server, http=http) as connection:
            assert_tools_capability(connection, server_id)
            tools = await connection.client.list_tools()
    except Exception as e:
        raise normalize_error(e, "Failed to list MCP tools") from e

    logger.info(f"Listed {len(tools)} tool(s) from MCP server '{server_id}'")
    return [McpToolDescriptor.from_dict(tool) for tool in tools]


async def call_mcp_tool(
    server: McpServerConfig,
    tool_name: str,
    input: Any = None,
    http: Optional[HttpClientFactory] = None,
    abort_signal: Optional[AbortSignal] = None,
) -> McpCallToolResult:
    """Invoke one tool on one MCP server and return the raw result.

    ``input`` is forwarded as arguments only when it is a dict.

    Raises:
        McpTransportError: 400 for a missing tool name, missing/invalid URL
            or missing tools capability; otherwise the normalized failure
    """
    if not tool_name or not isinstance(tool_name, str):
        raise McpTransportError("Tool name is required", status=400)
    _require_url(server)

    server_id = server.id or "unknown"
    arguments = input if isinstance(input, dict) else None

    try:
        async with open_connection(server, http=http) as connection:
            assert_tools_capability(connection, server_id)

            if arguments is not None:
                logger.info(f"[MCP] Calling tool {tool_name} on {server_id} with keys {sorted(arguments)}")
            else:
                logger.info(f"[MCP] Calling tool {tool_name} on {server_id} (input type {type(input).__name__})")

            result = await connection.client.call_tool(tool_name, arguments, abort_signal=abort_signal)
    except Exception as e:
        logger.error(f"[MCP] Tool {tool_name} on {server_id} failed: {e}")
        raise normalize_error(e, "Failed to execute MCP tool") from e

    logger.info(f"[MCP] Tool {tool_name} on {server_id} returned {summarize_result(result)}")
    return McpCallToolResult(tool_name=tool_name, result=result)
