"""
MCP Aggregator — merge tools from several MCP servers into one chat-turn tool set.

Servers are processed strictly in the given order. Each server gets its
own connection, which stays open so that the registered tools can call
back into it, and is released by LoadedMCPTools.cleanup().

Failure of one server is recorded as a warning and never aborts the
aggregation. Tool names are first-registered-wins: a later server that
exposes an already registered name is shadowed and warned about.

Usage:
    loaded = await load_mcp_tools_for_chat(servers)
    try:
        specs = loaded.function_specs()
        result = await loaded.tools["search"].execute({"query": "x"})
    finally:
        await loaded.cleanup()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from clients.http_factory import HttpClientFactory
from chat_bridge.tools.mcp.mcp_config import McpServerConfig
from chat_bridge.tools.mcp.mcp_connector import (
    MCPClientConnection,
    assert_tools_capability,
    connect_server,
    release_connection,
)
from chat_bridge.tools.mcp.mcp_errors import normalize_error
from chat_bridge.tools.mcp.mcp_protocol import TRANSPORT_SSE
from chat_bridge.tools.mcp.mcp_tool_adapter import MCPToolAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class McpToolSummary:
    """Which server owns a registered tool, without any connection state."""

    name: str
    server_id: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "serverId": self.server_id, "description": self.description}


@dataclass
class LoadedMCPTools:
    """Result of aggregating MCP tools for one chat turn.

    Attributes:
        tools: Read-only mapping of tool name → MCPToolAdapter
        tool_summaries: One summary per registered tool, in registration order
        warnings: Human-readable diagnostics (skipped servers, fallbacks, duplicates)
    """

    tools: Mapping[str, MCPToolAdapter] = field(default_factory=lambda: MappingProxyType({}))
    tool_summaries: List[McpToolSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    _connections: List[Tuple[str, MCPClientConnection]] = field(default_factory=list, repr=False)

    async def cleanup(self) -> None:
        """Release every server connection concurrently.

        One server's failing cleanup never prevents the others.
        """
        connections, self._connections = self._connections, []
        if not connections:
            return

        results = await asyncio.gather(
            *(connection.cleanup() for _, connection in connections),
            return_exceptions=True,
        )
        for (server_id, _), result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning(f"Error closing MCP connection to '{server_id}': {result}")

        logger.debug(f"Released {len(connections)} MCP connection(s)")

    def function_specs(self) -> List[Dict[str, Any]]:
        """OpenAI function-calling specs for all registered tools."""
        return [tool.to_function_spec() for tool in self.tools.values()]

    def server_for_tool(self, tool_name: str) -> Optional[str]:
        """Id of the server that owns a tool, or None if not registered."""
        for summary in self.tool_summaries:
            if summary.name == tool_name:
                return summary.server_id
        return None


async def load_mcp_tools_for_chat(
    servers: Sequence[McpServerConfig],
    http: Optional[HttpClientFactory] = None,
) -> LoadedMCPTools:
    """Connect to each server in order and merge their tools.

    Args:
        servers: Ordered server configs; earlier servers win name collisions
        http: HTTP client factory (default: process-wide factory)

    Returns:
        LoadedMCPTools; the caller must await its cleanup()
    """
    tools: Dict[str, MCPToolAdapter] = {}
    summaries: List[McpToolSummary] = []
    warnings: List[str] = []
    connections: List[Tuple[str, MCPClientConnection]] = []

    try:
        for server in servers:
            server_id = server.id or "unknown"

            if not server.url or not isinstance(server.url, str):
                warnings.append(f"Skipped MCP server {server_id}: missing server URL")
                logger.warning(f"Skipping MCP server '{server_id}': no URL configured")
                continue

            connection: Optional[MCPClientConnection] = None
            try:
                logger.info(f"[MCP] Connecting to {server_id} at {server.url}")
                connection = await connect_server(server, http=http)
                assert_tools_capability(connection, server_id)

                if connection.transport == TRANSPORT_SSE:
                    warnings.append(
                        f"MCP server {server_id} does not support Streamable HTTP; fell back to SSE."
                    )
                    logger.warning(
                        f"[MCP] Server {server_id} using SSE fallback; consider enabling Streamable HTTP."
                    )

                remote_tools = await connection.client.list_tools()
                logger.info(f"[MCP] Loaded {len(remote_tools)} tool(s) from {server_id}")

                server_tools = _register_server_tools(
                    server, server_id, remote_tools, connection, tools, warnings
                )
            except Exception as e:
                if connection is not None:
                    await release_connection(connection, server_id)
                error = normalize_error(e, "Failed to load MCP tools")
                warnings.append(f"Failed to load tools from {server_id}: {error.message}")
                logger.warning(f"[MCP] Failed to load tools from '{server_id}': {error.message}")
                continue

            for adapter in server_tools:
                tools[adapter.name] = adapter
                summaries.append(
                    McpToolSummary(
                        name=adapter.name,
                        server_id=server_id,
                        description=adapter.description,
                    )
                )
            connections.append((server_id, connection))
    except BaseException:
        # Cancelled mid-aggregation: nothing is returned, so release what was opened
        await LoadedMCPTools(_connections=connections).cleanup()
        raise

    logger.info(
        f"[MCP] Aggregated {len(tools)} tool(s) from {len(connections)} server(s) "
        f"with {len(warnings)} warning(s)"
    )
    return LoadedMCPTools(
        tools=MappingProxyType(tools),
        tool_summaries=summaries,
        warnings=warnings,
        _connections=connections,
    )


def _register_server_tools(
    server: McpServerConfig,
    server_id: str,
    remote_tools: List[Dict[str, Any]],
    connection: MCPClientConnection,
    registered: Dict[str, MCPToolAdapter],
    warnings: List[str],
) -> List[MCPToolAdapter]:
    """Build adapters for one server's tools, applying the allow-list and duplicate rules.

    Adapters are returned rather than inserted so a server that fails
    part-way leaves the aggregated set untouched.
    """
    allowed = set(server.enabled_tools) if server.enabled_tools is not None else None
    adapters: List[MCPToolAdapter] = []
    seen = set(registered)

    for tool_def in remote_tools:
        name = tool_def.get("name")
        if not name or not isinstance(name, str):
            logger.warning(f"MCP tool from '{server_id}' has no name, skipping")
            continue

        if allowed is not None and name not in allowed:
            continue

        if name in seen:
            warnings.append(
                f'Tool name "{name}" is exposed by more than one MCP server; '
                f"the version from {server_id} was ignored."
            )
            logger.warning(f"[MCP] Ignoring duplicate tool name {name} from {server_id}")
            continue

        seen.add(name)
        adapters.append(
            MCPToolAdapter(
                server_id=server_id,
                mcp_tool_name=name,
                description=tool_def.get("description"),
                input_schema=tool_def.get("inputSchema"),
                client=connection.client,
                output_schema=tool_def.get("outputSchema"),
            )
        )

    return adapters
