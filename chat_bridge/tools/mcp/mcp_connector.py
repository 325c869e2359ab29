"""
MCP Connector — open a session to a remote MCP server with transport fallback.

Streamable HTTP is tried first, bounded by PRIMARY_CONNECT_TIMEOUT.
The SSE transport is tried only when the primary attempt failed with an
HTTP-level StreamableHTTPError outside 200–399 (or a non-numeric code) or
hit the connect deadline. Anything else (DNS failure, refused
connection, JSON-RPC error during initialize) fails immediately.

Every connection is owned by the operation that opened it; use
open_connection() to guarantee release on all exit paths.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from clients.http_factory import HttpClientFactory
from chat_bridge.tools.mcp.mcp_config import McpServerConfig, build_header_record, validate_server_url
from chat_bridge.tools.mcp.mcp_errors import (
    McpTransportError,
    StreamableHTTPConnectionTimeoutError,
    StreamableHTTPError,
    normalize_error,
)
from chat_bridge.tools.mcp.mcp_http_client import MCPStreamableHTTPClient
from chat_bridge.tools.mcp.mcp_protocol import (
    PRIMARY_CONNECT_TIMEOUT,
    TRANSPORT_SSE,
    TRANSPORT_STREAMABLE_HTTP,
    MCPTransportClient,
)
from chat_bridge.tools.mcp.mcp_sse_client import MCPSSEClient

logger = logging.getLogger(__name__)


@dataclass
class MCPClientConnection:
    """A connected MCP client plus the transport that won.

    Attributes:
        client: Connected transport client
        transport: TRANSPORT_STREAMABLE_HTTP or TRANSPORT_SSE
    """

    client: MCPTransportClient
    transport: str

    async def cleanup(self) -> None:
        """Close the underlying session."""
        await self.client.disconnect()


def should_fallback_to_sse(error: BaseException) -> bool:
    """Whether a primary-transport failure allows trying SSE."""
    if isinstance(error, StreamableHTTPError):
        code = error.code
        if not isinstance(code, int) or isinstance(code, bool):
            return True
        return not 200 <= code <= 399

    return isinstance(error, StreamableHTTPConnectionTimeoutError)


async def _close_quietly(client: MCPTransportClient) -> None:
    try:
        await client.disconnect()
    except Exception as e:
        logger.debug(f"Ignoring error while releasing MCP transport: {e}")


async def _connect_streamable_http(
    url: str,
    headers: Dict[str, str],
    http: Optional[HttpClientFactory],
    timeout: float,
) -> MCPClientConnection:
    client = MCPStreamableHTTPClient(url=url, headers=headers, http=http)

    try:
        await asyncio.wait_for(client.connect(), timeout=timeout)
    except asyncio.TimeoutError:
        await _close_quietly(client)
        raise StreamableHTTPConnectionTimeoutError(
            "Timed out waiting for Streamable HTTP connection"
        )
    except Exception:
        await _close_quietly(client)
        raise

    return MCPClientConnection(client=client, transport=TRANSPORT_STREAMABLE_HTTP)


async def _connect_sse(
    url: str,
    headers: Dict[str, str],
    http: Optional[HttpClientFactory],
) -> MCPClientConnection:
    client = MCPSSEClient(url=url, headers=headers, http=http)

    try:
        await client.connect()
    except Exception:
        await _close_quietly(client)
        raise

    return MCPClientConnection(client=client, transport=TRANSPORT_SSE)


async def connect_server(
    server: McpServerConfig,
    http: Optional[HttpClientFactory] = None,
    primary_timeout: float = PRIMARY_CONNECT_TIMEOUT,
) -> MCPClientConnection:
    """Connect to an MCP server, falling back from Streamable HTTP to SSE.

    Args:
        server: Server config (url must be an absolute http(s) URL)
        http: HTTP client factory (default: process-wide factory)
        primary_timeout: Deadline for the Streamable HTTP handshake, seconds

    Returns:
        MCPClientConnection owned by the caller

    Raises:
        McpTransportError: Invalid URL (400) or the normalized connect failure;
            ``cause`` holds the original exception
    """
    endpoint = validate_server_url(server.url)
    headers = build_header_record(server.headers)
    server_id = server.id or "unknown"

    try:
        return await _connect_streamable_http(endpoint, headers, http, primary_timeout)
    except Exception as e:
        if not should_fallback_to_sse(e):
            raise normalize_error(e, f"Failed to connect to MCP server {server_id}") from e
        logger.warning(
            f"Streamable HTTP connect to MCP server '{server_id}' failed ({e}); falling back to SSE"
        )

    try:
        return await _connect_sse(endpoint, headers, http)
    except Exception as e:
        raise normalize_error(e, f"Failed to connect to MCP server {server_id}") from e


async def release_connection(connection: MCPClientConnection, server_id: str) -> None:
    """Clean up a connection, logging instead of raising on failure."""
    try:
        await connection.cleanup()
    except Exception as e:
        logger.warning(f"Error closing MCP connection to '{server_id}': {e}")


@asynccontextmanager
async def open_connection(
    server: McpServerConfig,
    http: Optional[HttpClientFactory] = None,
) -> AsyncIterator[MCPClientConnection]:
    """Scoped connection: always released when the block exits."""
    connection = await connect_server(server, http=http)
    try:
        yield connection
    finally:
        await release_connection(connection, server.id or "unknown")


def assert_tools_capability(connection: MCPClientConnection, server_id: str) -> None:
    """Raise unless the server declared the tools capability.

    Raises:
        McpTransportError: status 400
    """
    capabilities = connection.client.server_capabilities or {}
    if capabilities.get("tools") is None:
        raise McpTransportError(
            f"MCP server {server_id} does not declare the tools capability",
            status=400,
        )
