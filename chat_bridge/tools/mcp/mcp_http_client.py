"""
MCP Streamable HTTP Client — JSON-RPC over the bidirectional HTTP transport.

Every client→server message is an HTTP POST to the configured URL. The
server answers either with a JSON body or with a text/event-stream that
carries the JSON-RPC response as an SSE "message" event.

After initialize the server may hand out an Mcp-Session-Id header, which
is echoed on every later request and used for the closing DELETE.

Usage:
    client = MCPStreamableHTTPClient(
        url="https://tools.example.com/mcp",
        headers={"Authorization": "Bearer token"},
    )
    await client.connect()
    tools = await client.list_tools()
    result = await client.call_tool("search", {"query": "test"})
    await client.disconnect()
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from clients.http_factory import HttpClientFactory, get_http_factory
from chat_bridge.tools.mcp.mcp_errors import (
    CONNECTION_CLOSED,
    REQUEST_TIMEOUT,
    MCPAbortedError,
    MCPClientError,
    MCPProtocolError,
    StreamableHTTPError,
)
from chat_bridge.tools.mcp.mcp_protocol import (
    REQUEST_TIMEOUT as REQUEST_TIMEOUT_SECONDS,
    STREAMABLE_HTTP_PROTOCOL_VERSION,
    TRANSPORT_STREAMABLE_HTTP,
    AbortSignal,
    SSEDecoder,
    build_notification,
    build_request,
    find_response,
    initialize_params,
    is_response,
    run_abortable,
    unwrap_response,
)

logger = logging.getLogger(__name__)

SESSION_ID_HEADER = "mcp-session-id"
PROTOCOL_VERSION_HEADER = "mcp-protocol-version"


class MCPStreamableHTTPClient:
    """JSON-RPC client for MCP servers over the Streamable HTTP transport.

    Attributes:
        url: MCP endpoint URL
        headers: HTTP headers sent with every request
        request_timeout: Per-request timeout in seconds
    """

    transport = TRANSPORT_STREAMABLE_HTTP

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        http: Optional[HttpClientFactory] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.request_timeout = request_timeout

        self._http = http or get_http_factory()
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_id: Optional[str] = None
        self._protocol_version: Optional[str] = None
        self._request_id: int = 0
        self._connected: bool = False
        self._server_capabilities: Dict[str, Any] = {}
        self._server_info: Dict[str, Any] = {}

    @property
    def connected(self) -> bool:
        """Whether the client has completed the initialize handshake."""
        return self._connected and self._session is not None and not self._session.closed

    @property
    def server_capabilities(self) -> Dict[str, Any]:
        return self._server_capabilities

    async def connect(self) -> None:
        """Open the HTTP session and run the initialize handshake.

        Errors propagate unchanged so the connector can decide whether
        to fall back to SSE. The session is closed on any failure,
        including cancellation by the connect deadline.
        """
        if self.connected:
            logger.warning("MCP Streamable HTTP client already connected")
            return

        self._session = self._http.aiohttp_session(headers=self.headers)

        try:
            init_result = await self._send_request(
                "initialize",
                initialize_params(STREAMABLE_HTTP_PROTOCOL_VERSION),
            )

            self._server_capabilities = init_result.get("capabilities") or {}
            self._server_info = init_result.get("serverInfo") or {}
            self._protocol_version = init_result.get("protocolVersion", STREAMABLE_HTTP_PROTOCOL_VERSION)

            await self._send_notification("notifications/initialized")

            self._connected = True
            logger.info(
                f"MCP Streamable HTTP server initialized: {self._server_info.get('name', 'unknown')} "
                f"v{self._server_info.get('version', '?')} at {self.url}"
            )
        except BaseException:
            await self._cleanup()
            raise

    async def disconnect(self) -> None:
        """Terminate the server session (best effort) and close HTTP resources."""
        self._connected = False

        if self._session and not self._session.closed and self._session_id:
            try:
                async with self._session.delete(
                    self.url,
                    headers=self._request_headers(),
                    proxy=self._http.proxy,
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                ) as resp:
                    # 405 means the server does not support explicit termination
                    if resp.status >= 400 and resp.status != 405:
                        logger.debug(f"MCP session DELETE returned {resp.status}")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"MCP session DELETE failed: {e}")

        await self._cleanup()
        logger.info(f"MCP Streamable HTTP server disconnected: {self.url}")

    async def list_tools(self) -> List[Dict[str, Any]]:
        """List tools offered by the server."""
        self._ensure_connected()
        result = await self._send_request("tools/list", {})
        tools = result.get("tools", [])
        logger.info(f"MCP Streamable HTTP server offers {len(tools)} tools")
        return tools

    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> Dict[str, Any]:
        """Call a tool and return the raw result payload.

        Args:
            tool_name: Tool name
            arguments: Tool arguments; omitted from the request when None
            abort_signal: Optional signal that cancels the in-flight call

        Returns:
            The tools/call result dict, unchanged (isError results included)
        """
        self._ensure_connected()

        params: Dict[str, Any] = {"name": tool_name}
        if arguments is not None:
            params["arguments"] = arguments

        return await self._send_request("tools/call", params, abort_signal=abort_signal)

    # ---- Internal methods ----

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise MCPClientError("MCP Streamable HTTP client not connected")

    def _request_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json, text/event-stream"}
        if self._session_id:
            headers[SESSION_ID_HEADER] = self._session_id
        if self._protocol_version:
            headers[PROTOCOL_VERSION_HEADER] = self._protocol_version
        return headers

    async def _send_request(
        self,
        method: str,
        params: Dict[str, Any],
        abort_signal: Optional[AbortSignal] = None,
    ) -> Dict[str, Any]:
        self._request_id += 1
        request_id = self._request_id
        message = build_request(request_id, method, params)

        try:
            response = await run_abortable(self._post(message), abort_signal)
        except MCPAbortedError as e:
            await self._notify_cancelled(request_id, str(e))
            raise

        return unwrap_response(response)

    async def _post(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """POST one request and wait for its JSON-RPC response."""
        method = message["method"]
        logger.debug(f"MCP → {method} (id={message['id']})")

        try:
            async with self._session.post(
                self.url,
                json=message,
                headers=self._request_headers(),
                proxy=self._http.proxy,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    raise StreamableHTTPError(
                        resp.status,
                        f"Error POSTing to endpoint (HTTP {resp.status}): {body[:200]}",
                    )

                session_id = resp.headers.get(SESSION_ID_HEADER)
                if session_id:
                    self._session_id = session_id

                content_type = resp.headers.get("Content-Type", "")
                if "text/event-stream" in content_type:
                    response = await self._read_event_stream(resp, message["id"])
                elif "application/json" in content_type:
                    payload = await resp.json(content_type=None)
                    response = find_response(payload, message["id"])
                else:
                    raise StreamableHTTPError(-1, f"Unexpected content type: {content_type}")

        except asyncio.TimeoutError:
            raise MCPProtocolError(REQUEST_TIMEOUT, f"Request timed out: {method}")

        if response is None:
            raise MCPProtocolError(CONNECTION_CLOSED, f"No response received for {method}")

        logger.debug(f"MCP ← response for id={message['id']}")
        return response

    async def _read_event_stream(self, resp: aiohttp.ClientResponse, request_id: int) -> Optional[Dict[str, Any]]:
        """Read SSE events until the response for ``request_id`` arrives."""
        decoder = SSEDecoder()
        async for line in resp.content:
            event = decoder.feed_line(line)
            if event is None or event.event != "message" or not event.data:
                continue
            try:
                message = event.json()
            except ValueError as e:
                logger.warning(f"MCP: Invalid JSON in event stream: {e}")
                continue

            if not isinstance(message, dict):
                logger.warning(f"MCP: Ignoring non-object message in event stream: {event.data[:200]}")
                continue

            if is_response(message) and message.get("id") == request_id:
                return message

            # Server-initiated requests and notifications are not handled
            logger.debug(f"MCP stream message ignored: {message.get('method', message.get('id'))}")

        return None

    async def _send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """POST a notification; the server answers 202 Accepted."""
        notification = build_notification(method, params)

        async with self._session.post(
            self.url,
            json=notification,
            headers=self._request_headers(),
            proxy=self._http.proxy,
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
        ) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text()
                raise StreamableHTTPError(
                    resp.status,
                    f"Error POSTing notification {method} (HTTP {resp.status}): {body[:200]}",
                )

    async def _notify_cancelled(self, request_id: int, reason: str) -> None:
        try:
            await self._send_notification(
                "notifications/cancelled",
                {"requestId": request_id, "reason": reason},
            )
        except (MCPClientError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"MCP cancel notification for id={request_id} failed: {e}")

    async def _cleanup(self) -> None:
        self._connected = False
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_id = None
