"""
MCP SSE Client — JSON-RPC over the HTTP+SSE transport for remote MCP servers.

Communicates with remote MCP servers via:
- GET <url> — long-lived SSE stream for server→client messages
- POST <endpoint> — client→server JSON-RPC messages

The first SSE event is "endpoint", whose data is the POST URL (relative
or absolute). Responses then arrive as "message" events on the stream.
Some servers also answer inline on the POST; both are accepted.

This is the fallback transport used when a server does not speak
Streamable HTTP.

Usage:
    client = MCPSSEClient(
        url="http://nuc-1.local:8080/sse",
        headers={"Authorization": "Bearer token"}
    )
    await client.connect()
    tools = await client.list_tools()
    result = await client.call_tool("search", {"query": "test"})
    await client.disconnect()
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import aiohttp

from clients.http_factory import HttpClientFactory, get_http_factory
from chat_bridge.tools.mcp.mcp_errors import (
    CONNECTION_CLOSED,
    REQUEST_TIMEOUT,
    MCPAbortedError,
    MCPClientError,
    MCPProtocolError,
    SSEError,
)
from chat_bridge.tools.mcp.mcp_protocol import (
    REQUEST_TIMEOUT as REQUEST_TIMEOUT_SECONDS,
    SSE_PROTOCOL_VERSION,
    TRANSPORT_SSE,
    AbortSignal,
    SSEDecoder,
    build_notification,
    build_request,
    initialize_params,
    is_response,
    run_abortable,
    unwrap_response,
)

logger = logging.getLogger(__name__)


class MCPSSEClient:
    """JSON-RPC client for MCP servers over HTTP/SSE transport.

    Attributes:
        url: SSE endpoint of the MCP server
        headers: HTTP headers (e.g., Authorization)
        request_timeout: Seconds to wait for each response
    """

    transport = TRANSPORT_SSE

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
        self._stream: Optional[aiohttp.ClientResponse] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._endpoint_ready: Optional[asyncio.Future] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._request_id: int = 0
        self._connected: bool = False
        self._server_capabilities: Dict[str, Any] = {}
        self._server_info: Dict[str, Any] = {}
        self._message_endpoint: Optional[str] = None

    @property
    def connected(self) -> bool:
        """Whether the client has an active connection."""
        return self._connected and self._session is not None and not self._session.closed

    @property
    def server_capabilities(self) -> Dict[str, Any]:
        return self._server_capabilities

    async def connect(self) -> None:
        """Open the SSE stream, discover the POST endpoint, then initialize.

        Raises:
            SSEError: If the stream cannot be opened or yields no endpoint
            MCPProtocolError: If the initialize request fails
        """
        if self.connected:
            logger.warning("MCP SSE client already connected")
            return

        loop = asyncio.get_running_loop()
        self._session = self._http.aiohttp_session(headers=self.headers)
        self._endpoint_ready = loop.create_future()

        try:
            await self._open_stream()

            try:
                self._message_endpoint = await asyncio.wait_for(
                    self._endpoint_ready,
                    timeout=self.request_timeout,
                )
            except asyncio.TimeoutError:
                raise SSEError(None, f"No endpoint event received from {self.url}")

            logger.debug(f"MCP SSE endpoint: {self._message_endpoint}")

            init_result = await self._send_request(
                "initialize",
                initialize_params(SSE_PROTOCOL_VERSION),
            )

            self._server_capabilities = init_result.get("capabilities") or {}
            self._server_info = init_result.get("serverInfo") or {}

            await self._send_notification("notifications/initialized")

            self._connected = True
            logger.info(
                f"MCP SSE server initialized: {self._server_info.get('name', 'unknown')} "
                f"v{self._server_info.get('version', '?')} at {self.url}"
            )
        except BaseException:
            await self._cleanup()
            raise

    async def disconnect(self) -> None:
        """Stop the stream reader and close the HTTP session."""
        await self._cleanup()
        logger.info(f"MCP SSE server disconnected: {self.url}")

    async def list_tools(self) -> List[Dict[str, Any]]:
        """List available tools from the MCP server."""
        self._ensure_connected()
        result = await self._send_request("tools/list", {})
        tools = result.get("tools", [])
        logger.info(f"MCP SSE server offers {len(tools)} tools")
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
        """
        self._ensure_connected()

        params: Dict[str, Any] = {"name": tool_name}
        if arguments is not None:
            params["arguments"] = arguments

        return await self._send_request("tools/call", params, abort_signal=abort_signal)

    # ---- Internal methods ----

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise MCPClientError("MCP SSE client not connected")

    async def _open_stream(self) -> None:
        """GET the SSE stream and start the background reader."""
        resp = await self._session.get(
            self.url,
            headers={"Accept": "text/event-stream"},
            proxy=self._http.proxy,
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.request_timeout),
        )

        if resp.status != 200:
            body = await resp.text()
            resp.release()
            raise SSEError(
                resp.status,
                f"Non-200 status code ({resp.status}) opening SSE stream: {body[:200]}",
            )

        self._stream = resp
        self._reader_task = asyncio.create_task(self._read_stream(resp))

    async def _read_stream(self, resp: aiohttp.ClientResponse) -> None:
        """Dispatch SSE events until the stream ends."""
        decoder = SSEDecoder()
        reason = "SSE stream closed"

        try:
            async for line in resp.content:
                event = decoder.feed_line(line)
                if event is None:
                    continue
                if event.event == "endpoint":
                    self._handle_endpoint(event.data.strip())
                elif event.event == "message" and event.data:
                    self._handle_message(event)
        except asyncio.CancelledError:
            reason = "SSE client closed"
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            reason = f"SSE stream error: {e}"
            logger.warning(f"MCP SSE stream from {self.url} failed: {e}")
        except Exception as e:
            reason = f"SSE stream error: {e}"
            logger.error(f"MCP SSE reader for {self.url} crashed: {e}", exc_info=True)
        finally:
            self._connected = False
            self._fail_waiters(reason)

    def _handle_endpoint(self, data: str) -> None:
        if self._endpoint_ready is None or self._endpoint_ready.done():
            return

        endpoint = urljoin(self.url, data)
        base, target = urlparse(self.url), urlparse(endpoint)
        if (base.scheme, base.netloc) != (target.scheme, target.netloc):
            self._endpoint_ready.set_exception(
                SSEError(None, f"Endpoint origin does not match connection origin: {endpoint}")
            )
            return

        self._endpoint_ready.set_result(endpoint)

    def _handle_message(self, event) -> None:
        try:
            message = event.json()
        except ValueError as e:
            logger.warning(f"MCP SSE: Invalid JSON from server: {e}")
            return

        if not isinstance(message, dict):
            logger.warning(f"MCP SSE: Ignoring non-object message: {event.data[:200]}")
            return

        if not is_response(message):
            logger.debug(f"MCP SSE message ignored: {message.get('method', '?')}")
            return

        future = self._pending.get(message.get("id"))
        if future is not None and not future.done():
            future.set_result(message)
        else:
            logger.warning(f"MCP SSE: Got response for unknown id={message.get('id')}")

    def _fail_waiters(self, reason: str) -> None:
        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.set_exception(SSEError(None, reason))
        for future in self._pending.values():
            if not future.done():
                future.set_exception(MCPProtocolError(CONNECTION_CLOSED, reason))

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
            response = await run_abortable(self._exchange(message), abort_signal)
        except MCPAbortedError as e:
            await self._notify_cancelled(request_id, str(e))
            raise

        return unwrap_response(response)

    async def _exchange(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """POST a request and wait for its response on the stream."""
        request_id = message["id"]
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            inline = await self._post(message)
            if inline is not None:
                return inline
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise MCPProtocolError(REQUEST_TIMEOUT, f"Request timed out: {message['method']}")
        finally:
            self._pending.pop(request_id, None)

    async def _post(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """POST a message to the endpoint.

        Returns:
            An inline JSON-RPC response if the server sent one, else None
        """
        logger.debug(f"MCP SSE → {message.get('method', '?')} (id={message.get('id', 'N/A')})")

        async with self._session.post(
            self._message_endpoint,
            json=message,
            proxy=self._http.proxy,
            timeout=aiohttp.ClientTimeout(total=self.request_timeout),
        ) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text()
                raise SSEError(
                    resp.status,
                    f"Error POSTing to endpoint (HTTP {resp.status}): {body[:200]}",
                )

            if resp.status == 200 and "application/json" in resp.headers.get("Content-Type", ""):
                payload = await resp.json(content_type=None)
                if is_response(payload) and payload.get("id") == message.get("id"):
                    return payload

        return None

    async def _send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        await self._post(build_notification(method, params))

    async def _notify_cancelled(self, request_id: int, reason: str) -> None:
        try:
            await self._send_notification(
                "notifications/cancelled",
                {"requestId": request_id, "reason": reason},
            )
        except (MCPClientError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"MCP SSE cancel notification for id={request_id} failed: {e}")

    async def _cleanup(self) -> None:
        """Stop the reader and close the stream and session."""
        self._connected = False

        try:
            if self._reader_task is not None:
                self._reader_task.cancel()
                try:
                    await self._reader_task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"MCP SSE reader for {self.url} ended with error: {e}")
                self._reader_task = None
        finally:
            if self._stream is not None:
                self._stream.release()
                self._stream = None

            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None
            self._message_endpoint = None
