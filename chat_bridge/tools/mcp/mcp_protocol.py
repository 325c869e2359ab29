"""
MCP protocol helpers shared by both HTTP transports.

Protocol flow (identical on both transports):
  → initialize(protocolVersion, capabilities, clientInfo)
  ← result {capabilities, serverInfo}
  → notifications/initialized
  → tools/list
  ← {tools: [{name, description, inputSchema, outputSchema}]}
  → tools/call(name, arguments)
  ← {content: [...], structuredContent?, isError?}

Each transport client implements MCPTransportClient independently.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Union

from chat_bridge.tools.mcp.mcp_errors import MCPAbortedError, MCPProtocolError

logger = logging.getLogger(__name__)

# MCP protocol versions we speak
STREAMABLE_HTTP_PROTOCOL_VERSION = "2025-03-26"
SSE_PROTOCOL_VERSION = "2024-11-05"

CLIENT_INFO = {"name": "chat-bridge", "version": "0.1.0"}
CLIENT_CAPABILITIES: Dict[str, Any] = {"tools": {}}

# Timeouts (seconds)
PRIMARY_CONNECT_TIMEOUT = 5.0
REQUEST_TIMEOUT = 30.0

TRANSPORT_STREAMABLE_HTTP = "streamable-http"
TRANSPORT_SSE = "sse"


class MCPTransportClient(Protocol):
    """Contract shared by the Streamable HTTP and SSE clients."""

    transport: str

    @property
    def connected(self) -> bool: ...

    @property
    def server_capabilities(self) -> Dict[str, Any]: ...

    async def connect(self) -> None: ...

    async def list_tools(self) -> List[Dict[str, Any]]: ...

    async def call_tool(
        self,
        tool_name: str,
        arguments: Optional[Dict[str, Any]] = None,
        abort_signal: Optional["AbortSignal"] = None,
    ) -> Dict[str, Any]: ...

    async def disconnect(self) -> None: ...


class AbortSignal:
    """Cooperative cancellation token for in-flight MCP requests.

    The caller keeps the signal and calls abort(); requests that were
    given the signal stop waiting and raise MCPAbortedError.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason or "This operation was aborted"
            self._event.set()

    def throw_if_aborted(self) -> None:
        if self.aborted:
            raise MCPAbortedError(self.reason)

    async def wait(self) -> None:
        await self._event.wait()


async def run_abortable(awaitable: Awaitable[Any], abort_signal: Optional[AbortSignal]) -> Any:
    """Await ``awaitable`` unless ``abort_signal`` fires first.

    Raises:
        MCPAbortedError: If the signal fired; the pending work is cancelled
    """
    if abort_signal is None:
        return await awaitable

    if abort_signal.aborted:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        abort_signal.throw_if_aborted()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(abort_signal.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if work.done():
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    raise MCPAbortedError(abort_signal.reason)


def build_request(request_id: int, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a JSON-RPC request message."""
    message: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def build_notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a JSON-RPC notification (no id, no response expected)."""
    message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params:
        message["params"] = params
    return message


def initialize_params(protocol_version: str) -> Dict[str, Any]:
    return {
        "protocolVersion": protocol_version,
        "capabilities": CLIENT_CAPABILITIES,
        "clientInfo": CLIENT_INFO,
    }


def is_response(message: Any) -> bool:
    """Whether a decoded message is a JSON-RPC response (not a request/notification)."""
    return (
        isinstance(message, dict)
        and "id" in message
        and ("result" in message or "error" in message)
    )


def unwrap_response(response: Dict[str, Any]) -> Dict[str, Any]:
    """Return the result of a JSON-RPC response or raise its error.

    Raises:
        MCPProtocolError: If the response carries an error object
    """
    if "error" in response:
        error = response.get("error") or {}
        raise MCPProtocolError(
            error.get("code", -1),
            error.get("message", "Unknown error"),
            error.get("data"),
        )
    result = response.get("result")
    return result if isinstance(result, dict) else {}


def find_response(payload: Union[Dict[str, Any], List[Any]], request_id: int) -> Optional[Dict[str, Any]]:
    """Pick the response for ``request_id`` out of a single or batched payload."""
    candidates = payload if isinstance(payload, list) else [payload]
    for message in candidates:
        if is_response(message) and message.get("id") == request_id:
            return message
    return None


@dataclass
class SSEEvent:
    """One dispatched server-sent event."""

    event: str = "message"
    data: str = ""
    id: Optional[str] = None

    def json(self) -> Any:
        return json.loads(self.data)


class SSEDecoder:
    """Incremental text/event-stream decoder fed one line at a time."""

    def __init__(self):
        self._reset()

    def _reset(self) -> None:
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._id: Optional[str] = None

    def feed_line(self, raw: Union[bytes, str]) -> Optional[SSEEvent]:
        """Consume a line; return an event when a blank line completes one."""
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")

        if not line:
            if self._event is None and not self._data:
                return None
            event = SSEEvent(
                event=self._event or "message",
                data="\n".join(self._data),
                id=self._id,
            )
            self._reset()
            return event

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value

        return None
