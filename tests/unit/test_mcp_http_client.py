"""
Unit tests for the MCP Streamable HTTP client.

All aiohttp I/O is mocked; the session handed out by the HTTP factory is
a MagicMock whose post()/delete() return async context managers.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from chat_bridge.tools.mcp.mcp_errors import (
    REQUEST_TIMEOUT,
    MCPAbortedError,
    MCPClientError,
    MCPProtocolError,
    StreamableHTTPError,
)
from chat_bridge.tools.mcp.mcp_http_client import MCPStreamableHTTPClient
from chat_bridge.tools.mcp.mcp_protocol import AbortSignal


# ---- Helpers ----


class _Lines:
    """Async iterable standing in for aiohttp's StreamReader."""

    def __init__(self, lines):
        self._lines = [l.encode("utf-8") if isinstance(l, str) else l for l in lines]

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for line in self._lines:
            yield line


def _response(status=200, headers=None, payload=None, lines=None, text=""):
    resp = MagicMock()
    resp.status = status
    resp.headers = dict(headers or {})
    resp.json = AsyncMock(return_value=payload)
    resp.text = AsyncMock(return_value=text or (json.dumps(payload) if payload is not None else ""))
    resp.content = _Lines(lines or [])
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _json(payload, status=200, headers=None):
    return _response(
        status=status,
        headers={"Content-Type": "application/json", **(headers or {})},
        payload=payload,
    )


def _event_stream(messages):
    lines = []
    for message in messages:
        lines += ["event: message\n", f"data: {json.dumps(message)}\n", "\n"]
    return _response(headers={"Content-Type": "text/event-stream"}, lines=lines)


def _accepted():
    return _response(status=202)


def _result(request_id, result):
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


INIT_RESULT = {
    "protocolVersion": "2025-03-26",
    "capabilities": {"tools": {"listChanged": False}},
    "serverInfo": {"name": "test-server", "version": "1.2"},
}


def _session(*responses):
    session = MagicMock()
    session.closed = False
    session.close = AsyncMock()
    session.post = MagicMock(side_effect=list(responses))
    session.delete = MagicMock(return_value=_response(status=200))
    return session


def _http(session):
    http = MagicMock()
    http.proxy = None
    http.aiohttp_session = MagicMock(return_value=session)
    return http


def _posted(session, index):
    return session.post.call_args_list[index].kwargs


async def _connected_client(*responses, session_id="sess-1"):
    headers = {"mcp-session-id": session_id} if session_id else {}
    session = _session(_json(_result(1, INIT_RESULT), headers=headers), _accepted(), *responses)
    client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(session))
    await client.connect()
    return client, session


# ---- Tests ----


@pytest.mark.unit
class TestMCPStreamableHTTPClientConnect:
    """Initialize handshake."""

    def test_not_connected_by_default(self):
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(_session()))
        assert not client.connected
        assert client.transport == "streamable-http"

    @pytest.mark.asyncio
    async def test_connect_with_json_response(self):
        client, session = await _connected_client()

        assert client.connected
        assert client.server_capabilities == {"tools": {"listChanged": False}}

        initialize = _posted(session, 0)
        assert initialize["json"]["method"] == "initialize"
        assert initialize["json"]["params"]["protocolVersion"] == "2025-03-26"
        assert "mcp-session-id" not in initialize["headers"]

        initialized = _posted(session, 1)
        assert initialized["json"] == {"jsonrpc": "2.0", "method": "notifications/initialized"}
        assert initialized["headers"]["mcp-session-id"] == "sess-1"
        assert initialized["headers"]["mcp-protocol-version"] == "2025-03-26"

    @pytest.mark.asyncio
    async def test_connect_with_event_stream_response(self):
        stream = _event_stream([
            {"jsonrpc": "2.0", "method": "notifications/message", "params": {}},
            _result(1, INIT_RESULT),
        ])
        session = _session(stream, _accepted())
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(session))

        await client.connect()

        assert client.connected
        assert client.server_capabilities["tools"] == {"listChanged": False}

    @pytest.mark.asyncio
    async def test_connect_http_error_closes_session(self):
        session = _session(_response(status=404, text="Not Found"))
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(session))

        with pytest.raises(StreamableHTTPError) as exc_info:
            await client.connect()

        assert exc_info.value.code == 404
        assert not client.connected
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_content_type(self):
        session = _session(_response(headers={"Content-Type": "text/html"}))
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(session))

        with pytest.raises(StreamableHTTPError) as exc_info:
            await client.connect()

        assert exc_info.value.code == -1

    @pytest.mark.asyncio
    async def test_stream_without_matching_response(self):
        session = _session(_event_stream([_result(99, {})]))
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(session))

        with pytest.raises(MCPProtocolError, match="No response received for initialize"):
            await client.connect()

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        session = _session()
        session.post = MagicMock(side_effect=asyncio.TimeoutError())
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(session))

        with pytest.raises(MCPProtocolError) as exc_info:
            await client.connect()

        assert exc_info.value.code == REQUEST_TIMEOUT


@pytest.mark.unit
class TestMCPStreamableHTTPClientRequests:
    """tools/list and tools/call."""

    @pytest.mark.asyncio
    async def test_list_tools_requires_connection(self):
        client = MCPStreamableHTTPClient("https://mcp.example.com/mcp", http=_http(_session()))
        with pytest.raises(MCPClientError, match="not connected"):
            await client.list_tools()

    @pytest.mark.asyncio
    async def test_list_tools(self):
        tools = [{"name": "search", "inputSchema": {"type": "object"}}]
        client, session = await _connected_client(_json(_result(2, {"tools": tools})))

        assert await client.list_tools() == tools
        assert _posted(session, 2)["json"]["method"] == "tools/list"

    @pytest.mark.asyncio
    async def test_call_tool_returns_raw_result(self):
        raw = {"content": [{"type": "text", "text": "quota exceeded"}], "isError": True}
        client, session = await _connected_client(_json(_result(2, raw)))

        result = await client.call_tool("search", {"query": "x"})

        assert result == raw
        assert _posted(session, 2)["json"]["params"] == {"name": "search", "arguments": {"query": "x"}}

    @pytest.mark.asyncio
    async def test_malformed_stream_events_are_skipped(self):
        tools = [{"name": "search"}]
        stream = _response(
            headers={"Content-Type": "text/event-stream"},
            lines=[
                "event: message\n", "data: [1, 2]\n", "\n",
                "event: message\n", "data: 42\n", "\n",
                "event: message\n", b"data: \xff\xfe\n", "\n",
                "event: message\n", f"data: {json.dumps(_result(2, {'tools': tools}))}\n", "\n",
            ],
        )
        client, _ = await _connected_client(stream)

        assert await client.list_tools() == tools

    @pytest.mark.asyncio
    async def test_call_tool_omits_missing_arguments(self):
        client, session = await _connected_client(_json(_result(2, {"content": []})))

        await client.call_tool("ping")

        assert _posted(session, 2)["json"]["params"] == {"name": "ping"}

    @pytest.mark.asyncio
    async def test_jsonrpc_error_raises(self):
        error = {"jsonrpc": "2.0", "id": 2, "error": {"code": -32601, "message": "Method not found"}}
        client, _ = await _connected_client(_json(error))

        with pytest.raises(MCPProtocolError) as exc_info:
            await client.list_tools()

        assert exc_info.value.code == -32601

    @pytest.mark.asyncio
    async def test_aborted_call_sends_cancel_notification(self):
        client, session = await _connected_client(_accepted())
        signal = AbortSignal()
        signal.abort()

        with pytest.raises(MCPAbortedError):
            await client.call_tool("search", {"query": "x"}, abort_signal=signal)

        cancel = _posted(session, 2)["json"]
        assert cancel["method"] == "notifications/cancelled"
        assert cancel["params"]["requestId"] == 2

    @pytest.mark.asyncio
    async def test_failed_cancel_notification_is_logged_not_raised(self):
        client, _ = await _connected_client(_response(status=500, text="boom"))
        signal = AbortSignal()
        signal.abort()

        with pytest.raises(MCPAbortedError):
            await client.call_tool("search", abort_signal=signal)


@pytest.mark.unit
class TestMCPStreamableHTTPClientDisconnect:
    """Session termination."""

    @pytest.mark.asyncio
    async def test_disconnect_sends_delete_with_session_id(self):
        client, session = await _connected_client()

        await client.disconnect()

        session.delete.assert_called_once()
        assert session.delete.call_args.kwargs["headers"]["mcp-session-id"] == "sess-1"
        session.close.assert_awaited_once()
        assert not client.connected

    @pytest.mark.asyncio
    async def test_disconnect_without_session_id_skips_delete(self):
        client, session = await _connected_client(session_id=None)

        await client.disconnect()

        session.delete.assert_not_called()
        session.close.assert_awaited_once()
