"""
MCP errors — transport/protocol exceptions and their normalization.

Transports raise the specific exceptions below. Before a failure leaves
the MCP subsystem it is normalized into McpTransportError, which carries
an HTTP-style status the request layer can answer with directly.

Normalization precedence:
  McpTransportError         → unchanged
  MCPProtocolError          → by JSON-RPC code (400 / 404 / 504 / 502)
  StreamableHTTPError/SSEError → HTTP code if in [400, 599], else 502
  connect timeout           → 504
  other Exception           → 502, "<fallback>: <message>"
  anything else             → 502, fallback message only
"""

from typing import Any, Optional

# JSON-RPC / MCP error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
CONNECTION_CLOSED = -32000
REQUEST_TIMEOUT = -32001


class MCPClientError(Exception):
    """Base exception for MCP client errors."""
    pass


class MCPProtocolError(MCPClientError):
    """JSON-RPC error returned by (or synthesized for) an MCP server."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(f"MCP error {code}: {message}")


class StreamableHTTPError(MCPClientError):
    """Streamable HTTP transport got an unusable HTTP response.

    ``code`` is normally the HTTP status; it may be None or a sentinel
    when the failure was not tied to a status line.
    """

    def __init__(self, code: Optional[int], message: str):
        self.code = code
        super().__init__(f"Streamable HTTP error: {message}")


class SSEError(MCPClientError):
    """SSE transport got an unusable HTTP response or stream."""

    def __init__(self, code: Optional[int], message: str):
        self.code = code
        super().__init__(f"SSE error: {message}")


class StreamableHTTPConnectionTimeoutError(MCPClientError):
    """Streamable HTTP handshake did not finish within the connect deadline."""
    pass


class MCPAbortedError(MCPClientError):
    """The caller's abort signal fired before or during a request."""
    pass


class McpTransportError(Exception):
    """The single error shape surfaced by every MCP operation.

    Attributes:
        message: Human-readable message
        status: HTTP-style status code
        cause: Underlying error, kept for diagnostics only
    """

    def __init__(self, message: str, status: int = 500, cause: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.cause = cause

    def __repr__(self) -> str:
        return f"McpTransportError(status={self.status}, message={self.message!r})"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def map_mcp_error_code_to_status(code: Optional[int]) -> int:
    """Map a JSON-RPC error code to an HTTP-style status."""
    if code in (INVALID_REQUEST, INVALID_PARAMS):
        return 400
    if code == METHOD_NOT_FOUND:
        return 404
    if code == REQUEST_TIMEOUT:
        return 504
    # CONNECTION_CLOSED, INTERNAL_ERROR, PARSE_ERROR and unknown codes
    return 502


def map_http_code_to_status(code: Any) -> int:
    """Pass through HTTP error statuses, everything else becomes 502."""
    if _is_int(code) and 400 <= code <= 599:
        return code
    return 502


def normalize_error(error: Any, fallback_message: str) -> McpTransportError:
    """Convert any failure into an McpTransportError.

    Pure function: never raises, never logs.

    Args:
        error: The caught exception (or any other raised value)
        fallback_message: Prefix describing the failed operation

    Returns:
        McpTransportError with status, message and cause set
    """
    if isinstance(error, McpTransportError):
        return error

    if isinstance(error, MCPProtocolError):
        return McpTransportError(
            f"{fallback_message}: {error}",
            status=map_mcp_error_code_to_status(error.code),
            cause=error,
        )

    if isinstance(error, (StreamableHTTPError, SSEError)):
        return McpTransportError(
            f"{fallback_message}: {error}",
            status=map_http_code_to_status(error.code),
            cause=error,
        )

    if isinstance(error, StreamableHTTPConnectionTimeoutError):
        return McpTransportError(
            f"{fallback_message}: {error}",
            status=504,
            cause=error,
        )

    if isinstance(error, BaseException):
        text = str(error)
        message = f"{fallback_message}: {text}" if text else fallback_message
        return McpTransportError(message, status=502, cause=error)

    return McpTransportError(fallback_message, status=502, cause=error)
