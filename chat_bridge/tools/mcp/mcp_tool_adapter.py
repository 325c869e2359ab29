"""
MCP Tool Adapter — wraps one remote MCP tool as a BaseTool.

The adapter is bound to the connection of the server that listed the
tool, so execute() forwards straight to that server's client. The
connection stays open until the owning aggregation's cleanup() runs.

Name: the remote tool name (unique within an aggregated tool set)
Category: "mcp"
"""

import logging
from typing import Any, Dict, Optional

from chat_bridge.tools.base_tool import BaseTool
from chat_bridge.tools.mcp.mcp_protocol import AbortSignal, MCPTransportClient
from chat_bridge.tools.mcp.mcp_tools import summarize_result

logger = logging.getLogger(__name__)


def strict_input_schema(input_schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy of the remote schema with properties defaulted and extras forbidden."""
    schema = dict(input_schema) if isinstance(input_schema, dict) else {"type": "object"}
    if schema.get("properties") is None:
        schema["properties"] = {}
    schema["additionalProperties"] = False
    return schema


class MCPToolAdapter(BaseTool):
    """Adapts a single MCP tool (from tools/list) to the BaseTool interface.

    Attributes:
        name: Tool name as reported by the server
        display_name: "[server_id] name"
        server_id: Id of the server that owns the tool
        output_schema: Remote output schema, if any
    """

    category = "mcp"

    def __init__(
        self,
        server_id: str,
        mcp_tool_name: str,
        description: Optional[str],
        input_schema: Optional[Dict[str, Any]],
        client: MCPTransportClient,
        output_schema: Optional[Dict[str, Any]] = None,
    ):
        self.name = mcp_tool_name
        self.display_name = f"[{server_id}] {mcp_tool_name}"
        self.description = description
        self.server_id = server_id
        self.output_schema = output_schema
        self._input_schema = strict_input_schema(input_schema)
        self._client = client

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return self._input_schema

    async def execute(
        self,
        arguments: Optional[Dict[str, Any]] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> Dict[str, Any]:
        """Call the tool on its owning server.

        Checks the abort signal before any remote work and forwards it to
        the call so the caller can cancel an in-flight invocation.

        Returns:
            The raw tools/call result

        Raises:
            MCPAbortedError: If the signal has fired
        """
        if abort_signal is not None:
            abort_signal.throw_if_aborted()

        normalized_args = arguments if isinstance(arguments, dict) else None
        logger.info(f"[MCP] Executing tool {self.name} from {self.server_id}")

        try:
            result = await self._client.call_tool(self.name, normalized_args, abort_signal=abort_signal)
        except Exception as e:
            logger.error(f"[MCP] Tool {self.name} from {self.server_id} failed: {e}")
            raise

        logger.info(f"[MCP] Tool {self.name} from {self.server_id} returned {summarize_result(result)}")
        return result

    async def health_check(self) -> bool:
        """Check if the owning connection is still open."""
        return self._client is not None and self._client.connected
