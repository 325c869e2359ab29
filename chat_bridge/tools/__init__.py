"""
Tool architecture for the chat bridge.

Provides the BaseTool ABC and the MCP tool subsystem.
"""

from chat_bridge.tools.base_tool import BaseTool

__all__ = [
    "BaseTool",
]
