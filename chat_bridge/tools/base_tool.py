"""
Base tool interface for tools handed to the generation layer.

Provides:
- BaseTool: Abstract base for every invocable tool (currently MCP tools)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BaseTool(ABC):
    """Abstract base class for tools exposed to a chat turn.

    Attributes:
        name: Unique tool name within a chat turn's tool set
        display_name: Human-readable name for provenance display
        description: LLM-facing description (may be None)
        category: Tool category ("mcp")
    """

    name: str = ""
    display_name: str = ""
    description: Optional[str] = None
    category: str = "builtin"

    @property
    @abstractmethod
    def parameters_schema(self) -> Dict[str, Any]:
        """JSON Schema for tool parameters (OpenAI function-calling compatible).

        Example:
            {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"}
                },
                "required": ["query"]
            }
        """
        ...

    @abstractmethod
    async def execute(self, arguments: Optional[Dict[str, Any]] = None, abort_signal: Any = None) -> Any:
        """Execute the tool.

        Args:
            arguments: Parameters matching parameters_schema
            abort_signal: Optional cancellation signal supplied by the caller

        Returns:
            The tool's raw result
        """
        ...

    async def health_check(self) -> bool:
        """Check if the tool is available and functional."""
        return True

    def to_function_spec(self) -> Dict[str, Any]:
        """Convert to OpenAI function-calling format.

        Returns:
            Dict in OpenAI function spec format
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or "",
                "parameters": self.parameters_schema,
            },
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} category={self.category!r}>"
