"""
Base provider interface for LLM adapters.

Defines the contract that all provider implementations must follow.
A provider instance bound to one model id is the "model handle" handed
to the streaming layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ModelInfo:
    """A model offered by a provider."""

    id: str
    name: str
    provider: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "provider": self.provider}


def split_system_messages(
    messages: List[Dict[str, Any]],
    system_prompt: Optional[str] = None,
) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Fold system-role messages into one system prompt.

    Returns:
        (combined system prompt or None, remaining messages)
    """
    sections = [system_prompt] if system_prompt else []
    conversation = []
    for message in messages:
        if message.get("role") == "system":
            content = message.get("content")
            if content:
                sections.append(content)
        else:
            conversation.append(message)

    return ("\n\n".join(sections) or None), conversation


class BaseProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement list_models(), generate(), stream() and
    health_check(). Providers set id and name as instance attributes.
    """

    id: str  # Provider identifier (e.g., "openai", "grok")
    name: str  # Human readable name (e.g., "xAI Grok")
    model_id: str  # Model this handle is bound to
    base_url: Optional[str] = None

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """
        Returns the models available to the configured key.

        Returns:
            List[ModelInfo]: Available models
        """
        pass

    @abstractmethod
    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generates text based on input prompt.

        Args:
            prompt: The user prompt/question
            system_prompt: Optional system instructions

        Returns:
            str: Generated response text
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Streams a chat completion as text deltas.

        Args:
            messages: Chat messages ({"role", "content"})
            system_prompt: Optional system instructions

        Yields:
            str: Text deltas in order
        """
        pass

    def health_check(self) -> bool:
        """
        Quick check that the handle is usable (no network I/O).

        Returns:
            bool: True if an API key and model are configured
        """
        return bool(getattr(self, "api_key", None)) and bool(self.model_id)

    async def close(self) -> None:
        """Release any HTTP client owned by the adapter."""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} provider={self.id!r} model={self.model_id!r}>"
