"""
Anthropic Claude API provider adapter.

The API key is resolved per request (user key or ANTHROPIC_API_KEY)
and passed in explicitly.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from anthropic import AsyncAnthropic

from clients.http_factory import HttpClientFactory, get_http_factory
from providers.base import BaseProvider, ModelInfo, split_system_messages
from providers.credentials import sanitize_api_key

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"


class AnthropicProvider(BaseProvider):
    """
    Adapter for Anthropic Claude API.

    Args:
        api_key: Resolved API key
        model_id: Claude model this handle is bound to
        base_url: Override for the default endpoint
        http: HTTP client factory (proxy configuration)
    """

    def __init__(
        self,
        api_key: str,
        model_id: str,
        base_url: Optional[str] = None,
        http: Optional[HttpClientFactory] = None,
        max_tokens: int = 4096,
    ):
        self.id = "anthropic"
        self.name = "Anthropic Claude"
        self.model_id = model_id
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URL
        self.max_tokens = max_tokens

        http = http or get_http_factory()
        self._http_client = http.httpx_client() if http.proxy else None
        self.client = AsyncAnthropic(
            api_key=api_key,
            base_url=self.base_url,
            http_client=self._http_client,
        )

        logger.debug(f"Anthropic provider ready: model={model_id} key={sanitize_api_key(api_key)}")

    async def list_models(self) -> List[ModelInfo]:
        """
        Returns Claude models available to the key.

        Returns:
            List[ModelInfo]: Models with their display names
        """
        page = await self.client.models.list()
        return [
            ModelInfo(id=model.id, name=model.display_name or model.id, provider=self.id)
            for model in page.data
        ]

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generate text using Claude API.

        Args:
            prompt: User prompt/question
            system_prompt: Optional system instructions

        Returns:
            str: Generated response
        """
        kwargs: Dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self.client.messages.create(**kwargs)

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        logger.info(f"Claude ({self.model_id}) response: {len(text)} chars")
        return text

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        system, conversation = split_system_messages(messages, system_prompt)

        kwargs: Dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": self.max_tokens,
            "messages": conversation,
        }
        if system:
            kwargs["system"] = system

        async with self.client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                yield text

    async def close(self) -> None:
        await self.client.close()
