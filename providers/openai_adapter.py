"""
OpenAI-compatible provider adapter.

Serves three providers through the OpenAI SDK, which differ only in
their default endpoint:
- openai: https://api.openai.com/v1
- openrouter: https://openrouter.ai/api/v1
- grok (xAI): https://api.x.ai/v1
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from clients.http_factory import HttpClientFactory, get_http_factory
from providers.base import BaseProvider, ModelInfo, split_system_messages
from providers.credentials import sanitize_api_key

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "grok": "https://api.x.ai/v1",
}

PROVIDER_NAMES = {
    "openai": "OpenAI",
    "openrouter": "OpenRouter",
    "grok": "xAI Grok",
}


class OpenAICompatibleProvider(BaseProvider):
    """
    Adapter for any endpoint speaking the OpenAI chat completions API.

    Args:
        provider: "openai", "openrouter" or "grok"
        api_key: Resolved API key
        model_id: Model this handle is bound to
        base_url: Override for the provider's default endpoint
        http: HTTP client factory (proxy configuration)
    """

    def __init__(
        self,
        provider: str,
        api_key: str,
        model_id: str,
        base_url: Optional[str] = None,
        http: Optional[HttpClientFactory] = None,
        max_tokens: int = 4096,
    ):
        if provider not in DEFAULT_BASE_URLS:
            raise ValueError(f"Not an OpenAI-compatible provider: {provider}")

        self.id = provider
        self.name = PROVIDER_NAMES[provider]
        self.model_id = model_id
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URLS[provider]
        self.max_tokens = max_tokens

        http = http or get_http_factory()
        self._http_client = http.httpx_client() if http.proxy else None
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            http_client=self._http_client,
        )

        logger.debug(
            f"{self.name} provider ready: model={model_id} base_url={self.base_url} "
            f"key={sanitize_api_key(api_key)}"
        )

    async def list_models(self) -> List[ModelInfo]:
        """
        Returns models from the provider's /models endpoint.

        OpenRouter exposes a display name; the others only ids.
        """
        page = await self.client.models.list()
        models = []
        for model in page.data:
            name = getattr(model, "name", None) if self.id == "openrouter" else None
            models.append(ModelInfo(id=model.id, name=name or model.id, provider=self.id))
        return models

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=self.model_id,
            messages=messages,
            max_tokens=self.max_tokens,
        )

        content = response.choices[0].message.content or ""
        logger.info(f"{self.name} ({self.model_id}) response: {len(content)} chars")
        return content

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        system, conversation = split_system_messages(messages, system_prompt)
        api_messages = [{"role": "system", "content": system}] if system else []
        api_messages.extend(conversation)

        response = await self.client.chat.completions.create(
            model=self.model_id,
            messages=api_messages,
            max_tokens=self.max_tokens,
            stream=True,
        )

        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def close(self) -> None:
        await self.client.close()
