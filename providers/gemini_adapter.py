"""
Google Gemini API provider adapter.

Uses a per-instance google-genai Client so request-scoped keys never
leak between requests, and maps 429 errors to QuotaExhaustedError.
"""

import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from clients.http_factory import HttpClientFactory, get_http_factory
from providers.base import BaseProvider, ModelInfo, split_system_messages
from providers.credentials import sanitize_api_key

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/"


class QuotaExhaustedError(Exception):
    """Raised when Gemini quota is exhausted (429 error)."""

    def __init__(self, model: str, message: str = None):
        self.model = model
        self.message = message or f"Gemini quota exhausted for model {model}. Try again later or switch models."
        super().__init__(self.message)


def _display_name(model_id: str) -> str:
    """Prettify a model id, e.g. gemini-1.5-pro → Gemini 1.5 Pro."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), model_id.replace("-", " "))


def _to_contents(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    contents = []
    for message in messages:
        role = "model" if message.get("role") == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": message.get("content") or ""}]})
    return contents


class GeminiProvider(BaseProvider):
    """
    Adapter for Google Gemini API with request-scoped credentials and quota handling.

    Args:
        api_key: Resolved API key
        model_id: Gemini model this handle is bound to (e.g. "gemini-1.5-flash")
        base_url: Override for the default endpoint
        http: HTTP client factory (proxy configuration)
    """

    def __init__(
        self,
        api_key: str,
        model_id: str,
        base_url: Optional[str] = None,
        http: Optional[HttpClientFactory] = None,
    ):
        self.id = "google"
        self.name = "Google Gemini"
        self.model_id = model_id
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URL

        http = http or get_http_factory()
        options: Dict[str, Any] = {"base_url": self.base_url}
        if http.proxy:
            options["async_client_args"] = {"proxy": http.proxy}

        self.client = genai.Client(api_key=api_key, http_options=types.HttpOptions(**options))

        logger.debug(f"Gemini provider ready: model={model_id} key={sanitize_api_key(api_key)}")

    async def list_models(self) -> List[ModelInfo]:
        """
        Returns Gemini models that support generateContent.

        Returns:
            List[ModelInfo]: Models with prettified names
        """
        models = []
        async for model in await self.client.aio.models.list():
            actions = getattr(model, "supported_actions", None) or []
            if "generateContent" not in actions:
                continue
            model_id = (model.name or "").replace("models/", "", 1)
            models.append(ModelInfo(id=model_id, name=_display_name(model_id), provider=self.id))
        return models

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generate text using Gemini API.

        Raises:
            QuotaExhaustedError: If a 429 quota error is received
        """
        config = types.GenerateContentConfig(system_instruction=system_prompt) if system_prompt else None

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_id,
                contents=prompt,
                config=config,
            )
        except genai_errors.APIError as e:
            self._raise_for_quota(e)
            raise

        text = response.text or ""
        logger.info(f"Gemini ({self.model_id}) response: {len(text)} chars")
        return text

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        system, conversation = split_system_messages(messages, system_prompt)
        config = types.GenerateContentConfig(system_instruction=system) if system else None

        try:
            response = await self.client.aio.models.generate_content_stream(
                model=self.model_id,
                contents=_to_contents(conversation),
                config=config,
            )
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except genai_errors.APIError as e:
            self._raise_for_quota(e)
            raise

    def _raise_for_quota(self, error: "genai_errors.APIError") -> None:
        if getattr(error, "code", None) == 429:
            logger.warning(f"Gemini quota exhausted: {error}")
            raise QuotaExhaustedError(self.model_id, str(error)) from error
        logger.error(f"Gemini generation error: {error}")
