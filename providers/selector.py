"""
Provider Adapter Selector — turns a model selection into a model handle.

Usage:
    model = resolve_and_build_model(
        ModelSelection(id="claude-3-5-haiku-20241022", provider="anthropic"),
        user_credentials={"anthropic": "sk-ant-..."},
    )
    async for delta in model.stream(messages):
        ...

No network I/O happens here; the handle talks to the provider only
when the streaming layer uses it.
"""

import logging
from typing import Mapping, Optional

from clients.http_factory import HttpClientFactory
from providers.anthropic_adapter import AnthropicProvider
from providers.base import BaseProvider
from providers.credentials import (
    ModelSelection,
    ProviderCredential,
    UnsupportedProviderError,
    resolve_credential,
    sanitize_api_key,
)
from providers.gemini_adapter import GeminiProvider
from providers.openai_adapter import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def build_provider(
    credential: ProviderCredential,
    model_id: str,
    http: Optional[HttpClientFactory] = None,
) -> BaseProvider:
    """Instantiate the adapter for a resolved credential, bound to model_id.

    Raises:
        UnsupportedProviderError: Unknown provider
    """
    provider = credential.provider

    if provider in ("openai", "openrouter", "grok"):
        return OpenAICompatibleProvider(
            provider=provider,
            api_key=credential.api_key,
            model_id=model_id,
            base_url=credential.base_url,
            http=http,
        )
    if provider == "anthropic":
        return AnthropicProvider(
            api_key=credential.api_key,
            model_id=model_id,
            base_url=credential.base_url,
            http=http,
        )
    if provider == "google":
        return GeminiProvider(
            api_key=credential.api_key,
            model_id=model_id,
            base_url=credential.base_url,
            http=http,
        )

    raise UnsupportedProviderError(provider)


def resolve_and_build_model(
    selection: ModelSelection,
    user_credentials: Optional[Mapping[str, str]] = None,
    user_base_urls: Optional[Mapping[str, str]] = None,
    http: Optional[HttpClientFactory] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BaseProvider:
    """Resolve credentials for a selection and build its model handle.

    Args:
        selection: Model id and provider
        user_credentials: provider → API key from end-user settings
        user_base_urls: provider → base URL override from end-user settings
        http: HTTP client factory (default: process-wide factory)
        environ: Environment mapping for key fallback (default: os.environ)

    Raises:
        MissingCredentialError: No key for the provider (status 400)
        UnsupportedProviderError: Unknown provider
    """
    credential = resolve_credential(
        selection.provider,
        user_keys=user_credentials,
        user_base_urls=user_base_urls,
        environ=environ,
    )

    model = build_provider(credential, selection.id, http=http)
    logger.info(
        f"Selected {selection.provider} model {selection.id} "
        f"(key {sanitize_api_key(credential.api_key)})"
    )
    return model
