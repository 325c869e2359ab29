"""
LLM Provider adapters and per-request provider selection.

Implements the Adapter/Strategy pattern for switching between:
- OpenAI-compatible APIs (OpenAI, OpenRouter, xAI Grok)
- Anthropic Claude
- Google Gemini
"""

from providers.base import BaseProvider, ModelInfo
from providers.credentials import (
    PROVIDERS,
    CredentialError,
    MissingCredentialError,
    ModelSelection,
    ProviderCredential,
    UnsupportedProviderError,
    resolve_credential,
    sanitize_api_key,
    validate_api_key_format,
)
from providers.selector import build_provider, resolve_and_build_model

__all__ = [
    "BaseProvider",
    "CredentialError",
    "MissingCredentialError",
    "ModelInfo",
    "ModelSelection",
    "PROVIDERS",
    "ProviderCredential",
    "UnsupportedProviderError",
    "build_provider",
    "resolve_and_build_model",
    "resolve_credential",
    "sanitize_api_key",
    "validate_api_key_format",
]
