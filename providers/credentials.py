"""
Credential resolution for LLM providers.

Resolves the effective API key and base URL for one request:
- API key: trimmed user key, else trimmed environment fallback, else fail
- Base URL: trimmed user override, else the adapter default (never from env)

Keys are request-scoped and never persisted. Only sanitize_api_key()
output may appear in logs.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

PROVIDERS = ("openai", "anthropic", "google", "openrouter", "grok")

# Fallback key variables, consulted only when the user supplied no key
PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "grok": "XAI_API_KEY",
}

# (required prefix, minimum length, label)
_KEY_FORMATS = {
    "openai": ("sk-", 20, "OpenAI"),
    "anthropic": ("sk-ant-", 20, "Anthropic"),
    "google": ("AIza", 30, "Google AI"),
    "openrouter": ("sk-or-", 20, "OpenRouter"),
    "grok": ("xai-", 20, "xAI"),
}


class CredentialError(Exception):
    """Base class for credential resolution failures."""

    status = 500


class MissingCredentialError(CredentialError):
    """No API key available for a provider (client error)."""

    status = 400

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"No API key found for {provider}. Please set your API key in settings.")


class UnsupportedProviderError(CredentialError):
    """Provider value is not one of PROVIDERS."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported provider: {provider}")


@dataclass(frozen=True)
class ModelSelection:
    """Which backend and which model name to target."""

    id: str
    provider: str


@dataclass(frozen=True)
class ProviderCredential:
    """Resolved credential for one request."""

    provider: str
    api_key: str
    base_url: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"ProviderCredential(provider={self.provider!r}, "
            f"api_key={sanitize_api_key(self.api_key)!r}, base_url={self.base_url!r})"
        )


def _clean(value: Optional[str]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def resolve_credential(
    provider: str,
    user_keys: Optional[Mapping[str, str]] = None,
    user_base_urls: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProviderCredential:
    """Resolve the API key and base URL for a provider.

    Args:
        provider: One of PROVIDERS
        user_keys: provider → key supplied by the end user
        user_base_urls: provider → base URL override supplied by the end user
        environ: Environment mapping (default: os.environ)

    Returns:
        ProviderCredential with a non-empty api_key

    Raises:
        UnsupportedProviderError: Unknown provider
        MissingCredentialError: Neither a user key nor an environment key
    """
    if provider not in PROVIDERS:
        raise UnsupportedProviderError(provider)

    environ = os.environ if environ is None else environ

    api_key = _clean((user_keys or {}).get(provider))
    source = "user"
    if api_key is None:
        api_key = _clean(environ.get(PROVIDER_ENV_VARS[provider]))
        source = "env"
    if api_key is None:
        raise MissingCredentialError(provider)

    base_url = _clean((user_base_urls or {}).get(provider))

    logger.debug(
        f"Resolved {provider} key {sanitize_api_key(api_key)} from {source}"
        + (f", base URL {base_url}" if base_url else "")
    )
    return ProviderCredential(provider=provider, api_key=api_key, base_url=base_url)


def validate_api_key_format(provider: str, api_key: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Check a key's shape before it is ever sent anywhere.

    Returns:
        (is_valid, error message or None)
    """
    if not api_key or not api_key.strip():
        return False, "API key must not be empty"

    key = api_key.strip()
    key_format = _KEY_FORMATS.get(provider)
    if key_format is None:
        return False, "Unsupported provider"

    prefix, min_length, label = key_format
    if not key.startswith(prefix):
        return False, f"{label} API key should start with '{prefix}'"
    if len(key) < min_length:
        return False, f"{label} API key is too short"

    if " " in key:
        return False, "API key must not contain spaces"

    return True, None


def sanitize_api_key(api_key: Optional[str]) -> str:
    """Mask a key for logging: first and last four characters only."""
    if not api_key or len(api_key) < 8:
        return "****"
    return f"{api_key[:4]}****{api_key[-4:]}"
