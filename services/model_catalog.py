"""
ModelCatalog - Service for listing the models available to a set of API keys.

Queries every provider with a usable key concurrently. One provider
failing (bad key, timeout, outage) is reported in the errors map and
never hides the other providers' models.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from clients.http_factory import HttpClientFactory
from providers.base import BaseProvider, ModelInfo
from providers.credentials import PROVIDER_ENV_VARS, ProviderCredential, sanitize_api_key
from providers.selector import build_provider

logger = logging.getLogger(__name__)

PROVIDER_TIMEOUT = 15.0

# Extra variables checked after PROVIDER_ENV_VARS when listing models
EXTRA_ENV_VARS = {
    "google": ("GOOGLE_GENERATIVE_AI",),
}


class ModelCatalog:
    """
    Lists models across providers for the keys a user supplied.

    Outside production, providers the user has no key for fall back to
    the server's environment keys.
    """

    def __init__(
        self,
        http: Optional[HttpClientFactory] = None,
        production: bool = False,
        environ: Optional[Mapping[str, str]] = None,
        timeout: float = PROVIDER_TIMEOUT,
    ):
        self.http = http
        self.production = production
        self.environ = os.environ if environ is None else environ
        self.timeout = timeout

    def effective_keys(self, user_keys: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        """
        Merge user keys with environment fallbacks.

        Args:
            user_keys: provider → key from the request (may be None)

        Returns:
            dict: provider → key, non-string and blank keys dropped
        """
        keys: Dict[str, str] = {}
        for provider, value in (user_keys or {}).items():
            if isinstance(value, str) and value.strip():
                keys[provider] = value.strip()

        if not self.production:
            for provider, env_var in PROVIDER_ENV_VARS.items():
                if provider in keys:
                    continue
                for name in (env_var, *EXTRA_ENV_VARS.get(provider, ())):
                    value = self.environ.get(name)
                    if value and value.strip():
                        keys[provider] = value.strip()
                        break

        return keys

    async def fetch_models(self, user_keys: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Fetch models for every provider with a key.

        Args:
            user_keys: provider → key from the request

        Returns:
            dict: {"models": [ModelInfo, ...], "errors": {provider: message} or None}

        Raises:
            ValueError: If no key is available at all
        """
        keys = self.effective_keys(user_keys)
        if not keys:
            raise ValueError("API keys are required")

        providers = list(keys)
        results = await asyncio.gather(
            *(self._fetch_provider(provider, keys[provider]) for provider in providers),
            return_exceptions=True,
        )

        models: List[ModelInfo] = []
        errors: Dict[str, str] = {}
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                errors[provider] = str(result) or "Failed to fetch models"
                logger.warning(f"Model listing failed for {provider}: {errors[provider]}")
            else:
                models.extend(result)

        logger.info(f"Fetched {len(models)} models from {len(providers) - len(errors)}/{len(providers)} providers")
        return {"models": models, "errors": errors or None}

    # ---- Internal methods ----

    async def _fetch_provider(self, provider: str, api_key: str) -> List[ModelInfo]:
        adapter: BaseProvider = build_provider(
            ProviderCredential(provider=provider, api_key=api_key),
            model_id="",
            http=self.http,
        )
        logger.debug(f"Listing {provider} models with key {sanitize_api_key(api_key)}")

        try:
            return await asyncio.wait_for(adapter.list_models(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise TimeoutError("Request timed out")
        finally:
            await adapter.close()
