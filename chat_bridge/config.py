"""
Chat bridge settings and logging setup.

Settings are read once from the environment at process start:
- HTTPS_PROXY / HTTP_PROXY (or lower-case): outbound proxy
- APP_ENV: "production" disables server-side key fallback for model listing
- LOG_LEVEL: root log level (default INFO)
- TAVILY_API_KEY: default web search key
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from clients.http_factory import HttpClientFactory, configure_http

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s: %(message)s"

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp", "openai", "anthropic")


@dataclass(frozen=True)
class BridgeSettings:
    """Process-level configuration for the chat bridge."""

    proxy: Optional[str] = None
    production: bool = False
    log_level: str = "INFO"
    tavily_api_key: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BridgeSettings":
        environ = os.environ if environ is None else environ
        http = HttpClientFactory.from_env(environ)

        return cls(
            proxy=http.proxy,
            production=environ.get("APP_ENV", "").strip().lower() == "production",
            log_level=(environ.get("LOG_LEVEL") or "INFO").strip().upper(),
            tavily_api_key=(environ.get("TAVILY_API_KEY") or "").strip() or None,
        )

    def http_factory(self) -> HttpClientFactory:
        return HttpClientFactory(proxy=self.proxy)


def configure_logging(settings: Optional[BridgeSettings] = None) -> None:
    """Configure root logging in the project's format."""
    settings = settings or BridgeSettings.from_env()
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_bridge(settings: Optional[BridgeSettings] = None) -> BridgeSettings:
    """One-time process startup: logging plus the shared HTTP client factory.

    Safe to call more than once; each call reinstalls the same settings.
    """
    settings = settings or BridgeSettings.from_env()
    configure_logging(settings)
    configure_http(settings.http_factory())
    logger.info(
        f"Chat bridge configured (production={settings.production}, "
        f"proxy={'set' if settings.proxy else 'none'})"
    )
    return settings
