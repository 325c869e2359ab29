"""
HTTP Client Factory - proxy-aware HTTP clients for every outbound call.

Model-provider SDKs (httpx) and MCP transports (aiohttp) both get their
HTTP clients from one HttpClientFactory, built once at process start from
HTTPS_PROXY / HTTP_PROXY.

Usage:
    configure_http(HttpClientFactory.from_env())
    http = get_http_factory()
    async with http.aiohttp_session(headers={"Authorization": "Bearer x"}) as session:
        async with session.get(url, proxy=http.proxy) as resp:
            ...
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

import aiohttp
import httpx

logger = logging.getLogger(__name__)

PROXY_ENV_VARS = ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy")


@dataclass(frozen=True)
class HttpClientFactory:
    """Builds HTTP clients that share one proxy configuration.

    Attributes:
        proxy: Proxy URL applied to all outbound requests, or None
    """

    proxy: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HttpClientFactory":
        """Read the proxy from the environment.

        HTTPS_PROXY wins over HTTP_PROXY. A value that does not parse as
        a URL with a scheme and host is ignored with a warning.
        """
        environ = os.environ if environ is None else environ

        proxy_url = None
        for var in PROXY_ENV_VARS:
            value = (environ.get(var) or "").strip()
            if value:
                proxy_url = value
                break

        if not proxy_url:
            return cls()

        parsed = urlparse(proxy_url)
        if not parsed.scheme or not parsed.netloc:
            logger.warning(f"Ignoring invalid proxy URL: {proxy_url}")
            return cls()

        logger.info(f"Outbound HTTP proxy configured: {parsed.scheme}://{parsed.hostname}")
        return cls(proxy=proxy_url)

    def httpx_client(self, timeout: float = 60.0) -> httpx.AsyncClient:
        """Create an httpx.AsyncClient routed through the proxy (if any)."""
        return httpx.AsyncClient(proxy=self.proxy, timeout=timeout)

    def aiohttp_session(
        self,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> aiohttp.ClientSession:
        """Create an aiohttp.ClientSession.

        aiohttp applies proxies per request, so callers pass
        ``proxy=factory.proxy`` on each request made with this session.
        """
        return aiohttp.ClientSession(
            headers=headers or {},
            timeout=aiohttp.ClientTimeout(total=timeout),
        )


_default_factory: Optional[HttpClientFactory] = None


def configure_http(factory: Optional[HttpClientFactory] = None) -> HttpClientFactory:
    """Install the process-wide default factory.

    Idempotent: once a factory is installed, later calls without an
    explicit factory return the existing one.
    """
    global _default_factory

    if factory is not None:
        _default_factory = factory
    elif _default_factory is None:
        _default_factory = HttpClientFactory.from_env()

    return _default_factory


def get_http_factory() -> HttpClientFactory:
    """Return the default factory, configuring it from env on first use."""
    return configure_http()
