"""
Web Search Client - Search the web through Tavily for chat grounding.

Provides WebSearchClient, which normalizes Tavily results into numbered,
citable WebSearchResult records consumed by the chat system prompt.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

import httpx

from clients.http_factory import HttpClientFactory, get_http_factory

logger = logging.getLogger(__name__)

TAVILY_ENDPOINT = "https://api.tavily.com/search"
MAX_QUERY_LENGTH = 400
DEFAULT_MAX_RESULTS = 5
MAX_RESULTS_LIMIT = 50


class WebSearchError(Exception):
    """Search failure carrying an HTTP-style status."""

    def __init__(self, message: str, status: int = 500):
        self.message = message
        self.status = status
        super().__init__(message)


@dataclass
class WebSearchResult:
    """A single web search result, numbered for inline citation."""

    id: str
    index: int
    title: str
    url: str
    snippet: str = ""
    score: Optional[float] = None
    source_domain: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "index": self.index,
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
        }
        if self.score is not None:
            data["score"] = self.score
        return data


@dataclass
class WebSearchResponse:
    """Normalized search response."""

    query: str
    search_depth: str
    results: List[WebSearchResult] = field(default_factory=list)
    answer: Optional[str] = None
    evaluation_time: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "searchDepth": self.search_depth,
            "results": [r.to_dict() for r in self.results],
            "answer": self.answer,
            "evaluationTime": self.evaluation_time,
        }


def _clamp_max_results(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return DEFAULT_MAX_RESULTS
    return max(1, min(int(round(value)), MAX_RESULTS_LIMIT))


def _exclude_domains(value: Union[str, Sequence[str], None]) -> List[str]:
    if isinstance(value, str):
        candidates = value.split(",")
    elif isinstance(value, (list, tuple)):
        candidates = [v for v in value if isinstance(v, str)]
    else:
        candidates = []
    return [domain.strip() for domain in candidates if domain.strip()]


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class WebSearchClient:
    """
    Search the web using Tavily (API key required).

    Usage:
        client = WebSearchClient()
        response = await client.search("Python programming", max_results=5)
        for r in response.results:
            print(f"[{r.index}] {r.title}: {r.url}")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        http: Optional[HttpClientFactory] = None,
        timeout: int = 10,
        endpoint: str = TAVILY_ENDPOINT,
    ):
        """
        Initialize web search client.

        Args:
            api_key: Default API key (falls back to TAVILY_API_KEY per search)
            http: HTTP client factory (proxy configuration)
            timeout: Request timeout in seconds
            endpoint: Tavily search endpoint
        """
        self.api_key = api_key
        self.http = http or get_http_factory()
        self.timeout = timeout
        self.endpoint = endpoint

    async def search(
        self,
        query: str,
        api_key: Optional[str] = None,
        max_results: Any = DEFAULT_MAX_RESULTS,
        search_depth: str = "basic",
        include_answer: bool = False,
        include_raw_content: bool = False,
        use_cache: Optional[bool] = None,
        language: Optional[str] = None,
        exclude_websites: Union[str, Sequence[str], None] = None,
    ) -> WebSearchResponse:
        """
        Search the web for the given query.

        Args:
            query: Search query (trimmed, clamped to 400 characters)
            api_key: Per-request key; falls back to the client key, then TAVILY_API_KEY
            max_results: Result count, clamped to 1..50
            search_depth: "advanced" or "basic" (anything else means basic)
            exclude_websites: Domains to exclude, as a list or comma-separated string

        Returns:
            WebSearchResponse with normalized results

        Raises:
            ValueError: If the query is empty
            WebSearchError: 401 without a key, the Tavily status on non-2xx,
                500 if Tavily cannot be reached
        """
        raw_query = _text(query)
        if not raw_query:
            raise ValueError("Query is required")
        query = raw_query[:MAX_QUERY_LENGTH]

        key = _text(api_key) or _text(self.api_key) or _text(os.getenv("TAVILY_API_KEY"))
        if not key:
            raise WebSearchError("Missing Tavily API key", status=401)

        limit = _clamp_max_results(max_results)
        depth = "advanced" if search_depth == "advanced" else "basic"

        body: Dict[str, Any] = {
            "api_key": key,
            "query": query,
            "max_results": limit,
            "search_depth": depth,
            "include_answer": include_answer,
            "include_raw_content": include_raw_content,
            "include_images": False,
        }
        if isinstance(use_cache, bool):
            body["cache"] = use_cache
        if _text(language):
            body["language"] = _text(language)
        domains = _exclude_domains(exclude_websites)
        if domains:
            body["exclude_domains"] = domains

        try:
            async with self.http.httpx_client(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Tavily search error: {e}")
            raise WebSearchError("Failed to reach Tavily search", status=500) from e

        if not response.is_success:
            logger.error(f"Tavily search failed: {response.status_code} {response.text[:200]}")
            raise WebSearchError(response.text or "Tavily search failed", status=response.status_code)

        data = response.json()
        results = self._normalize_results(data.get("results"), limit)
        logger.info(f"Tavily search returned {len(results)} results for {query[:60]!r}")

        evaluation_time = data.get("evaluation_time")
        return WebSearchResponse(
            query=query,
            search_depth=depth,
            results=results,
            answer=data.get("answer") if include_answer else None,
            evaluation_time=evaluation_time if isinstance(evaluation_time, (int, float)) else None,
        )

    def _normalize_results(self, raw_results: Any, limit: int) -> List[WebSearchResult]:
        """Drop URL-less results and fill in titles, ids and citation indexes."""
        if not isinstance(raw_results, list):
            return []

        results = []
        for ordinal, r in enumerate(raw_results[:limit], 1):
            url = _text(r.get("url"))
            if not url:
                continue

            position = r.get("position")
            score = r.get("score")
            results.append(
                WebSearchResult(
                    id=_text(r.get("id")) or f"source-{ordinal}",
                    index=position if isinstance(position, int) and position > 0 else ordinal,
                    title=_text(r.get("title")) or url,
                    url=url,
                    snippet=_text(r.get("snippet")) or _text(r.get("content")),
                    score=score if isinstance(score, (int, float)) and not math.isnan(score) else None,
                    source_domain=self._extract_domain(url),
                )
            )
        return results

    @staticmethod
    def _extract_domain(url: str) -> str:
        """Extract domain from URL."""
        domain = urlparse(url).netloc
        # Remove www. prefix
        if domain.startswith("www."):
            domain = domain[4:]
        return domain

    def __repr__(self) -> str:
        return f"WebSearchClient(endpoint='{self.endpoint}')"
