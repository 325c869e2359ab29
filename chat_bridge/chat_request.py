"""
Chat request preparation — everything a chat turn needs before generation.

Given a request body (model selection, user keys and base URLs, optional
web search results, optional MCP server settings) this module builds:
- the model handle (credential resolution + provider adapter)
- the system prompt (base prompt, search citations, MCP tool guidance)
- the aggregated MCP tool set and its cleanup action

Usage:
    prepared = await prepare_chat(body)
    try:
        async for delta in prepared.model.stream(prepared.messages, prepared.system_prompt):
            ...
    finally:
        await prepared.cleanup()
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from clients.http_factory import HttpClientFactory
from chat_bridge.tools.mcp.mcp_aggregator import LoadedMCPTools, McpToolSummary, load_mcp_tools_for_chat
from chat_bridge.tools.mcp.mcp_config import McpServerConfig, parse_server_url
from chat_bridge.tools.mcp.mcp_tool_adapter import MCPToolAdapter
from providers.base import BaseProvider
from providers.credentials import MissingCredentialError, ModelSelection
from providers.selector import resolve_and_build_model

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = "You are a helpful assistant."
MAX_SEARCH_ROWS = 10
MAX_SNIPPET_LENGTH = 320

TOOL_GUIDANCE = (
    "You can call external MCP tools when they provide fresher or more detailed information "
    "than your internal knowledge. After using a tool, summarize the findings in your own words "
    "instead of copying the raw output. If no tool is relevant, answer directly."
)


class ChatRequestError(Exception):
    """Chat request failure carrying an HTTP-style status."""

    def __init__(self, message: str, status: int = 500):
        self.message = message
        self.status = status
        super().__init__(message)


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_mcp_servers(config: Any) -> Optional[List[McpServerConfig]]:
    """Turn the request's MCP settings into server configs.

    Returns None when MCP is disabled or no server survives validation.
    Servers without a valid http(s) URL are dropped; header pairs are
    trimmed and dropped when either side ends up empty.
    """
    if not isinstance(config, Mapping) or not config.get("enabled"):
        return None

    servers = config.get("servers")
    if not isinstance(servers, list):
        return None

    normalized = []
    for index, server in enumerate(servers):
        if not isinstance(server, Mapping):
            continue

        url = parse_server_url(server.get("url"))
        if url is None:
            continue

        headers = []
        raw_headers = server.get("headers")
        if isinstance(raw_headers, list):
            for header in raw_headers:
                if not isinstance(header, Mapping):
                    continue
                key = header.get("key").strip() if isinstance(header.get("key"), str) else ""
                value = header.get("value").strip() if isinstance(header.get("value"), str) else ""
                if key and value:
                    headers.append((key, value))

        enabled_tools = server.get("enabledTools")
        if isinstance(enabled_tools, list):
            enabled_tools = [tool for tool in enabled_tools if isinstance(tool, str)]
        else:
            enabled_tools = None

        server_id = server.get("id")
        normalized.append(
            McpServerConfig(
                id=server_id if isinstance(server_id, str) and server_id.strip() else f"server-{index}",
                url=url,
                headers=headers,
                enabled_tools=enabled_tools,
            )
        )

    return normalized or None


def _search_section(search: Mapping[str, Any]) -> Optional[str]:
    results = search.get("results")
    if not isinstance(results, list):
        return None

    rows = [
        r for r in results
        if isinstance(r, Mapping)
        and isinstance(r.get("id"), str)
        and isinstance(r.get("title"), str)
        and isinstance(r.get("url"), str)
    ]
    query = search.get("query")
    if not query or not rows:
        return None

    provider = search.get("provider")
    label = provider.strip() if isinstance(provider, str) and provider.strip() else "web search"

    meta = []
    if search.get("language"):
        meta.append(f"language {search['language']}")
    if search.get("maxResults"):
        meta.append(f"top {search['maxResults']}")
    if search.get("excludeWebsites"):
        meta.append(f"excluding {search['excludeWebsites']}")
    details = f"{label} ({', '.join(meta)})" if meta else label

    lines = []
    for ordinal, result in enumerate(rows[:MAX_SEARCH_ROWS], 1):
        score = result.get("score")
        relevance = (
            f" (relevance {score:.2f})"
            if isinstance(score, (int, float)) and not isinstance(score, bool) and not math.isnan(score)
            else ""
        )
        snippet = result.get("snippet")
        snippet = _collapse(snippet)[:MAX_SNIPPET_LENGTH] if isinstance(snippet, str) else ""
        suffix = f" — {snippet}" if snippet else ""
        lines.append(f"[{ordinal}] {result['title'].strip()} <{result['url'].strip()}>{relevance}{suffix}")

    return (
        f"You have access to the following {details} results collected for the latest user "
        f'request "{query}". Use them to ground your answer when relevant. Cite sources inline '
        f"using [index] references, e.g. [1]. If the results are insufficient or conflicting, "
        f"acknowledge it.\n\nSearch results:\n" + "\n".join(lines)
    )


def _tools_section(tool_summaries: Sequence[McpToolSummary]) -> Optional[str]:
    if not tool_summaries:
        return None

    lines = []
    for summary in tool_summaries:
        details = [summary.server_id]
        if summary.description:
            details.append(_collapse(summary.description))
        lines.append(f"- {summary.name}: {' — '.join(details)}")

    return f"{TOOL_GUIDANCE}\n\nAvailable MCP tools:\n" + "\n".join(lines)


def build_system_prompt(
    search: Optional[Mapping[str, Any]] = None,
    tool_summaries: Optional[Sequence[McpToolSummary]] = None,
) -> str:
    """Assemble the system prompt from the base prompt and optional sections."""
    sections = [BASE_SYSTEM_PROMPT]

    if isinstance(search, Mapping):
        search_section = _search_section(search)
        if search_section:
            sections.append(search_section)

    tools_section = _tools_section(tool_summaries or [])
    if tools_section:
        sections.append(tools_section)

    return "\n\n".join(sections)


@dataclass
class PreparedChat:
    """Everything the generation layer needs for one chat turn.

    Attributes:
        model: Provider handle bound to the selected model
        system_prompt: Assembled system prompt
        messages: Conversation messages from the request
        tools: Aggregated MCP tools (name → tool), possibly empty
        tool_summaries: Provenance of each tool
        warnings: MCP aggregation diagnostics
    """

    model: BaseProvider
    system_prompt: str
    messages: List[Dict[str, Any]] = field(default_factory=list)
    tools: Mapping[str, MCPToolAdapter] = field(default_factory=dict)
    tool_summaries: List[McpToolSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    _mcp: Optional[LoadedMCPTools] = field(default=None, repr=False)
    _cleaned_up: bool = field(default=False, repr=False)

    async def cleanup(self) -> None:
        """Close MCP connections; later calls are no-ops."""
        if self._cleaned_up:
            return
        self._cleaned_up = True

        if self._mcp is None:
            return
        try:
            await self._mcp.cleanup()
        except Exception as e:
            logger.warning(f"[MCP] Failed to close MCP clients: {e}")


def _model_selection(model: Any) -> Optional[ModelSelection]:
    if not isinstance(model, Mapping):
        return None
    model_id, provider = model.get("id"), model.get("provider")
    if not model_id or not provider:
        return None
    return ModelSelection(id=model_id, provider=provider)


async def prepare_chat(
    body: Mapping[str, Any],
    http: Optional[HttpClientFactory] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PreparedChat:
    """Prepare a chat turn from a request body.

    Args:
        body: {"messages", "model": {"id", "provider"}, "apiKeys", "baseUrls", "search", "mcp"}
        http: HTTP client factory (default: process-wide factory)
        environ: Environment mapping for key fallback (default: os.environ)

    Returns:
        PreparedChat; the caller must await its cleanup()

    Raises:
        ChatRequestError: 400 for a missing model or missing API key, 500 otherwise
    """
    selection = _model_selection(body.get("model"))
    if selection is None:
        raise ChatRequestError("Model information is required", status=400)

    loaded: Optional[LoadedMCPTools] = None
    try:
        model = resolve_and_build_model(
            selection,
            user_credentials=body.get("apiKeys"),
            user_base_urls=body.get("baseUrls"),
            http=http,
            environ=environ,
        )

        servers = normalize_mcp_servers(body.get("mcp"))
        if servers:
            loaded = await load_mcp_tools_for_chat(servers, http=http)
            for warning in loaded.warnings:
                logger.warning(f"[MCP] {warning}")

        tool_summaries = loaded.tool_summaries if loaded else []
        messages = body.get("messages")

        return PreparedChat(
            model=model,
            system_prompt=build_system_prompt(body.get("search"), tool_summaries),
            messages=messages if isinstance(messages, list) else [],
            tools=loaded.tools if loaded else {},
            tool_summaries=list(tool_summaries),
            warnings=list(loaded.warnings) if loaded else [],
            _mcp=loaded,
        )
    except MissingCredentialError as e:
        logger.error(f"Error in chat request: {e}")
        raise ChatRequestError(str(e), status=400) from e
    except Exception as e:
        if loaded is not None:
            await loaded.cleanup()
        logger.error(f"Error in chat request: {e}")
        raise ChatRequestError("Internal Server Error", status=500) from e
