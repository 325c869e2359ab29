"""
MCP Server configuration — runtime server records, header and URL checks.

Server configs normally arrive per chat session from the request layer.
For the probe CLI they can also be loaded from a JSON file:

Base config: config/mcp_servers.json
Local override: config/mcp_servers.local.json (machine-specific)

    {"mcpServers": {"search": {"url": "https://...", "headers": {"Authorization": "Bearer x"},
                               "enabledTools": ["search"]}}}
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from chat_bridge.tools.mcp.mcp_errors import McpTransportError

logger = logging.getLogger(__name__)

ALLOWED_URL_SCHEMES = ("http", "https")


@dataclass
class McpServerConfig:
    """Configuration for a single remote MCP server.

    Attributes:
        id: Server identifier, used in warnings and tool summaries
        url: Absolute http(s) URL of the MCP endpoint
        headers: Ordered (key, value) pairs sent with every request
        enabled_tools: Optional allow-list of tool names; None allows all
    """

    id: str
    url: str
    headers: List[Tuple[Any, Any]] = field(default_factory=list)
    enabled_tools: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_id: str = "unknown") -> "McpServerConfig":
        """Build a config from a loosely typed dict.

        Headers may be a list of {"key", "value"} dicts, a list of pairs,
        or a plain mapping.
        """
        headers = data.get("headers") or []
        if isinstance(headers, dict):
            pairs = list(headers.items())
        else:
            pairs = []
            for header in headers:
                if isinstance(header, dict):
                    pairs.append((header.get("key"), header.get("value")))
                elif isinstance(header, (list, tuple)) and len(header) == 2:
                    pairs.append((header[0], header[1]))

        enabled_tools = data.get("enabledTools", data.get("enabled_tools"))
        if enabled_tools is not None:
            enabled_tools = [t for t in enabled_tools if isinstance(t, str)]

        return cls(
            id=data.get("id") or default_id,
            url=data.get("url") or "",
            headers=pairs,
            enabled_tools=enabled_tools,
        )


def build_header_record(headers: Optional[Iterable[Tuple[Any, Any]]]) -> Dict[str, str]:
    """Turn ordered header pairs into a request header dict.

    Non-string keys and blank keys are dropped, keys are trimmed, and
    non-string values become "". Later duplicates win.
    """
    record: Dict[str, str] = {}
    if not headers:
        return record

    for key, value in headers:
        if not isinstance(key, str):
            continue
        normalized_key = key.strip()
        if not normalized_key:
            continue
        record[normalized_key] = value if isinstance(value, str) else ""

    return record


def parse_server_url(url: Any) -> Optional[str]:
    """Return the trimmed URL if it is an absolute http(s) URL, else None."""
    if not isinstance(url, str):
        return None
    candidate = url.strip()
    if not candidate:
        return None
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    if parsed.scheme not in ALLOWED_URL_SCHEMES or not parsed.netloc:
        return None
    return candidate


def validate_server_url(url: Any) -> str:
    """Validate a server URL before any connection attempt.

    Raises:
        McpTransportError: status 400 if missing or not an absolute http(s) URL
    """
    if not url or not isinstance(url, str):
        raise McpTransportError("Missing MCP server URL", status=400)

    endpoint = parse_server_url(url)
    if endpoint is None:
        raise McpTransportError(f"Invalid MCP server URL: {url}", status=400)
    return endpoint


def load_mcp_config(
    base_path: str = "config/mcp_servers.json",
    local_path: Optional[str] = None,
) -> List[McpServerConfig]:
    """Load MCP server configurations with local override merge.

    Args:
        base_path: Path to the shared config
        local_path: Path to local override config (default: base_path but .local.json)

    Returns:
        Server configs in file order (base entries first, new local entries after)
    """
    if local_path is None:
        local_path = base_path.replace(".json", ".local.json")

    base_data = _read_servers(base_path, "base")
    local_data = _read_servers(local_path, "local")

    # Merge: local overrides base, order follows first appearance
    merged = {**base_data, **local_data}

    return [
        McpServerConfig.from_dict({"id": name, **server_data}, default_id=name)
        for name, server_data in merged.items()
    ]


def _read_servers(path: str, label: str) -> Dict[str, Dict[str, Any]]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r") as f:
            raw = json.load(f)
        return raw.get("mcpServers", {})
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load MCP {label} config: {e}")
        return {}
