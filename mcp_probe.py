#!/usr/bin/env python3
"""
mcp-probe: One-shot checks against remote MCP servers.

Lists tools, calls a single tool, or aggregates every server from a
config file the way a chat turn would. Output is JSON on stdout.

Usage:
    python mcp_probe.py list https://mcp.example.com/mcp -H "Authorization: Bearer x"
    python mcp_probe.py call https://mcp.example.com/mcp search --args '{"query": "python"}'
    python mcp_probe.py servers config/mcp_servers.json
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional, Tuple

from chat_bridge.config import configure_bridge
from chat_bridge.tools.mcp.mcp_aggregator import load_mcp_tools_for_chat
from chat_bridge.tools.mcp.mcp_config import McpServerConfig, load_mcp_config
from chat_bridge.tools.mcp.mcp_errors import McpTransportError
from chat_bridge.tools.mcp.mcp_tools import call_mcp_tool, list_mcp_tools


def parse_header(value: str) -> Tuple[str, str]:
    """Parse a "Key: Value" header argument."""
    key, sep, header_value = value.partition(":")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"Header must look like 'Key: Value', got {value!r}")
    return key.strip(), header_value.strip()


def parse_arguments(value: str):
    try:
        return json.loads(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"--args must be JSON: {e}")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def cmd_list(args) -> int:
    server = McpServerConfig(id="probe", url=args.url, headers=args.headers)
    tools = await list_mcp_tools(server)
    _print_json([tool.to_dict() for tool in tools])
    return 0


async def cmd_call(args) -> int:
    server = McpServerConfig(id="probe", url=args.url, headers=args.headers)
    result = await call_mcp_tool(server, args.tool, args.arguments)
    _print_json({"toolName": result.tool_name, "result": result.result})
    return 0


async def cmd_servers(args) -> int:
    servers = load_mcp_config(base_path=args.config)
    if not servers:
        print(f"No MCP servers configured in {args.config}", file=sys.stderr)
        return 1

    loaded = await load_mcp_tools_for_chat(servers)
    try:
        _print_json({
            "tools": [summary.to_dict() for summary in loaded.tool_summaries],
            "warnings": loaded.warnings,
        })
    finally:
        await loaded.cleanup()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mcp-probe",
        description="List or call tools on remote MCP servers.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # list command
    list_parser = subparsers.add_parser("list", help="List the tools a server exposes.")
    list_parser.add_argument("url", help="MCP server URL.")
    list_parser.add_argument(
        "-H", "--header", dest="headers", action="append", type=parse_header, default=[],
        help="Request header as 'Key: Value' (repeatable).",
    )

    # call command
    call_parser = subparsers.add_parser("call", help="Call one tool and print its raw result.")
    call_parser.add_argument("url", help="MCP server URL.")
    call_parser.add_argument("tool", help="Tool name.")
    call_parser.add_argument(
        "--args", dest="arguments", type=parse_arguments, default=None,
        help="Tool arguments as a JSON object.",
    )
    call_parser.add_argument(
        "-H", "--header", dest="headers", action="append", type=parse_header, default=[],
        help="Request header as 'Key: Value' (repeatable).",
    )

    # servers command
    servers_parser = subparsers.add_parser("servers", help="Aggregate tools from a config file.")
    servers_parser.add_argument("config", help="Path to mcp_servers.json.")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_bridge()

    commands = {"list": cmd_list, "call": cmd_call, "servers": cmd_servers}
    try:
        return asyncio.run(commands[args.command](args))
    except McpTransportError as e:
        print(f"error ({e.status}): {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
