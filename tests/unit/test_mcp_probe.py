"""
Unit tests for the mcp-probe command line.
"""

import argparse
import json
import pytest
from unittest.mock import AsyncMock, patch

import mcp_probe
from chat_bridge.tools.mcp.mcp_aggregator import LoadedMCPTools, McpToolSummary
from chat_bridge.tools.mcp.mcp_errors import McpTransportError
from chat_bridge.tools.mcp.mcp_tools import McpCallToolResult, McpToolDescriptor


@pytest.fixture(autouse=True)
def no_process_setup():
    with patch("mcp_probe.configure_bridge"):
        yield


@pytest.mark.unit
class TestArgumentParsing:
    def test_parse_header(self):
        assert mcp_probe.parse_header("Authorization:  Bearer a:b ") == ("Authorization", "Bearer a:b")

    @pytest.mark.parametrize("value", ["no-colon", ": value"])
    def test_parse_header_rejects(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            mcp_probe.parse_header(value)

    def test_parse_arguments(self):
        assert mcp_probe.parse_arguments('{"query": "x"}') == {"query": "x"}
        with pytest.raises(argparse.ArgumentTypeError):
            mcp_probe.parse_arguments("{nope")

    def test_no_command_prints_help(self, capsys):
        assert mcp_probe.main([]) == 0
        assert "mcp-probe" in capsys.readouterr().out


@pytest.mark.unit
class TestCommands:
    def test_list(self, capsys):
        tools = [McpToolDescriptor(name="search", description="Search")]
        with patch("mcp_probe.list_mcp_tools", AsyncMock(return_value=tools)) as list_tools:
            code = mcp_probe.main(["list", "https://mcp.example.com/mcp", "-H", "Authorization: Bearer t"])

        assert code == 0
        server = list_tools.call_args.args[0]
        assert server.headers == [("Authorization", "Bearer t")]
        assert json.loads(capsys.readouterr().out) == [{"name": "search", "description": "Search"}]

    def test_call(self, capsys):
        result = McpCallToolResult(tool_name="search", result={"content": []})
        with patch("mcp_probe.call_mcp_tool", AsyncMock(return_value=result)) as call_tool:
            code = mcp_probe.main(["call", "https://mcp.example.com/mcp", "search", "--args", '{"q": 1}'])

        assert code == 0
        assert call_tool.call_args.args[1:] == ("search", {"q": 1})
        assert json.loads(capsys.readouterr().out) == {"toolName": "search", "result": {"content": []}}

    def test_transport_error_exit_code(self, capsys):
        error = McpTransportError("Invalid MCP server URL: nope", status=400)
        with patch("mcp_probe.list_mcp_tools", AsyncMock(side_effect=error)):
            code = mcp_probe.main(["list", "nope"])

        assert code == 1
        assert capsys.readouterr().err.strip() == "error (400): Invalid MCP server URL: nope"

    def test_servers(self, tmp_path, capsys):
        config = tmp_path / "mcp_servers.json"
        config.write_text(json.dumps({"mcpServers": {"search": {"url": "https://s.example.com/mcp"}}}))
        loaded = LoadedMCPTools(tool_summaries=[McpToolSummary("search", "search")], warnings=["w"])
        loaded.cleanup = AsyncMock()

        with patch("mcp_probe.load_mcp_tools_for_chat", AsyncMock(return_value=loaded)):
            code = mcp_probe.main(["servers", str(config)])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["tools"] == [{"name": "search", "serverId": "search", "description": None}]
        assert output["warnings"] == ["w"]
        loaded.cleanup.assert_awaited_once()

    def test_servers_empty_config(self, tmp_path, capsys):
        assert mcp_probe.main(["servers", str(tmp_path / "missing.json")]) == 1
        assert "No MCP servers configured" in capsys.readouterr().err
