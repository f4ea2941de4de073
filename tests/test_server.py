from __future__ import annotations

import io
import json
from typing import Any

import pytest

from mcp_servers.overty.config import OvertyConfig
from mcp_servers.overty.errors import JsonRpcError, ToolError
from mcp_servers.overty.main import McpServer
from mcp_servers.overty.server.contract import tools_list
from mcp_servers.overty.server.registry import ToolRegistry, create_default_registry
from mcp_servers.overty.server.transport import JsonRpcLineServer
from mcp_servers.overty.server.types import ToolResult
from mcp_servers.overty.session import DebugSession

SESSION_FREE_TOOLS = {
    "connect",
    "list_targets",
    "open_page",
    "close_target",
    "wait_for",
    "list_events",
    "list_installed_css",
    "visual_diff",
    "render_html_mockups",
}


@pytest.fixture()
def server(config: OvertyConfig, session: DebugSession) -> McpServer:
    return McpServer(config, session=session)


def _call(server: McpServer, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    return server.handle_request({"method": "tools/call", "params": {"name": name, "arguments": arguments or {}}})


def test_initialize_echoes_protocol(server: McpServer) -> None:
    res = server.handle_request({"method": "initialize", "params": {"protocolVersion": "2099-01-01"}})
    assert res["protocolVersion"] == "2099-01-01"
    assert res["serverInfo"] == {"name": "overty", "version": "0.1.0"}
    assert res["capabilities"] == {"tools": {}}
    assert "allowRemote=true" in res["instructions"]

    default = server.handle_request({"method": "initialize", "params": {}})
    assert default["protocolVersion"] == "2025-06-18"


def test_ping_and_initialized(server: McpServer) -> None:
    assert server.handle_request({"method": "ping"}) == {}
    assert server.handle_request({"method": "notifications/initialized"}) is None


def test_unknown_method(server: McpServer) -> None:
    with pytest.raises(JsonRpcError) as exc:
        server.handle_request({"method": "resources/list"})
    assert exc.value.code == -32601
    assert exc.value.message == "Method not found: resources/list"


def test_unknown_tool_is_protocol_error(server: McpServer) -> None:
    with pytest.raises(JsonRpcError) as exc:
        _call(server, "teleport")
    assert exc.value.code == -32602
    assert exc.value.message == "Tool not found: teleport"


def test_tools_list_matches_registry(server: McpServer) -> None:
    tools = server.handle_request({"method": "tools/list"})["tools"]
    names = [t["name"] for t in tools]

    assert len(names) == 24
    assert len(set(names)) == 24
    assert set(names) == set(create_default_registry().tool_names)
    for tool in tools:
        assert tool["inputSchema"]["type"] == "object"
        assert tool["description"]


def test_session_requirements() -> None:
    registry = create_default_registry()
    free = {name for name in registry.tool_names if not registry.get(name)[1]}  # type: ignore[index]
    assert free == SESSION_FREE_TOOLS


def test_session_tool_refused_while_disconnected(server: McpServer) -> None:
    res = _call(server, "take_screenshot")
    assert res["isError"] is True
    assert res["structuredContent"]["error"]["code"] == "OVERTY_NOT_CONNECTED"
    assert res["content"][0]["text"].startswith("[OVERTY_NOT_CONNECTED]")


def test_handler_crash_becomes_internal_error(server: McpServer) -> None:
    def explode(ctx: Any, args: dict[str, Any]) -> ToolResult:
        raise ValueError("unexpected")

    server.registry.register("list_events", explode, requires_session=False)
    res = _call(server, "list_events")
    assert res["isError"] is True
    assert res["structuredContent"]["error"] == {"code": "OVERTY_INTERNAL", "message": "unexpected"}


def test_non_dict_arguments_are_treated_as_empty(server: McpServer) -> None:
    res = server.handle_request({"method": "tools/call", "params": {"name": "list_events", "arguments": [1]}})
    assert res["content"][0]["text"] == "Events: 0"
    assert res["structuredContent"] == {"events": []}


def test_connected_tool_call(server: McpServer) -> None:
    res = _call(server, "connect", {"browserUrl": "http://localhost:9222"})
    assert "isError" not in res
    assert res["content"][0]["text"].splitlines()[0] == "Connected to http://localhost:9222"
    assert res["structuredContent"]["selectedTarget"]["id"] == "page-1"

    shot = _call(server, "take_screenshot")
    assert shot["content"][0]["type"] == "image"
    assert shot["content"][0]["mimeType"] == "image/png"


def test_registry_dispatch() -> None:
    registry = ToolRegistry()
    registry.register("echo", lambda ctx, args: ToolResult.json(args), requires_session=False)

    assert registry.has("echo")
    assert len(registry) == 1
    with pytest.raises(KeyError):
        registry.dispatch("missing", None, {})  # type: ignore[arg-type]
    assert registry.dispatch("echo", None, {"a": 1}).structured == {"a": 1}  # type: ignore[arg-type]


def test_tool_error_result_shape() -> None:
    res = ToolResult.error(ToolError("OVERTY_TIMEOUT", "slow", {"timeoutMs": 5})).to_dict()
    assert res == {
        "content": [{"type": "text", "text": "[OVERTY_TIMEOUT] slow"}],
        "structuredContent": {"error": {"code": "OVERTY_TIMEOUT", "message": "slow", "details": {"timeoutMs": 5}}},
        "isError": True,
    }


def test_stdio_round_trip(server: McpServer) -> None:
    requests = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2025-03-26"}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "nope"}},
        {"jsonrpc": "2.0", "id": 3, "method": "tools/list"},
    ]
    stdin = io.BytesIO("".join(json.dumps(r) + "\n" for r in requests).encode())
    stdout = io.BytesIO()
    JsonRpcLineServer(server.handle_request, stdin=stdin, stdout=stdout).serve()

    out = [json.loads(line) for line in stdout.getvalue().decode().splitlines()]
    assert [r["id"] for r in out] == [1, 2, 3]
    assert out[0]["result"]["protocolVersion"] == "2025-03-26"
    assert out[1]["error"]["code"] == -32602
    assert len(out[2]["result"]["tools"]) == len(tools_list())
