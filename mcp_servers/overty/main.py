"""
MCP server bridging an agent to a Chrome DevTools Protocol endpoint for visual QA.

This module provides the main entry point and protocol handling.
Tool dispatch is handled via registry pattern in server/registry.py.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import sys
from typing import Any

from .artifacts import ArtifactWriter
from .config import OvertyConfig
from .errors import INTERNAL, INVALID_PARAMS, METHOD_NOT_FOUND, JsonRpcError, ToolError
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.registry import create_default_registry
from .server.transport import JsonRpcLineServer
from .server.types import ToolContext, ToolResult
from .session import DebugSession
from .sidecar import SidecarSupervisor
from .targets import TargetDirectory

logger = logging.getLogger("mcp.overty")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "configure_logging",
    "main",
]


def configure_logging(debug: bool = False) -> None:
    """Route all logging to stderr; stdout carries protocol frames only."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )


class McpServer:
    """MCP Server with registry-based tool dispatch."""

    def __init__(self, config: OvertyConfig | None = None, *, session: DebugSession | None = None) -> None:
        self.config = config or OvertyConfig.from_env()
        self.session = session or DebugSession(
            self.config, directory=TargetDirectory(timeout=self.config.http_timeout)
        )
        self.context = ToolContext(
            config=self.config,
            session=self.session,
            directory=self.session.directory,
            artifacts=ArtifactWriter(self.config.output_roots),
        )
        self.registry = create_default_registry()

    def handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        protocol = select_protocol(params.get("protocolVersion"))
        logger.info("initialize protocol=%s", protocol)
        return initialize_result(protocol, self.config.browser_url)

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        logger.info("tool=%s args=%s", name, sorted(arguments))

    def handle_call_tool(self, name: Any, arguments: Any) -> dict[str, Any]:
        """Run one tool; tool failures become error results, never protocol errors."""
        if not isinstance(name, str) or not self.registry.has(name):
            raise JsonRpcError(INVALID_PARAMS, f"Tool not found: {name}")
        args = arguments if isinstance(arguments, dict) else {}
        self._log_call(name, args)

        try:
            result = self.registry.dispatch(name, self.context, args)
        except ToolError as e:
            logger.info("tool_error tool=%s code=%s message=%s", name, e.code, e.message)
            result = ToolResult.error(e)
        except Exception as exc:  # noqa: BLE001
            logger.exception("tool_call_failed tool=%s", name)
            result = ToolResult.error(ToolError(INTERNAL, str(exc) or exc.__class__.__name__))
        return result.to_dict()

    def handle_request(self, message: dict[str, Any]) -> Any:
        """Route one JSON-RPC message; the return value becomes ``result``."""
        method = message.get("method")
        params = message.get("params")
        params = params if isinstance(params, dict) else {}

        if method == "initialize":
            return self.handle_initialize(params)
        if method == "notifications/initialized":
            return None
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": tools_list()}
        if method == "tools/call":
            return self.handle_call_tool(params.get("name"), params.get("arguments"))
        raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def shutdown(self, reason: str = "server shutdown") -> None:
        with contextlib.suppress(Exception):
            self.session.disconnect(reason)


def main() -> None:
    """Main entry point for MCP server."""
    config = OvertyConfig.from_env()
    configure_logging(config.debug)

    sidecar: SidecarSupervisor | None = None
    if config.with_sidecar:
        sidecar = SidecarSupervisor(config)
        sidecar.start()

    server = McpServer(config)

    def _terminate(signum: int, _frame: Any) -> None:
        logger.info("received signal %s; shutting down", signum)
        server.shutdown("signal")
        if sidecar is not None:
            sidecar.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, _terminate)
    signal.signal(signal.SIGTERM, _terminate)

    logger.info("overty MCP server ready (browserUrl=%s)", config.browser_url)
    try:
        JsonRpcLineServer(server.handle_request).serve()
    finally:
        server.shutdown()
        if sidecar is not None:
            sidecar.stop()


if __name__ == "__main__":
    main()
