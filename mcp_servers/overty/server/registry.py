"""
Tool registry with dispatch table for the MCP server.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import NOT_CONNECTED, ToolError
from .types import HandlerFunc, ToolContext, ToolResult

logger = logging.getLogger("mcp.overty.registry")


class ToolRegistry:
    """Registry for tool handlers; session-bound tools are refused while disconnected."""

    def __init__(self) -> None:
        # name -> (handler, requires_session)
        self._handlers: dict[str, tuple[HandlerFunc, bool]] = {}

    def register(self, name: str, handler: HandlerFunc, requires_session: bool = True) -> None:
        self._handlers[name] = (handler, requires_session)

    def register_many(self, handlers: dict[str, tuple[HandlerFunc, bool]]) -> None:
        self._handlers.update(handlers)

    def get(self, name: str) -> tuple[HandlerFunc, bool] | None:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def dispatch(self, name: str, ctx: ToolContext, arguments: dict[str, Any]) -> ToolResult:
        """
        Run the handler registered under ``name``.

        Raises:
            KeyError: If tool not found
            ToolError: If the tool needs a live session and none is connected,
                or the handler itself fails
        """
        handler_info = self._handlers.get(name)
        if handler_info is None:
            raise KeyError(f"Unknown tool: {name}")

        handler, requires_session = handler_info
        if requires_session and not ctx.session.is_connected:
            raise ToolError(NOT_CONNECTED, "Not connected. Call connect first.")

        return handler(ctx, arguments)

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)


def create_default_registry() -> ToolRegistry:
    """Create registry with all default handlers."""
    from .handlers import ALL_HANDLERS

    registry = ToolRegistry()
    registry.register_many(ALL_HANDLERS)
    logger.info("Registered %d tool handlers", len(registry))
    return registry
