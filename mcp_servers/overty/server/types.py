"""
Type definitions for MCP tool results and handler context.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..artifacts import ArtifactWriter
    from ..config import OvertyConfig
    from ..errors import ToolError
    from ..session import DebugSession
    from ..targets import TargetDirectory


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution: human-readable content plus a structured payload."""

    content: list[ToolContent] = field(default_factory=list)
    structured: dict[str, Any] | None = None
    is_error: bool = False

    @classmethod
    def text(cls, text: str, structured: dict[str, Any] | None = None) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=text)], structured=structured)

    @classmethod
    def json(cls, data: dict[str, Any]) -> ToolResult:
        """Text content is the JSON rendering of ``data``; ``data`` is also the structured payload."""
        return cls.text(json.dumps(data, ensure_ascii=False, indent=2), structured=data)

    @classmethod
    def error(cls, err: ToolError) -> ToolResult:
        return cls(
            content=[ToolContent(type="text", text=str(err))],
            structured={"error": err.to_dict()},
            is_error=True,
        )

    def add_image(self, data_b64: str, mime_type: str) -> ToolResult:
        self.content.append(ToolContent(type="image", data=data_b64, mime_type=mime_type))
        return self

    def to_content_list(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self.content]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": self.to_content_list()}
        if self.structured is not None:
            payload["structuredContent"] = self.structured
        if self.is_error:
            payload["isError"] = True
        return payload


@dataclass(slots=True)
class ToolContext:
    """Everything a handler may touch; built once per server process."""

    config: OvertyConfig
    session: DebugSession
    directory: TargetDirectory
    artifacts: ArtifactWriter


HandlerFunc = Callable[[ToolContext, dict[str, Any]], ToolResult]
