"""
Structured errors shared by the session, the QA engine and the tool handlers.

Tool-tier failures carry a stable symbolic code so agents can branch on them;
protocol-tier failures carry a JSON-RPC numeric code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

NOT_CONNECTED = "OVERTY_NOT_CONNECTED"
INVALID_ARG = "OVERTY_INVALID_ARG"
REMOTE_NOT_ALLOWED = "OVERTY_REMOTE_NOT_ALLOWED"
NO_TARGETS = "OVERTY_NO_TARGETS"
TARGET_NOT_FOUND = "OVERTY_TARGET_NOT_FOUND"
CDP_UNREACHABLE = "OVERTY_CDP_UNREACHABLE"
CDP_ERROR = "OVERTY_CDP_ERROR"
JS_EXCEPTION = "OVERTY_JS_EXCEPTION"
JS_CONTEXT_LOST = "OVERTY_JS_CONTEXT_LOST"
TIMEOUT = "OVERTY_TIMEOUT"
NOT_FOUND = "OVERTY_NOT_FOUND"
IO_ERROR = "OVERTY_IO_ERROR"
INTERNAL = "OVERTY_INTERNAL"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


@dataclass
class ToolError(Exception):
    """Tool-tier failure returned to the agent as an error result."""

    code: str
    message: str
    details: Any = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class JsonRpcError(Exception):
    """Protocol-tier failure rendered as a JSON-RPC error envelope."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
