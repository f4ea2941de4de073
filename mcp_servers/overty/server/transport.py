"""
Newline-delimited JSON-RPC 2.0 over a byte stream (stdio by default).

Messages are handled strictly one at a time on the reading thread, so handler N+1
never starts before handler N has produced its response.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from typing import IO, Any

from ..errors import INTERNAL_ERROR, INVALID_REQUEST, PARSE_ERROR, JsonRpcError

logger = logging.getLogger("mcp.overty.transport")

RequestHandler = Callable[[dict[str, Any]], Any]


def error_envelope(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    valid_id = request_id if isinstance(request_id, (str, int)) and not isinstance(request_id, bool) else None
    return {"jsonrpc": "2.0", "id": valid_id, "error": error}


class JsonRpcLineServer:
    def __init__(
        self,
        handler: RequestHandler,
        *,
        stdin: IO[bytes] | None = None,
        stdout: IO[bytes] | None = None,
    ) -> None:
        self._handler = handler
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._trace = bool(os.environ.get("OVERTY_TRACE"))

    def send(self, message: dict[str, Any]) -> None:
        """Write one JSON-RPC message as a single line on the output stream."""
        line = (json.dumps(message, ensure_ascii=False) + "\n").encode()
        self._stdout.write(line)
        self._stdout.flush()

    def serve(self) -> None:
        """Read until EOF, answering each complete line before reading the next."""
        for raw in self._stdin:
            response = self.handle_line(raw)
            if response is not None:
                self.send(response)
        logger.info("stdin closed; transport stopping")

    def handle_line(self, raw: bytes | str) -> dict[str, Any] | None:
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        text = text.rstrip("\n").rstrip("\r")
        if not text.strip():
            return None
        try:
            msg = json.loads(text)
        except ValueError as exc:
            return error_envelope(None, PARSE_ERROR, "Parse error", str(exc))
        if self._trace:
            logger.info("recv %s", msg.get("method") if isinstance(msg, dict) else type(msg).__name__)
        return self.handle_message(msg)

    def handle_message(self, msg: Any) -> dict[str, Any] | None:
        has_id = isinstance(msg, dict) and "id" in msg
        request_id = msg.get("id") if has_id else None

        if not isinstance(msg, dict) or msg.get("jsonrpc") != "2.0":
            return error_envelope(request_id, INVALID_REQUEST, "Invalid Request")

        if not isinstance(msg.get("method"), str):
            return error_envelope(request_id, INVALID_REQUEST, "Invalid Request") if has_id else None

        if not has_id:
            try:
                self._handler(msg)
            except Exception:  # noqa: BLE001
                logger.exception("notification handler failed method=%s", msg["method"])
            return None

        try:
            result = self._handler(msg)
        except JsonRpcError as exc:
            return error_envelope(request_id, exc.code, exc.message, exc.data)
        except Exception as exc:  # noqa: BLE001
            logger.exception("request handler failed method=%s", msg["method"])
            return error_envelope(request_id, INTERNAL_ERROR, "Internal error", str(exc))
        return {"jsonrpc": "2.0", "id": request_id, "result": result}
