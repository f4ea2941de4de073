"""Raw CDP WebSocket connection with a background reader thread."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable
from contextlib import suppress

import websocket

logger = logging.getLogger("mcp.overty.cdp")


class CdpError(Exception):
    """A CDP command failed (error response, write failure or no connection)."""


class CdpDisconnectedError(CdpError):
    pass


MessageHandler = Callable[["CdpConnection", str], None]
CloseHandler = Callable[["CdpConnection"], None]


class CdpConnection:
    """Low-level CDP WebSocket connection.

    Frames are read on a daemon thread and handed to ``on_message`` together with
    the connection itself, so the owner can ignore frames from a superseded socket.
    The reader only runs after ``start()``; owners register the connection first so
    an immediate close still reaches them.
    """

    def __init__(
        self,
        ws_url: str,
        *,
        on_message: MessageHandler,
        on_close: CloseHandler,
        timeout: float = 5.0,
    ) -> None:
        if not ws_url:
            raise CdpError("Missing webSocketDebuggerUrl")
        self.ws_url = ws_url
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout, suppress_origin=True)
        except Exception as exc:  # noqa: BLE001
            raise CdpError(f"WebSocket error connecting to {ws_url}: {exc}") from exc
        # Blocking reads; per-command deadlines are enforced by the session.
        self.ws.settimeout(None)
        self._on_message = on_message
        self._on_close = on_close
        self._send_lock = threading.Lock()
        self._closed = threading.Event()
        self._reader = threading.Thread(target=self._read_loop, name="overty-cdp-reader", daemon=True)

    def start(self) -> None:
        if not self._reader.is_alive() and not self._closed.is_set():
            self._reader.start()

    def send_text(self, payload: str) -> None:
        if self._closed.is_set():
            raise CdpDisconnectedError("CDP connection closed")
        try:
            with self._send_lock:
                self.ws.send(payload)
        except Exception as exc:  # noqa: BLE001
            raise CdpError(str(exc)) from exc

    def _read_loop(self) -> None:
        try:
            while not self._closed.is_set():
                try:
                    raw = self.ws.recv()
                except websocket.WebSocketConnectionClosedException:
                    break
                except (OSError, websocket.WebSocketException) as exc:
                    if not self._closed.is_set():
                        logger.debug("cdp reader stopped: %s", exc)
                    break
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                if not raw:
                    continue
                try:
                    self._on_message(self, raw)
                except Exception:  # noqa: BLE001
                    logger.exception("cdp message handler failed")
        finally:
            self._closed.set()
            with suppress(Exception):
                self._on_close(self)

    def close(self) -> None:
        """Best-effort hard close; unblocks the reader thread."""
        if self._closed.is_set():
            return
        self._closed.set()
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
        with suppress(Exception):
            self.ws.close(timeout=0.2)
