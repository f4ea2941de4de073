"""
Debug session: one live CDP WebSocket to a selected target.

Architecture:
- DebugSession owns the connection, the pending-request table and the per-target state
  (event log, persistent style installs, network in-flight table).
- Commands may be outstanding concurrently: each gets a Future keyed by request id, settled
  by the connection's reader thread.
- Teardown (explicit, on connection loss or on reconnect) rejects every pending command.
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import suppress
from typing import Any

from .config import DEFAULT_STYLE_ID, OvertyConfig
from .errors import (
    CDP_ERROR,
    CDP_UNREACHABLE,
    INVALID_ARG,
    JS_CONTEXT_LOST,
    JS_EXCEPTION,
    NO_TARGETS,
    NOT_CONNECTED,
    TARGET_NOT_FOUND,
    TIMEOUT,
    ToolError,
)
from .events import EventLog, normalize_event
from .http_client import require_loopback
from .js_helpers import outer_html_expression, remove_style_expression, set_css_expression
from .session_cdp import CdpConnection, CdpDisconnectedError, CdpError
from .targets import Target, TargetDirectory, TargetSelection, select_target

logger = logging.getLogger("mcp.overty.session")

SCREENSHOT_FORMATS = ("png", "jpeg", "webp")
DEFAULT_IGNORED_RESOURCE_TYPES = ("EventSource", "WebSocket")
CONTEXT_LOST_MARKERS = (
    "Execution context was destroyed",
    "Cannot find context",
    "Cannot find execution context",
)
NETWORK_SAMPLE_LIMIT = 10
DEFAULT_OUTER_HTML_CHARS = 200_000

ConnectionFactory = Callable[..., Any]


def remote_value(remote: Any) -> Any:
    """Return ``RemoteObject.value`` (``None`` when the object carries no value)."""
    if isinstance(remote, dict):
        return remote.get("value")
    return None


def _clamp_quality(quality: Any) -> int | None:
    if quality is None:
        return None
    try:
        q = float(quality)
    except (TypeError, ValueError) as exc:
        raise ToolError(INVALID_ARG, f"Invalid quality: {quality}") from exc
    if not math.isfinite(q):
        raise ToolError(INVALID_ARG, f"Invalid quality: {quality}")
    return max(0, min(100, int(math.floor(q))))


def _screenshot_format(fmt: Any) -> str:
    value = str(fmt or "png").lower()
    if value not in SCREENSHOT_FORMATS:
        raise ToolError(INVALID_ARG, f"Unsupported format: {value}")
    return value


def _parse_frame_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


class DebugSession:
    """Single live CDP session; reconnecting tears down the previous one first."""

    def __init__(
        self,
        config: OvertyConfig | None = None,
        *,
        directory: TargetDirectory | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.config = config or OvertyConfig()
        self.directory = directory or TargetDirectory(timeout=self.config.http_timeout)
        self._connection_factory: ConnectionFactory = connection_factory or CdpConnection
        self._lock = threading.RLock()
        self._conn: Any = None
        self._next_id = 0
        self._pending: dict[int, Future] = {}
        self.browser_url: str = self.config.browser_url.rstrip("/")
        self.allow_remote = False
        self.target: Target | None = None
        self.events = EventLog()
        self._installed_css: dict[str, dict[str, Any]] = {}
        self._network_enabled = False
        self._inflight: dict[str, dict[str, Any]] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._conn is not None

    def require_connected(self) -> None:
        if not self.is_connected:
            raise ToolError(NOT_CONNECTED, "Not connected. Call connect first.")

    def connect(
        self,
        browser_url: str | None = None,
        *,
        selection: TargetSelection | None = None,
        allow_remote: bool = False,
        navigate_url: str | None = None,
    ) -> dict[str, Any]:
        browser_url = (browser_url or self.config.browser_url).strip().rstrip("/")
        require_loopback(browser_url, allow_remote)

        targets = self.directory.list_targets(browser_url, allow_remote=allow_remote)
        if not targets:
            raise ToolError(
                NO_TARGETS,
                "No CDP targets with webSocketDebuggerUrl found",
                {"browserUrl": browser_url},
            )
        selected = select_target(targets, selection)
        if selected is None:
            raise ToolError(
                TARGET_NOT_FOUND,
                "No target matched the selection",
                {"browserUrl": browser_url, "available": [t.to_dict() for t in targets]},
            )

        self.disconnect()

        try:
            conn = self._connection_factory(
                selected.webSocketDebuggerUrl,
                on_message=self._on_message,
                on_close=self._on_close,
                timeout=self.config.connect_timeout,
            )
        except CdpError as exc:
            raise ToolError(CDP_UNREACHABLE, str(exc), {"target": selected.to_dict()}) from exc

        with self._lock:
            self._conn = conn
            self.target = selected
            self.browser_url = browser_url
            self.allow_remote = allow_remote
            self.events.clear()
            conn.start()
        logger.info("connected target=%s url=%s", selected.id, selected.url)

        for domain in ("Page", "Runtime", "DOM"):
            self.send(f"{domain}.enable")
        try:
            self.send("Log.enable")
        except ToolError as exc:
            logger.debug("Log.enable unsupported: %s", exc)

        if navigate_url:
            self.send("Page.navigate", {"url": str(navigate_url)})

        return {
            "browserUrl": browser_url,
            "selectedTarget": selected.to_dict(),
            "targets": [t.to_dict() for t in targets],
        }

    def disconnect(self, reason: str = "CDP connection closed") -> bool:
        """Tear down the current session; returns whether one was live."""
        return self._teardown(None, reason)

    def _teardown(self, expected: Any, reason: str) -> bool:
        with self._lock:
            conn = self._conn
            if conn is None or (expected is not None and conn is not expected):
                return False
            self._conn = None
            pending = self._pending
            self._pending = {}
            self.target = None
            self._installed_css.clear()
            self._network_enabled = False
            self._inflight.clear()

        for future in pending.values():
            if not future.done():
                future.set_exception(CdpDisconnectedError(reason))
        with suppress(Exception):
            conn.close()
        logger.info("session closed: %s (rejected %d pending)", reason, len(pending))
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Command / event plumbing
    # ─────────────────────────────────────────────────────────────────────────

    def send(self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        """Send one CDP command and block until its response, a timeout or disconnection."""
        wait = self.config.cdp_timeout if timeout is None else timeout
        future: Future = Future()
        with self._lock:
            conn = self._conn
            if conn is None:
                raise ToolError(NOT_CONNECTED, "Not connected to CDP")
            self._next_id += 1
            request_id = self._next_id
            self._pending[request_id] = future

        frame = {"id": request_id, "method": method, "params": params or {}}
        try:
            conn.send_text(json.dumps(frame))
        except CdpDisconnectedError as exc:
            self._drop_pending(request_id)
            raise ToolError(NOT_CONNECTED, str(exc), {"method": method}) from exc
        except CdpError as exc:
            self._drop_pending(request_id)
            raise ToolError(CDP_ERROR, str(exc), {"method": method}) from exc

        try:
            return future.result(timeout=wait)
        except FutureTimeoutError as exc:
            self._drop_pending(request_id)
            raise ToolError(
                TIMEOUT,
                f"CDP timeout waiting for {method}",
                {"method": method, "timeoutMs": int(wait * 1000)},
            ) from exc
        except CdpDisconnectedError as exc:
            raise ToolError(NOT_CONNECTED, str(exc), {"method": method}) from exc
        except CdpError as exc:
            raise ToolError(CDP_ERROR, str(exc), {"method": method}) from exc

    def _drop_pending(self, request_id: int) -> None:
        with self._lock:
            self._pending.pop(request_id, None)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _on_message(self, conn: Any, raw: str) -> None:
        with self._lock:
            if conn is not self._conn:
                return
        try:
            msg = json.loads(raw)
        except ValueError:
            logger.debug("dropping malformed CDP frame: %.200s", raw)
            return
        if not isinstance(msg, dict):
            return

        request_id = _parse_frame_id(msg.get("id"))
        if request_id is not None:
            with self._lock:
                future = self._pending.pop(request_id, None)
            if future is None or future.done():
                return
            error = msg.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else None
                future.set_exception(CdpError(str(message or error)))
            else:
                result = msg.get("result")
                future.set_result(result if isinstance(result, dict) else {})
            return

        method = msg.get("method")
        if isinstance(method, str):
            params = msg.get("params")
            self._on_event(method, params if isinstance(params, dict) else {})

    def _on_close(self, conn: Any) -> None:
        self._teardown(conn, "CDP disconnected")

    def _on_event(self, method: str, params: dict[str, Any]) -> None:
        if method.startswith("Network."):
            self._track_network(method, params)
            return
        event = normalize_event(method, params)
        if event is not None:
            self.events.push(event)

    def _track_network(self, method: str, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if not isinstance(request_id, str):
            return
        with self._lock:
            if not self._network_enabled:
                return
            if method == "Network.requestWillBeSent":
                request = params.get("request") if isinstance(params.get("request"), dict) else {}
                url = request.get("url")
                kind = params.get("type")
                self._inflight[request_id] = {
                    "url": url if isinstance(url, str) else None,
                    "type": kind if isinstance(kind, str) else "Other",
                    "startedAt": time.monotonic(),
                }
            elif method in ("Network.loadingFinished", "Network.loadingFailed"):
                self._inflight.pop(request_id, None)

    def list_events(
        self,
        since_seq: int = 0,
        limit: int = 50,
        types: list[str] | None = None,
        clear: bool = False,
    ) -> list[dict[str, Any]]:
        return self.events.query(since_seq=since_seq, limit=limit, types=types, clear=clear)

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def evaluate(
        self,
        expression: str,
        *,
        await_promise: bool = True,
        return_by_value: bool = True,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Run ``Runtime.evaluate`` and return the result RemoteObject."""
        try:
            res = self.send(
                "Runtime.evaluate",
                {"expression": str(expression), "awaitPromise": await_promise, "returnByValue": return_by_value},
                timeout=timeout,
            )
        except ToolError as exc:
            if exc.code in (TIMEOUT, NOT_CONNECTED):
                raise
            if any(marker in exc.message for marker in CONTEXT_LOST_MARKERS):
                raise ToolError(
                    JS_CONTEXT_LOST, "JavaScript execution context lost (page navigated/reloaded)", exc.message
                ) from exc
            raise ToolError(CDP_ERROR, "CDP Runtime.evaluate failed", exc.message) from exc

        if res.get("exceptionDetails"):
            raise ToolError(JS_EXCEPTION, "JavaScript exception", res["exceptionDetails"])
        result = res.get("result")
        return result if isinstance(result, dict) else {}

    def evaluate_value(self, expression: str, *, timeout: float | None = None) -> Any:
        return remote_value(self.evaluate(expression, timeout=timeout))

    def outer_html(
        self, selector: str | None = None, max_chars: int = DEFAULT_OUTER_HTML_CHARS, timeout: float | None = None
    ) -> dict[str, Any]:
        html = self.evaluate_value(outer_html_expression(selector), timeout=timeout)
        if not isinstance(html, str):
            return {"html": None, "truncated": False, "chars": 0}
        limit = int(max_chars) if max_chars and max_chars > 0 else DEFAULT_OUTER_HTML_CHARS
        if len(html) <= limit:
            return {"html": html, "truncated": False, "chars": len(html)}
        return {"html": html[:limit], "truncated": True, "chars": len(html)}

    # ─────────────────────────────────────────────────────────────────────────
    # Screenshots / viewport
    # ─────────────────────────────────────────────────────────────────────────

    def _capture(self, params: dict[str, Any]) -> str:
        try:
            res = self.send("Page.captureScreenshot", params)
        except ToolError as exc:
            if exc.code in (TIMEOUT, NOT_CONNECTED):
                raise
            raise ToolError(CDP_ERROR, "CDP captureScreenshot failed", exc.message) from exc
        data = res.get("data")
        if not isinstance(data, str):
            raise ToolError(CDP_ERROR, "CDP did not return screenshot data")
        return data

    def screenshot(self, fmt: str = "png", quality: Any = None, full_page: bool = False) -> dict[str, Any]:
        """Capture the viewport (or the whole document) as base64 image data."""
        fmt = _screenshot_format(fmt)
        q = _clamp_quality(quality)
        params: dict[str, Any] = {"format": fmt, "fromSurface": True}
        if q is not None and fmt != "png":
            params["quality"] = q

        fallback = False
        if full_page:
            content = None
            try:
                content = self.send("Page.getLayoutMetrics").get("contentSize")
            except ToolError as exc:
                logger.warning("full-page metrics unavailable, capturing viewport: %s", exc)
            if isinstance(content, dict) and content.get("width") and content.get("height"):
                params["captureBeyondViewport"] = True
                params["clip"] = {"x": 0, "y": 0, "width": content["width"], "height": content["height"], "scale": 1}
            else:
                fallback = True

        result: dict[str, Any] = {"format": fmt, "base64": self._capture(params)}
        if fallback:
            result["fullPageFallback"] = True
        return result

    def screenshot_clip(
        self, x: Any, y: Any, width: Any, height: Any, fmt: str = "png", quality: Any = None
    ) -> dict[str, Any]:
        fmt = _screenshot_format(fmt)
        q = _clamp_quality(quality)
        try:
            nums = [float(v) for v in (x, y, width, height)]
        except (TypeError, ValueError) as exc:
            raise ToolError(INVALID_ARG, "clip x/y/width/height must be finite numbers") from exc
        if not all(math.isfinite(n) for n in nums):
            raise ToolError(INVALID_ARG, "clip x/y/width/height must be finite numbers")
        fx, fy, fw, fh = nums
        if fw <= 0 or fh <= 0:
            raise ToolError(INVALID_ARG, "clip width/height must be > 0")

        clip = {"x": max(0.0, fx), "y": max(0.0, fy), "width": fw, "height": fh, "scale": 1}
        params: dict[str, Any] = {"format": fmt, "fromSurface": True, "captureBeyondViewport": True, "clip": clip}
        if q is not None and fmt != "png":
            params["quality"] = q
        return {"format": fmt, "base64": self._capture(params), "clip": clip}

    def set_viewport(
        self, width: Any, height: Any, device_scale_factor: Any = 1, mobile: bool = False
    ) -> dict[str, Any]:
        try:
            w = math.floor(float(width))
            h = math.floor(float(height))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ToolError(INVALID_ARG, "viewport width/height must be positive integers") from exc
        if w <= 0 or h <= 0:
            raise ToolError(INVALID_ARG, "viewport width/height must be positive integers")
        try:
            scale = float(device_scale_factor if device_scale_factor is not None else 1)
        except (TypeError, ValueError):
            scale = 1.0
        if not math.isfinite(scale) or scale <= 0:
            scale = 1.0
        self.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": w, "height": h, "deviceScaleFactor": scale, "mobile": bool(mobile)},
        )
        return {"width": w, "height": h, "deviceScaleFactor": scale, "mobile": bool(mobile)}

    def clear_viewport(self) -> dict[str, Any]:
        self.send("Emulation.clearDeviceMetricsOverride")
        return {"cleared": True}

    # ─────────────────────────────────────────────────────────────────────────
    # Persistent CSS
    # ─────────────────────────────────────────────────────────────────────────

    def list_installed_css(self) -> list[dict[str, Any]]:
        with self._lock:
            return [{"styleId": style_id, **meta} for style_id, meta in self._installed_css.items()]

    def _remove_registration(self, identifier: str | None) -> None:
        if not identifier:
            return
        try:
            self.send("Page.removeScriptToEvaluateOnNewDocument", {"identifier": identifier})
        except ToolError as exc:
            logger.warning("could not remove style registration %s: %s", identifier, exc)

    def install_css(self, style_id: str | None, css: str, mode: str = "replace") -> dict[str, Any]:
        """Register a style for every future document and apply it to the current one."""
        style_id = (style_id or "").strip() or DEFAULT_STYLE_ID
        css = css if isinstance(css, str) else ""
        mode = "append" if mode == "append" else "replace"

        with self._lock:
            previous = self._installed_css.pop(style_id, None)
        if previous:
            self._remove_registration(previous.get("identifier"))

        expression = set_css_expression(style_id, css, mode)
        try:
            res = self.send("Page.addScriptToEvaluateOnNewDocument", {"source": f"{expression};"})
        except ToolError as exc:
            if exc.code == NOT_CONNECTED:
                raise
            raise ToolError(CDP_ERROR, "Failed to install CSS persistently", exc.message) from exc
        identifier = res.get("identifier") if isinstance(res.get("identifier"), str) else None

        with self._lock:
            self._installed_css[style_id] = {"identifier": identifier, "mode": mode, "length": len(css)}

        applied = self.evaluate_value(expression)
        return {
            "styleId": style_id,
            "identifier": identifier,
            "mode": mode,
            "length": len(css),
            "applied": True,
            "result": applied,
        }

    def uninstall_css(self, style_id: str | None = None, remove_from_page: bool = True) -> dict[str, Any]:
        style_id = (style_id or "").strip() or None
        with self._lock:
            ids = [style_id] if style_id else list(self._installed_css)

        removed: list[dict[str, Any]] = []
        not_installed: list[str] = []
        for sid in ids:
            with self._lock:
                meta = self._installed_css.pop(sid, None)
            if meta is None:
                not_installed.append(sid)
                continue
            self._remove_registration(meta.get("identifier"))
            removed_from_page = None
            if remove_from_page:
                removed_from_page = self.evaluate_value(remove_style_expression(sid))
            removed.append({"styleId": sid, "identifier": meta.get("identifier"), "removedFromPage": removed_from_page})
        return {"removed": removed, "notInstalled": not_installed}

    # ─────────────────────────────────────────────────────────────────────────
    # Network idle
    # ─────────────────────────────────────────────────────────────────────────

    def enable_network(self) -> None:
        if self._network_enabled:
            return
        try:
            self.send("Network.enable")
        except ToolError as exc:
            if exc.code == NOT_CONNECTED:
                raise
            raise ToolError(CDP_ERROR, "Failed to enable Network domain", exc.message) from exc
        with self._lock:
            self._inflight.clear()
            self._network_enabled = True

    def _inflight_snapshot(self) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            return [(rid, dict(info)) for rid, info in self._inflight.items()]

    def wait_for_network_idle(
        self,
        idle_ms: int = 500,
        timeout_ms: int = 30_000,
        poll_ms: int = 100,
        max_inflight: int = 0,
        ignore_resource_types: list[str] | None = None,
    ) -> dict[str, Any]:
        """Block until at most ``max_inflight`` relevant requests stay in flight for ``idle_ms``."""
        idle_ms = max(0, int(idle_ms))
        timeout_ms = max(0, int(timeout_ms))
        poll_ms = max(10, int(poll_ms))
        max_inflight = max(0, int(max_inflight))
        ignored = list(DEFAULT_IGNORED_RESOURCE_TYPES if ignore_resource_types is None else map(str, ignore_resource_types))
        ignored_set = set(ignored)
        options = {
            "timeoutMs": timeout_ms,
            "idleMs": idle_ms,
            "pollMs": poll_ms,
            "maxInflight": max_inflight,
            "ignoreResourceTypes": ignored,
        }

        self.enable_network()

        start = time.monotonic()
        idle_since: float | None = None
        while True:
            now = time.monotonic()
            snapshot = self._inflight_snapshot()
            relevant = [(rid, info) for rid, info in snapshot if info.get("type", "Other") not in ignored_set]

            if timeout_ms > 0 and (now - start) * 1000 > timeout_ms:
                sample = [
                    {
                        "requestId": rid,
                        "type": info.get("type", "Other"),
                        "url": info.get("url"),
                        "ageMs": int((now - info["startedAt"]) * 1000) if "startedAt" in info else None,
                    }
                    for rid, info in relevant[:NETWORK_SAMPLE_LIMIT]
                ]
                raise ToolError(TIMEOUT, "Timed out waiting for network idle", {**options, "sampleInFlight": sample})

            if len(relevant) <= max_inflight:
                if idle_since is None:
                    idle_since = now
                if (now - idle_since) * 1000 >= idle_ms:
                    return {
                        **options,
                        "totalInflight": len(snapshot),
                        "inflight": len(relevant),
                        "ignoredInflight": len(snapshot) - len(relevant),
                    }
            else:
                idle_since = None

            time.sleep(poll_ms / 1000.0)
