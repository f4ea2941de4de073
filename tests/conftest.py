from __future__ import annotations

import base64
import json
import threading
from collections.abc import Callable, Iterator
from io import BytesIO
from pathlib import Path
from typing import Any

import pytest
from PIL import Image

from mcp_servers.overty.artifacts import ArtifactWriter
from mcp_servers.overty.config import OvertyConfig
from mcp_servers.overty.errors import ToolError
from mcp_servers.overty.server.types import ToolContext
from mcp_servers.overty.session import DebugSession
from mcp_servers.overty.session_cdp import CdpDisconnectedError
from mcp_servers.overty.targets import Target

NO_REPLY = object()


def png_bytes(width: int = 4, height: int = 3, color: tuple[int, int, int, int] = (255, 255, 255, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def png_b64(width: int = 4, height: int = 3) -> str:
    return base64.b64encode(png_bytes(width, height)).decode("ascii")


class FakeCdpError(Exception):
    pass


class FakeBrowser:
    """Scripted CDP endpoint: answers commands synchronously unless told to defer or drop them."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.handlers: dict[str, Callable[[dict[str, Any]], Any]] = {}
        self.connections: list[FakeConnection] = []
        self.defer = False
        self.deferred: list[tuple[FakeConnection, dict[str, Any]]] = []
        self.expression_values: dict[str, Any] = {}
        self.expression_effects: dict[str, Callable[[], Any]] = {}
        self.scripts: dict[str, str] = {}
        self.styles: dict[str, str] = {}
        self.content_size: dict[str, Any] | None = {"width": 800, "height": 2000}
        self.screenshot_data = png_b64()
        self.drop_on_start = False
        self._script_seq = 0

    # plumbing
    def factory(self, ws_url: str, *, on_message: Any, on_close: Any, timeout: float) -> FakeConnection:
        conn = FakeConnection(self, ws_url, on_message, on_close)
        self.connections.append(conn)
        return conn

    @property
    def conn(self) -> FakeConnection:
        return self.connections[-1]

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    def emit(self, method: str, params: dict[str, Any] | None = None) -> None:
        self.conn.deliver({"method": method, "params": params or {}})

    def flush(self, reverse: bool = False) -> None:
        items = list(reversed(self.deferred)) if reverse else list(self.deferred)
        self.deferred.clear()
        for conn, frame in items:
            conn.deliver(frame)

    def reload(self) -> None:
        """New document: live styles vanish, registered new-document scripts run again."""
        self.styles.clear()
        for source in self.scripts.values():
            self._run(source.rstrip(";"))

    # command handling
    def handle(self, conn: FakeConnection, frame: dict[str, Any]) -> None:
        method = frame["method"]
        params = frame.get("params") or {}
        self.calls.append((method, params))
        try:
            result = self._dispatch(method, params)
        except FakeCdpError as exc:
            reply: dict[str, Any] = {"id": frame["id"], "error": {"code": -32000, "message": str(exc)}}
        else:
            if result is NO_REPLY:
                return
            reply = {"id": frame["id"], "result": result}
        if self.defer:
            self.deferred.append((conn, reply))
        else:
            conn.deliver(reply)

    def _dispatch(self, method: str, params: dict[str, Any]) -> Any:
        if method in self.handlers:
            return self.handlers[method](params)
        if method == "Runtime.evaluate":
            return {"result": self._evaluate(params.get("expression", ""))}
        if method == "Page.captureScreenshot":
            return {"data": self.screenshot_data}
        if method == "Page.getLayoutMetrics":
            return {"contentSize": self.content_size} if self.content_size else {}
        if method == "Page.addScriptToEvaluateOnNewDocument":
            self._script_seq += 1
            identifier = str(self._script_seq)
            self.scripts[identifier] = params["source"]
            return {"identifier": identifier}
        if method == "Page.removeScriptToEvaluateOnNewDocument":
            self.scripts.pop(params["identifier"], None)
            return {}
        return {}

    def _run(self, expression: str) -> Any:
        effect = self.expression_effects.get(expression)
        if effect is not None:
            return effect()
        return self.expression_values.get(expression)

    def _evaluate(self, expression: str) -> dict[str, Any]:
        value = self._run(expression)
        if value is None:
            return {"type": "undefined"}
        return {"type": type(value).__name__, "value": value}


class FakeConnection:
    def __init__(self, browser: FakeBrowser, ws_url: str, on_message: Any, on_close: Any) -> None:
        self.browser = browser
        self.ws_url = ws_url
        self._on_message = on_message
        self._on_close = on_close
        self.closed = False
        self.started = False

    def start(self) -> None:
        self.started = True
        if self.browser.drop_on_start:
            self.drop()

    def send_text(self, text: str) -> None:
        if self.closed:
            raise CdpDisconnectedError("CDP connection closed")
        self.browser.handle(self, json.loads(text))

    def deliver(self, frame: dict[str, Any]) -> None:
        self._on_message(self, json.dumps(frame))

    def drop(self) -> None:
        """Simulate the socket dying under the session."""
        self.closed = True
        self._on_close(self)

    def close(self) -> None:
        self.closed = True


def make_target(target_id: str, *, kind: str = "page", title: str = "", url: str = "about:blank") -> Target:
    return Target(
        id=target_id,
        type=kind,
        title=title,
        url=url,
        webSocketDebuggerUrl=f"ws://127.0.0.1:9222/devtools/page/{target_id}",
    )


class FakeDirectory:
    def __init__(self, targets: list[Target] | None = None) -> None:
        self.targets = list(targets) if targets is not None else [make_target("page-1", title="App")]
        self.closed: list[str] = []
        self.activated: list[str] = []
        self.fail_close = False
        self._seq = 0

    def list_targets(self, browser_url: str, *, allow_remote: bool = False) -> list[Target]:
        return list(self.targets)

    def new_page(self, browser_url: str, url: str = "about:blank", *, allow_remote: bool = False) -> Target:
        self._seq += 1
        target = make_target(f"new-{self._seq}", url=url)
        self.targets.append(target)
        return target

    def activate(self, browser_url: str, target_id: str, *, allow_remote: bool = False) -> str:
        self.activated.append(target_id)
        return "Target activated"

    def close(self, browser_url: str, target_id: str, *, allow_remote: bool = False) -> str:
        if self.fail_close:
            raise ToolError("OVERTY_CDP_ERROR", f"Could not close target {target_id}")
        self.closed.append(target_id)
        self.targets = [t for t in self.targets if t.id != target_id]
        return "Target is closing"


@pytest.fixture()
def config(tmp_path: Path) -> OvertyConfig:
    out = tmp_path / "output"
    return OvertyConfig(
        cdp_timeout=2.0,
        screenshot_dir=str(out / "screenshots"),
        mockup_dir=str(out / "mockups"),
        bundle_dir=str(out / "bundles"),
        matrix_dir=str(out / "qa-matrix"),
        diff_dir=str(out / "diffs"),
    )


@pytest.fixture()
def browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture()
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture()
def session(config: OvertyConfig, browser: FakeBrowser, directory: FakeDirectory) -> Iterator[DebugSession]:
    s = DebugSession(config, directory=directory, connection_factory=browser.factory)
    yield s
    s.disconnect("test teardown")


@pytest.fixture()
def connected(session: DebugSession) -> DebugSession:
    session.connect("http://127.0.0.1:9222")
    return session


@pytest.fixture()
def ctx(config: OvertyConfig, session: DebugSession, directory: FakeDirectory) -> ToolContext:
    return ToolContext(
        config=config,
        session=session,
        directory=directory,
        artifacts=ArtifactWriter(config.output_roots),
    )


def run_in_thread(fn: Callable[[], Any]) -> tuple[threading.Thread, dict[str, Any]]:
    """Run ``fn`` on a worker thread, capturing its return value or exception."""
    box: dict[str, Any] = {}

    def target() -> None:
        try:
            box["value"] = fn()
        except Exception as exc:  # noqa: BLE001
            box["error"] = exc

    t = threading.Thread(target=target, daemon=True)
    t.start()
    return t, box
