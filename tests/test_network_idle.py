from __future__ import annotations

import threading
import time

import pytest
from conftest import FakeBrowser

from mcp_servers.overty.errors import ToolError
from mcp_servers.overty.session import DebugSession


def _request(browser: FakeBrowser, request_id: str, kind: str = "XHR", url: str = "http://localhost/api") -> None:
    browser.emit("Network.requestWillBeSent", {"requestId": request_id, "type": kind, "request": {"url": url}})


def test_requests_before_enable_are_not_tracked(connected: DebugSession, browser: FakeBrowser) -> None:
    _request(browser, "early")
    res = connected.wait_for_network_idle(idle_ms=0, timeout_ms=1000, poll_ms=10)

    assert browser.methods().count("Network.enable") == 1
    assert res["totalInflight"] == 0


def test_waits_until_requests_finish(connected: DebugSession, browser: FakeBrowser) -> None:
    connected.enable_network()
    _request(browser, "r1", "Document", "http://localhost/")
    _request(browser, "r2", "Fetch", "http://localhost/data.json")

    def finish() -> None:
        time.sleep(0.1)
        browser.emit("Network.loadingFinished", {"requestId": "r1"})
        browser.emit("Network.loadingFailed", {"requestId": "r2"})

    worker = threading.Thread(target=finish, daemon=True)
    worker.start()
    started = time.monotonic()
    res = connected.wait_for_network_idle(idle_ms=50, timeout_ms=3000, poll_ms=10)
    worker.join(1)

    assert time.monotonic() - started >= 0.1
    assert res["inflight"] == 0
    assert res["idleMs"] == 50
    assert browser.methods().count("Network.enable") == 1


def test_timeout_reports_in_flight_sample(connected: DebugSession, browser: FakeBrowser) -> None:
    connected.enable_network()
    _request(browser, "slow", "XHR", "http://localhost/slow")

    with pytest.raises(ToolError) as exc:
        connected.wait_for_network_idle(idle_ms=0, timeout_ms=100, poll_ms=10)

    assert exc.value.code == "OVERTY_TIMEOUT"
    sample = exc.value.details["sampleInFlight"]
    assert [(s["requestId"], s["type"], s["url"]) for s in sample] == [("slow", "XHR", "http://localhost/slow")]
    assert sample[0]["ageMs"] >= 100


def test_ignored_resource_types(connected: DebugSession, browser: FakeBrowser) -> None:
    connected.enable_network()
    _request(browser, "ws", "WebSocket", "ws://localhost/live")

    res = connected.wait_for_network_idle(idle_ms=0, timeout_ms=1000, poll_ms=10)
    assert res == {
        "timeoutMs": 1000,
        "idleMs": 0,
        "pollMs": 10,
        "maxInflight": 0,
        "ignoreResourceTypes": ["EventSource", "WebSocket"],
        "totalInflight": 1,
        "inflight": 0,
        "ignoredInflight": 1,
    }

    with pytest.raises(ToolError):
        connected.wait_for_network_idle(idle_ms=0, timeout_ms=50, poll_ms=10, ignore_resource_types=[])


def test_max_inflight_allows_background_requests(connected: DebugSession, browser: FakeBrowser) -> None:
    connected.enable_network()
    _request(browser, "poll", "XHR")
    res = connected.wait_for_network_idle(idle_ms=0, timeout_ms=1000, poll_ms=10, max_inflight=1)
    assert res["inflight"] == 1


def test_tracking_resets_on_reconnect(session: DebugSession, browser: FakeBrowser) -> None:
    session.connect("http://127.0.0.1:9222")
    session.enable_network()
    _request(browser, "r1")
    session.connect("http://127.0.0.1:9222")

    res = session.wait_for_network_idle(idle_ms=0, timeout_ms=1000, poll_ms=10)
    assert res["totalInflight"] == 0
    assert browser.methods().count("Network.enable") == 2
