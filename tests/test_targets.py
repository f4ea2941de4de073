from __future__ import annotations

from typing import Any

import pytest
from conftest import make_target

from mcp_servers.overty import targets as targets_mod
from mcp_servers.overty.errors import ToolError
from mcp_servers.overty.http_client import HttpClientError, is_loopback_host, require_loopback
from mcp_servers.overty.targets import Target, TargetDirectory, TargetSelection, select_target


def _targets() -> list[Target]:
    return [
        make_target("sw", kind="service_worker", title="Worker", url="http://localhost/sw.js"),
        make_target("a", title="Dashboard", url="http://localhost:3000/dash"),
        make_target("b", title="Settings", url="http://localhost:3000/settings"),
    ]


def test_default_prefers_first_page() -> None:
    assert select_target(_targets()).id == "a"


def test_default_falls_back_to_first_target() -> None:
    only = [make_target("w", kind="worker")]
    assert select_target(only).id == "w"


def test_selection_priority() -> None:
    ts = _targets()
    assert select_target(ts, TargetSelection(target_id="b", url_substring="dash")).id == "b"
    assert select_target(ts, TargetSelection(url_substring="settings")).id == "b"
    assert select_target(ts, TargetSelection(title_substring="Worker")).id == "sw"
    assert select_target(ts, TargetSelection(index=2)).id == "b"


def test_explicit_selection_without_match() -> None:
    ts = _targets()
    assert select_target(ts, TargetSelection(target_id="zzz")) is None
    assert select_target(ts, TargetSelection(url_substring="nowhere")) is None
    assert select_target(ts, TargetSelection(index=9)) is None
    assert select_target([]) is None


@pytest.mark.parametrize("host", ["localhost", "127.0.0.1", "127.8.9.10", "::1", "[::1]", "LOCALHOST"])
def test_loopback_hosts(host: str) -> None:
    assert is_loopback_host(host)


@pytest.mark.parametrize("host", ["10.0.0.1", "example.com", "", None, "::2"])
def test_non_loopback_hosts(host: str | None) -> None:
    assert not is_loopback_host(host)


def test_require_loopback() -> None:
    assert require_loopback("127.0.0.1:9222/", False) == "http://127.0.0.1:9222"
    assert require_loopback("http://example.com:9222", True) == "http://example.com:9222"

    with pytest.raises(ToolError) as exc:
        require_loopback("http://example.com:9222", False)
    assert exc.value.code == "OVERTY_REMOTE_NOT_ALLOWED"

    with pytest.raises(ToolError) as exc:
        require_loopback("ftp://localhost", False)
    assert exc.value.code == "OVERTY_INVALID_ARG"


class _FakeHttp:
    def __init__(self, responses: dict[tuple[str, str], Any]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    def fetch_json(self, url: str, method: str = "GET", *, timeout: float = 5.0) -> Any:
        self.calls.append((method, url))
        value = self.responses.get((method, url))
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise HttpClientError(f"HTTP 404 from {url}", status=404)
        return value

    def fetch_text(self, url: str, method: str = "GET", *, timeout: float = 5.0) -> str:
        return str(self.fetch_json(url, method, timeout=timeout))


@pytest.fixture()
def fake_http(monkeypatch: pytest.MonkeyPatch) -> _FakeHttp:
    http = _FakeHttp({})
    monkeypatch.setattr(targets_mod, "http_fetch_json", http.fetch_json)
    monkeypatch.setattr(targets_mod, "http_fetch_text", http.fetch_text)
    return http


def test_list_targets_falls_back_to_json(fake_http: _FakeHttp) -> None:
    fake_http.responses[("GET", "http://127.0.0.1:9222/json")] = [
        {"id": "p", "type": "page", "title": "t", "url": "u", "webSocketDebuggerUrl": "ws://x/p"},
        {"id": "nows", "type": "page"},
    ]
    found = TargetDirectory().list_targets("http://127.0.0.1:9222")
    assert [t.id for t in found] == ["p"]
    assert [c[1] for c in fake_http.calls] == ["http://127.0.0.1:9222/json/list", "http://127.0.0.1:9222/json"]


def test_list_targets_unreachable(fake_http: _FakeHttp) -> None:
    with pytest.raises(ToolError) as exc:
        TargetDirectory().list_targets("http://127.0.0.1:9222")
    assert exc.value.code == "OVERTY_CDP_UNREACHABLE"


def test_new_page_retries_with_get(fake_http: _FakeHttp) -> None:
    endpoint = "http://127.0.0.1:9222/json/new?http%3A%2F%2Flocalhost%2F"
    fake_http.responses[("PUT", endpoint)] = HttpClientError("HTTP 405", status=405)
    fake_http.responses[("GET", endpoint)] = {"id": "n1", "type": "page", "webSocketDebuggerUrl": "ws://x/n1"}

    target = TargetDirectory().new_page("http://127.0.0.1:9222", "http://localhost/")
    assert target.id == "n1"
    assert [c[0] for c in fake_http.calls] == ["PUT", "GET"]


def test_activate_and_close(fake_http: _FakeHttp) -> None:
    fake_http.responses[("GET", "http://127.0.0.1:9222/json/activate/a%2Fb")] = "Target activated"
    directory = TargetDirectory()
    assert directory.activate("http://127.0.0.1:9222", "a/b") == "Target activated"

    with pytest.raises(ToolError) as exc:
        directory.close("http://127.0.0.1:9222", "gone")
    assert exc.value.code == "OVERTY_CDP_ERROR"

    with pytest.raises(ToolError) as exc:
        directory.close("http://127.0.0.1:9222", "  ")
    assert exc.value.code == "OVERTY_INVALID_ARG"


def test_directory_refuses_remote(fake_http: _FakeHttp) -> None:
    with pytest.raises(ToolError) as exc:
        TargetDirectory().list_targets("http://192.168.1.2:9222")
    assert exc.value.code == "OVERTY_REMOTE_NOT_ALLOWED"
    assert fake_http.calls == []
