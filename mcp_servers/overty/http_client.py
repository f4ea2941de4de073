from __future__ import annotations

import ipaddress
import json
import urllib.parse
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import INVALID_ARG, REMOTE_NOT_ALLOWED, ToolError


class HttpClientError(Exception):
    def __init__(self, message: str, *, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


def is_loopback_host(hostname: str | None) -> bool:
    host = (hostname or "").strip().lower().strip("[]")
    if host in {"localhost", "::1"}:
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return addr.version == 4 and addr in ipaddress.ip_network("127.0.0.0/8")


def parse_http_url(raw: str | None) -> urllib.parse.SplitResult:
    """Parse an HTTP(S) endpoint; bare ``host:port`` gets an ``http://`` scheme."""
    text = (raw or "").strip()
    if not text:
        raise ValueError("Empty URL")
    if "://" not in text:
        text = f"http://{text}"
    parsed = urllib.parse.urlsplit(text)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Invalid protocol: {parsed.scheme}:")
    if not parsed.hostname:
        raise ValueError(f"Missing host in URL: {raw}")
    return parsed


def http_base(parsed: urllib.parse.SplitResult) -> str:
    """Return ``scheme://netloc[/path]`` without a trailing slash."""
    return urllib.parse.urlunsplit((parsed.scheme, parsed.netloc, parsed.path, "", "")).rstrip("/")


def require_loopback(browser_url: str, allow_remote: bool) -> str:
    """Validate ``browser_url`` against the loopback-only policy and return its base URL."""
    try:
        parsed = parse_http_url(browser_url)
    except ValueError as exc:
        raise ToolError(INVALID_ARG, f"Invalid browserUrl: {browser_url}", str(exc)) from exc
    if not allow_remote and not is_loopback_host(parsed.hostname):
        raise ToolError(REMOTE_NOT_ALLOWED, f"Refusing non-loopback host: {parsed.hostname}")
    return http_base(parsed)


def _open(url: str, method: str, timeout: float) -> bytes:
    req = Request(url, method=method, headers={"User-Agent": "overty-mcp/0.1"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.read()
    except HTTPError as exc:
        body: str | None
        try:
            body = exc.read().decode(errors="replace")
        except Exception:  # noqa: BLE001
            body = None
        raise HttpClientError(f"HTTP {exc.code} from {url}", status=exc.code, body=body) from exc
    except (TimeoutError, URLError, OSError) as exc:
        raise HttpClientError(f"{url}: {exc}") from exc


def http_fetch_text(url: str, method: str = "GET", *, timeout: float = 5.0) -> str:
    return _open(url, method, timeout).decode(errors="replace")


def http_fetch_json(url: str, method: str = "GET", *, timeout: float = 5.0) -> Any:
    raw = _open(url, method, timeout)
    try:
        return json.loads(raw.decode(errors="replace"))
    except ValueError as exc:
        raise HttpClientError(f"Invalid JSON from {url}: {exc}") from exc
