"""Control-plane client for CDP target discovery and lifecycle (``/json/*``)."""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import asdict, dataclass
from typing import Any

from .errors import CDP_ERROR, CDP_UNREACHABLE, INVALID_ARG, ToolError
from .http_client import HttpClientError, http_fetch_json, http_fetch_text, require_loopback

logger = logging.getLogger("mcp.overty.targets")


@dataclass(frozen=True, slots=True)
class Target:
    id: str
    type: str | None
    title: str | None
    url: str | None
    webSocketDebuggerUrl: str  # noqa: N815

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> Target:
        return cls(
            id=str(raw.get("id") or ""),
            type=raw.get("type"),
            title=raw.get("title"),
            url=raw.get("url"),
            webSocketDebuggerUrl=str(raw["webSocketDebuggerUrl"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class TargetSelection:
    """Connection-time target criteria, applied in priority order by :func:`select_target`."""

    target_id: str | None = None
    url_substring: str | None = None
    title_substring: str | None = None
    index: int | None = None


def select_target(targets: list[Target], selection: TargetSelection | None = None) -> Target | None:
    """Pick a target: exact id, then URL/title substring, then index, then first page, then first.

    Explicit criteria (id, substring or index) that match nothing yield ``None``.
    """
    sel = selection or TargetSelection()
    pool = [t for t in targets if t.webSocketDebuggerUrl]
    if not pool:
        return None

    if sel.target_id:
        return next((t for t in pool if t.id == sel.target_id), None)

    if sel.url_substring or sel.title_substring:
        for t in pool:
            if sel.url_substring and isinstance(t.url, str) and sel.url_substring in t.url:
                return t
            if sel.title_substring and isinstance(t.title, str) and sel.title_substring in t.title:
                return t
        return None

    if sel.index is not None:
        return pool[sel.index] if 0 <= sel.index < len(pool) else None

    return next((t for t in pool if t.type == "page"), pool[0])


class TargetDirectory:
    """HTTP client for ``/json/list``, ``/json/new``, ``/json/activate`` and ``/json/close``."""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    def list_targets(self, browser_url: str, *, allow_remote: bool = False) -> list[Target]:
        base = require_loopback(browser_url, allow_remote)
        last_error: Exception | None = None
        for endpoint in (f"{base}/json/list", f"{base}/json"):
            try:
                payload = http_fetch_json(endpoint, timeout=self.timeout)
            except HttpClientError as exc:
                last_error = exc
                continue
            if not isinstance(payload, list):
                last_error = ValueError(f"Unexpected JSON from {endpoint} (expected array)")
                continue
            return [
                Target.from_json(item)
                for item in payload
                if isinstance(item, dict) and isinstance(item.get("webSocketDebuggerUrl"), str)
            ]
        raise ToolError(CDP_UNREACHABLE, f"Could not list targets from {base}", str(last_error))

    def new_page(self, browser_url: str, url: str = "about:blank", *, allow_remote: bool = False) -> Target:
        base = require_loopback(browser_url, allow_remote)
        endpoint = f"{base}/json/new?{urllib.parse.quote(url or 'about:blank', safe='')}"
        try:
            try:
                payload = http_fetch_json(endpoint, "PUT", timeout=self.timeout)
            except HttpClientError as exc:
                # Older Chrome builds only accept GET on /json/new.
                if exc.status != 405:
                    raise
                payload = http_fetch_json(endpoint, "GET", timeout=self.timeout)
        except HttpClientError as exc:
            raise ToolError(CDP_UNREACHABLE, f"Could not open new page via {endpoint}", str(exc)) from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("id"), str):
            raise ToolError(CDP_ERROR, f"Unexpected response from {endpoint}")
        return Target(
            id=payload["id"],
            type=payload.get("type"),
            title=payload.get("title"),
            url=payload.get("url"),
            webSocketDebuggerUrl=str(payload.get("webSocketDebuggerUrl") or ""),
        )

    def _target_command(self, browser_url: str, verb: str, target_id: str, allow_remote: bool) -> str:
        base = require_loopback(browser_url, allow_remote)
        target_id = (target_id or "").strip()
        if not target_id:
            raise ToolError(INVALID_ARG, "Missing required argument: targetId")
        endpoint = f"{base}/json/{verb}/{urllib.parse.quote(target_id, safe='')}"
        try:
            return http_fetch_text(endpoint, timeout=self.timeout).strip()
        except HttpClientError as exc:
            raise ToolError(CDP_ERROR, f"Could not {verb} target {target_id}", str(exc)) from exc

    def activate(self, browser_url: str, target_id: str, *, allow_remote: bool = False) -> str:
        return self._target_command(browser_url, "activate", target_id, allow_remote)

    def close(self, browser_url: str, target_id: str, *, allow_remote: bool = False) -> str:
        return self._target_command(browser_url, "close", target_id, allow_remote)
