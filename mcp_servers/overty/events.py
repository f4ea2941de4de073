"""Console/exception/log capture for the connected target.

CDP events are normalized into small dicts and kept in a bounded ring buffer with a
strictly increasing sequence number, so callers can page with ``since_seq``.
"""

from __future__ import annotations

import json
import threading
import time
from collections import deque
from typing import Any

EVENT_TYPES = ("console", "exception", "log")
MAX_EVENTS = 500
MAX_TEXT_CHARS = 4000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def remote_arg_to_text(arg: Any) -> str:
    """Render a CDP RemoteObject argument the way DevTools would print it."""
    if not isinstance(arg, dict):
        return str(arg)
    if "value" in arg:
        value = arg["value"]
        if isinstance(value, str):
            return value
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(value)
    if isinstance(arg.get("description"), str):
        return arg["description"]
    if isinstance(arg.get("type"), str):
        return f"[{arg['type']}]"
    return "[arg]"


def _stack_top(params: dict[str, Any]) -> dict[str, Any] | None:
    trace = params.get("stackTrace")
    frames = trace.get("callFrames") if isinstance(trace, dict) else None
    if not isinstance(frames, list) or not frames or not isinstance(frames[0], dict):
        return None
    top = frames[0]
    return {
        "url": top.get("url") or None,
        "lineNumber": _int_or_none(top.get("lineNumber")),
        "columnNumber": _int_or_none(top.get("columnNumber")),
        "functionName": top.get("functionName") or None,
    }


def normalize_event(method: str, params: Any) -> dict[str, Any] | None:
    """Classify a raw CDP event; returns ``None`` for events that are not captured."""
    if not isinstance(params, dict):
        params = {}

    if method == "Runtime.consoleAPICalled":
        args = params.get("args") if isinstance(params.get("args"), list) else []
        text = " ".join(remote_arg_to_text(a) for a in args)
        return {
            "type": "console",
            "level": str(params.get("type") or "log").lower(),
            "text": text[:MAX_TEXT_CHARS],
            "location": _stack_top(params),
        }

    if method == "Runtime.exceptionThrown":
        details = params.get("exceptionDetails") if isinstance(params.get("exceptionDetails"), dict) else {}
        exc = details.get("exception") if isinstance(details.get("exception"), dict) else {}
        if isinstance(exc.get("description"), str):
            description = exc["description"]
        elif isinstance(details.get("text"), str):
            description = details["text"]
        else:
            description = "Exception"
        return {
            "type": "exception",
            "level": "error",
            "text": description[:MAX_TEXT_CHARS],
            "location": {
                "url": details.get("url") if isinstance(details.get("url"), str) else None,
                "lineNumber": _int_or_none(details.get("lineNumber")),
                "columnNumber": _int_or_none(details.get("columnNumber")),
            },
        }

    if method == "Log.entryAdded":
        entry = params.get("entry")
        if not isinstance(entry, dict):
            return None
        return {
            "type": "log",
            "level": str(entry.get("level") or "info").lower(),
            "text": str(entry.get("text") or "")[:MAX_TEXT_CHARS],
            "location": {
                "url": str(entry["url"]) if entry.get("url") else None,
                "lineNumber": _int_or_none(entry.get("lineNumber")),
            },
        }

    return None


class EventLog:
    """Bounded event ring buffer; the oldest entry is evicted first."""

    def __init__(self, max_events: int = MAX_EVENTS) -> None:
        self.max_events = max(1, int(max_events))
        self._events: deque[dict[str, Any]] = deque(maxlen=self.max_events)
        self._seq = 0
        self._lock = threading.Lock()

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def push(self, event: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self._seq += 1
            item = {"seq": self._seq, "ts": _now_ms(), **event}
            self._events.append(item)
            return item

    def query(
        self,
        *,
        since_seq: int = 0,
        limit: int = 50,
        types: list[str] | None = None,
        clear: bool = False,
    ) -> list[dict[str, Any]]:
        since_seq = max(0, int(since_seq or 0))
        limit = max(1, int(limit or 50))
        wanted = {str(t) for t in types} if types else None
        with self._lock:
            events = [e for e in self._events if e["seq"] > since_seq and (wanted is None or e["type"] in wanted)]
            if clear:
                self._events.clear()
        return events[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def summarize_events(events: list[dict[str, Any]], limit_errors: int = 8) -> dict[str, Any]:
    out: dict[str, Any] = {
        "console": {"total": 0, "error": 0, "warning": 0, "info": 0},
        "exception": {"total": 0},
        "log": {"total": 0, "error": 0, "warning": 0, "info": 0},
        "errors": [],
    }

    def push_error(e: dict[str, Any]) -> None:
        if len(out["errors"]) >= limit_errors:
            return
        out["errors"].append(
            {
                "type": e.get("type"),
                "level": e.get("level"),
                "text": e.get("text") or "",
                "location": e.get("location"),
                "seq": e.get("seq"),
            }
        )

    for e in events or []:
        if not isinstance(e, dict):
            continue
        kind = e.get("type")
        if kind == "exception":
            out["exception"]["total"] += 1
            push_error(e)
            continue
        if kind not in ("console", "log"):
            continue
        bucket = out[kind]
        bucket["total"] += 1
        level = str(e.get("level") or ("log" if kind == "console" else "info")).lower()
        if level == "error":
            bucket["error"] += 1
            push_error(e)
        elif level in ("warning", "warn"):
            bucket["warning"] += 1
        else:
            bucket["info"] += 1

    return out
