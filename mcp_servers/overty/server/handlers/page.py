"""
Page tool handlers - viewport, navigation, waiting, JavaScript and events.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from ...errors import CDP_ERROR, INVALID_ARG, JS_CONTEXT_LOST, NOT_CONNECTED, TIMEOUT, ToolError
from ...js_helpers import PAGE_INFO_EXPRESSION, READY_STATE_EXPRESSION, text_contains_expression
from ...session import DEFAULT_OUTER_HTML_CHARS
from ..types import ToolResult
from .common import opt_bool, opt_int, opt_str, opt_str_list, sleep_ms, timeout_seconds

if TYPE_CHECKING:
    from ..types import ToolContext

logger = logging.getLogger("mcp.overty.handlers.page")

WAIT_UNTIL_STATES = {
    "domcontentloaded": ("interactive", "complete"),
    "load": ("complete",),
}
PER_EVAL_TIMEOUT_MS = 5_000
_MISSING = object()


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _poll(ctx: ToolContext, expression: str, start: float, timeout_ms: int, poll_ms: int, accept) -> tuple[bool, Any]:
    """Evaluate ``expression`` until ``accept(value)`` holds or the deadline passes.

    A lost execution context (navigation in progress) counts as "not yet".
    Returns ``(satisfied, last_value)``.
    """
    per_eval = min(PER_EVAL_TIMEOUT_MS, timeout_ms) / 1000.0 or None
    last: Any = None
    while _elapsed_ms(start) <= timeout_ms:
        try:
            last = ctx.session.evaluate_value(expression, timeout=per_eval)
        except ToolError as exc:
            if exc.code != JS_CONTEXT_LOST:
                raise
        else:
            if accept(last):
                return True, last
        sleep_ms(poll_ms)
    return False, last


def handle_set_viewport(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    res = ctx.session.set_viewport(
        args.get("width"),
        args.get("height"),
        args.get("deviceScaleFactor"),
        bool(args.get("mobile")),
    )
    mobile = "true" if res["mobile"] else "false"
    return ToolResult.text(
        f"Viewport set: {res['width']}x{res['height']} dpr={res['deviceScaleFactor']:g} mobile={mobile}", res
    )


def handle_clear_viewport(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.text("Viewport override cleared.", ctx.session.clear_viewport())


def handle_navigate(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    url = opt_str(args, "url")
    if not url:
        raise ToolError(INVALID_ARG, "Missing required string argument: url")
    wait_until = str(args.get("waitUntil") or "load").lower()
    if wait_until != "none" and wait_until not in WAIT_UNTIL_STATES:
        raise ToolError(INVALID_ARG, f"Invalid waitUntil: {wait_until}")

    wait_text = args.get("waitForText") if isinstance(args.get("waitForText"), str) and args["waitForText"] else None
    wait_expr = (
        args.get("waitForExpression")
        if isinstance(args.get("waitForExpression"), str) and args["waitForExpression"]
        else None
    )
    timeout_ms = opt_int(args, "timeoutMs", 30_000, 0)
    poll_ms = opt_int(args, "pollMs", 100, 10)

    start = time.monotonic()
    try:
        ctx.session.send("Page.navigate", {"url": url})
    except ToolError as exc:
        if exc.code == NOT_CONNECTED:
            raise
        raise ToolError(CDP_ERROR, "Page.navigate failed", exc.message) from exc

    if wait_until != "none":
        wanted = WAIT_UNTIL_STATES[wait_until]
        ok, last_state = _poll(
            ctx, READY_STATE_EXPRESSION, start, timeout_ms, poll_ms, lambda v: isinstance(v, str) and v in wanted
        )
        if not ok:
            raise ToolError(
                TIMEOUT,
                f"navigate timed out waiting for waitUntil={wait_until}",
                {
                    "waitUntil": wait_until,
                    "timeoutMs": timeout_ms,
                    "elapsedMs": _elapsed_ms(start),
                    "lastState": last_state if isinstance(last_state, str) else None,
                },
            )

    if wait_text or wait_expr:
        mode = "expression" if wait_expr else "text"
        expression = wait_expr or text_contains_expression(wait_text)
        ok, _ = _poll(ctx, expression, start, timeout_ms, poll_ms, bool)
        if not ok:
            raise ToolError(
                TIMEOUT,
                "navigate timed out waiting for condition",
                {"mode": mode, "timeoutMs": timeout_ms, "elapsedMs": _elapsed_ms(start)},
            )

    info: Any = None
    try:
        info = ctx.session.evaluate_value(PAGE_INFO_EXPRESSION, timeout=min(10_000, timeout_ms) / 1000.0 or None)
    except ToolError as exc:
        logger.debug("navigate: page info unavailable: %s", exc)
    info = info if isinstance(info, dict) else {}

    elapsed = _elapsed_ms(start)
    final_url = info.get("url") or url
    lines = [f"Navigated: {final_url}"]
    if info.get("title"):
        lines.append(f"Title: {info['title']}")
    lines.append(f"Elapsed: {elapsed}ms")
    return ToolResult.text(
        "\n".join(lines),
        {
            "url": final_url,
            "title": info.get("title") or None,
            "readyState": info.get("readyState") or None,
            "elapsedMs": elapsed,
        },
    )


def handle_wait_for(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    timeout_ms = opt_int(args, "timeoutMs", 30_000, 0)
    poll_ms = opt_int(args, "pollMs", 100, 10)
    text = args.get("text") if isinstance(args.get("text"), str) and args["text"] else None
    expression = args.get("expression") if isinstance(args.get("expression"), str) and args["expression"] else None

    if args.get("timeMs") is not None and not text and not expression:
        wait = opt_int(args, "timeMs", 0, 0)
        sleep_ms(wait)
        return ToolResult.text(f"Waited {wait}ms.", {"mode": "time", "satisfied": True, "elapsedMs": wait})

    if not text and not expression:
        raise ToolError(INVALID_ARG, "Provide one of: timeMs, text, expression")
    ctx.session.require_connected()

    mode = "expression" if expression else "text"
    start = time.monotonic()
    ok, last = _poll(ctx, expression or text_contains_expression(text), start, timeout_ms, poll_ms, bool)
    if not ok:
        raise ToolError(
            TIMEOUT,
            "wait_for timed out",
            {"mode": mode, "timeoutMs": timeout_ms, "elapsedMs": _elapsed_ms(start), "lastValue": last},
        )
    return ToolResult.text(
        f"wait_for satisfied ({mode}).",
        {"mode": mode, "satisfied": True, "elapsedMs": _elapsed_ms(start), "value": last},
    )


def handle_wait_for_network_idle(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    res = ctx.session.wait_for_network_idle(
        idle_ms=opt_int(args, "idleMs", 500, 0),
        timeout_ms=opt_int(args, "timeoutMs", 30_000, 0),
        poll_ms=opt_int(args, "pollMs", 100, 10),
        max_inflight=opt_int(args, "maxInflight", 0, 0),
        ignore_resource_types=opt_str_list(args, "ignoreResourceTypes"),
    )
    return ToolResult.text(
        f"Network idle: inflight={res['inflight']}/{res['totalInflight']} ignored={res['ignoredInflight']}", res
    )


def handle_execute_js(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    expression = opt_str(args, "expression")
    if not expression:
        raise ToolError(INVALID_ARG, "Missing required string argument: expression")
    remote = ctx.session.evaluate(
        args["expression"],
        await_promise=opt_bool(args, "awaitPromise", True),
        return_by_value=opt_bool(args, "returnByValue", True),
        timeout=timeout_seconds(args),
    )
    value = remote.get("value", _MISSING)
    if value is not _MISSING:
        summary = json.dumps(value, ensure_ascii=False)
    elif remote.get("description"):
        summary = str(remote["description"])
    else:
        summary = f"[{remote.get('type') or 'unknown'}]"
    return ToolResult.text(summary, {"remoteObject": remote})


def handle_list_events(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    events = ctx.session.list_events(
        since_seq=opt_int(args, "sinceSeq", 0, 0),
        limit=opt_int(args, "limit", 50, 1),
        types=opt_str_list(args, "types"),
        clear=bool(args.get("clear")),
    )
    last_seq = events[-1]["seq"] if events else 0
    suffix = f" (last seq {last_seq})" if last_seq else ""
    return ToolResult.text(f"Events: {len(events)}{suffix}", {"events": events})


def handle_take_dom_snapshot(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    selector = opt_str(args, "selector")
    snap = ctx.session.outer_html(
        selector, opt_int(args, "maxChars", DEFAULT_OUTER_HTML_CHARS, 1), timeout_seconds(args)
    )
    if snap["truncated"]:
        header = f"HTML (truncated, {snap['chars']} chars total):"
    else:
        header = f"HTML ({snap['chars']} chars):"
    body = "(null)" if snap["html"] is None else snap["html"]
    return ToolResult.text(f"{header}\n{body}", {**snap, "selector": selector})


PAGE_HANDLERS: dict[str, tuple] = {
    "set_viewport": (handle_set_viewport, True),
    "clear_viewport": (handle_clear_viewport, True),
    "navigate": (handle_navigate, True),
    # time-only waits need no session; the handler checks for the other modes
    "wait_for": (handle_wait_for, False),
    "wait_for_network_idle": (handle_wait_for_network_idle, True),
    "execute_js": (handle_execute_js, True),
    "list_events": (handle_list_events, False),
    "take_dom_snapshot": (handle_take_dom_snapshot, True),
}
