"""
Target tool handlers - discovery, connection and tab lifecycle.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ...errors import INVALID_ARG, ToolError
from ...http_client import require_loopback
from ...targets import TargetSelection
from ..types import ToolResult
from .common import opt_bool, opt_str

if TYPE_CHECKING:
    from ..types import ToolContext

logger = logging.getLogger("mcp.overty.handlers.targets")


def _endpoint(ctx: ToolContext, args: dict[str, Any]) -> tuple[str, bool]:
    allow_remote = bool(args.get("allowRemote"))
    raw = opt_str(args, "browserUrl") or ctx.session.browser_url or ctx.config.browser_url
    return require_loopback(raw, allow_remote), allow_remote


def _selection(args: dict[str, Any]) -> TargetSelection:
    index = args.get("targetIndex")
    if index is not None and (isinstance(index, bool) or not isinstance(index, int)):
        raise ToolError(INVALID_ARG, f"Invalid targetIndex: {index}")
    return TargetSelection(
        target_id=opt_str(args, "targetId"),
        url_substring=opt_str(args, "targetUrlSubstring"),
        title_substring=opt_str(args, "targetTitleSubstring"),
        index=index,
    )


def _connected_result(info: dict[str, Any]) -> ToolResult:
    sel = info["selectedTarget"]
    text = "\n".join(
        [
            f"Connected to {info['browserUrl']}",
            f"Selected: [{sel.get('type')}] {sel.get('title') or ''} {sel.get('url') or ''}".rstrip(),
            f"Targets: {len(info['targets'])}",
        ]
    )
    return ToolResult.text(text, info)


def handle_connect(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    browser_url, allow_remote = _endpoint(ctx, args)
    info = ctx.session.connect(
        browser_url,
        selection=_selection(args),
        allow_remote=allow_remote,
        navigate_url=opt_str(args, "navigateUrl"),
    )
    return _connected_result(info)


def handle_list_targets(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    browser_url, allow_remote = _endpoint(ctx, args)
    targets = ctx.directory.list_targets(browser_url, allow_remote=allow_remote)
    return ToolResult.text(
        f"Targets: {len(targets)}\nBrowser: {browser_url}",
        {"browserUrl": browser_url, "targets": [t.to_dict() for t in targets]},
    )


def handle_open_page(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    browser_url, allow_remote = _endpoint(ctx, args)
    url = opt_str(args, "url") or "about:blank"
    target = ctx.directory.new_page(browser_url, url, allow_remote=allow_remote)

    if opt_bool(args, "activate", True):
        try:
            ctx.directory.activate(browser_url, target.id, allow_remote=allow_remote)
        except ToolError as exc:
            logger.warning("open_page: activate failed: %s", exc)

    if not opt_bool(args, "connect", True):
        return ToolResult.text(
            f"Opened [{target.type}] {target.url or url}\nTarget id: {target.id}",
            {"browserUrl": browser_url, "target": target.to_dict()},
        )

    info = ctx.session.connect(
        browser_url, selection=TargetSelection(target_id=target.id), allow_remote=allow_remote
    )
    return _connected_result(info)


def handle_close_target(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    browser_url, allow_remote = _endpoint(ctx, args)
    current = ctx.session.target
    target_id = opt_str(args, "targetId") or (current.id if current else None)
    if not target_id:
        raise ToolError(INVALID_ARG, "Missing targetId (and no connected target)")

    # Disconnect first so the socket closing under us is an expected teardown.
    if current is not None and current.id == target_id:
        ctx.session.disconnect("target closed")

    result = ctx.directory.close(browser_url, target_id, allow_remote=allow_remote)
    return ToolResult.text(f"Closed target {target_id}", {"targetId": target_id, "result": result})


TARGET_HANDLERS: dict[str, tuple] = {
    "connect": (handle_connect, False),
    "list_targets": (handle_list_targets, False),
    "open_page": (handle_open_page, False),
    "close_target": (handle_close_target, False),
}
