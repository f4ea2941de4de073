"""
CSS tool handlers - live and persistent style injection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...js_helpers import set_css_expression
from ..types import ToolResult
from .common import opt_bool, opt_str, require_str

if TYPE_CHECKING:
    from ..types import ToolContext


def handle_set_css(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    css = require_str(args, "css", allow_blank=True)
    remote = ctx.session.evaluate(set_css_expression(opt_str(args, "styleId"), css, str(args.get("mode") or "replace")))
    return ToolResult.text("CSS applied.", {"result": remote.get("value"), "remoteObject": remote})


def handle_install_css(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    css = require_str(args, "css", allow_blank=True)
    res = ctx.session.install_css(opt_str(args, "styleId"), css, str(args.get("mode") or "replace"))
    return ToolResult.text(f"CSS installed (persistent): {res['styleId']}", res)


def handle_uninstall_css(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    res = ctx.session.uninstall_css(opt_str(args, "styleId"), opt_bool(args, "removeFromPage", True))
    return ToolResult.text(
        f"CSS uninstalled: removed={len(res['removed'])} notInstalled={len(res['notInstalled'])}", res
    )


def handle_list_installed_css(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    installs = ctx.session.list_installed_css()
    return ToolResult.text(f"Installed CSS entries: {len(installs)}", {"installs": installs})


CSS_HANDLERS: dict[str, tuple] = {
    "set_css": (handle_set_css, True),
    "install_css": (handle_install_css, True),
    "uninstall_css": (handle_uninstall_css, True),
    "list_installed_css": (handle_list_installed_css, False),
}
