"""
Capture tool handlers - page and element screenshots, QA bundles.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ...artifacts import ext_for_format, mime_for_format
from ...config import MAX_INLINE_SCREENSHOT_BYTES
from ...errors import CDP_ERROR, INVALID_ARG, NOT_FOUND, ToolError
from ...events import summarize_events
from ...gallery import now_file_safe, now_iso, sanitize_file_base
from ...js_helpers import element_rect_expression
from ...qa.layout import audit_layout
from ...session import DEFAULT_OUTER_HTML_CHARS
from ..contract import SERVER_INFO
from ..types import ToolResult
from .common import (
    collect_layout_metrics,
    deliver_image,
    opt_bool,
    opt_int,
    opt_number,
    opt_str,
    opt_str_list,
    relative_display,
    timeout_seconds,
)

if TYPE_CHECKING:
    from ..types import ToolContext

DEFAULT_BUNDLE_EVENT_TYPES = ["console", "exception", "log"]


def handle_take_screenshot(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    shot = ctx.session.screenshot(args.get("format") or "png", args.get("quality"), bool(args.get("fullPage")))
    return deliver_image(ctx, shot, args.get("filePath"), default_name="screenshot")


def _finite(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def handle_screenshot_element(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    selector = opt_str(args, "selector")
    if not selector:
        raise ToolError(INVALID_ARG, "Missing required string argument: selector")
    index = opt_int(args, "index", 0, 0)
    padding = max(0.0, opt_number(args, "paddingPx") or 0.0)

    info = ctx.session.evaluate_value(
        element_rect_expression(selector, index, opt_bool(args, "scrollIntoView", True)),
        timeout=timeout_seconds(args),
    )
    if not isinstance(info, dict) or not info.get("found"):
        count = info.get("count") if isinstance(info, dict) else None
        raise ToolError(
            NOT_FOUND,
            f"No element matched selector: {selector}",
            {"selector": selector, "index": index, "count": count if isinstance(count, int) else None},
        )

    rect = info.get("rect") or {}
    viewport = info.get("viewport") or {}
    nums = [_finite(v) for v in (viewport.get("width"), viewport.get("height"))]
    nums += [_finite(rect.get(k)) for k in ("x", "y", "width", "height")]
    if any(n is None for n in nums):
        raise ToolError(CDP_ERROR, "Could not compute element bounding box")
    vw, vh, rx, ry, rw, rh = nums

    x0 = max(0.0, rx - padding)
    y0 = max(0.0, ry - padding)
    x1 = min(vw, rx + rw + padding)
    y1 = min(vh, ry + rh + padding)
    clip_w = max(1.0, x1 - x0)
    clip_h = max(1.0, y1 - y0)

    shot = ctx.session.screenshot_clip(x0, y0, clip_w, clip_h, args.get("format") or "png", args.get("quality"))
    meta = {
        "selector": selector,
        "index": index,
        "paddingPx": padding,
        "rect": {"x": rx, "y": ry, "width": rw, "height": rh},
        "clip": {"x": x0, "y": y0, "width": clip_w, "height": clip_h},
        "viewport": {"width": vw, "height": vh},
    }
    return deliver_image(
        ctx,
        shot,
        args.get("filePath"),
        default_name=f"element-{sanitize_file_base(selector, 'element')}",
        meta=meta,
        saved_label="element screenshot",
    )


def handle_capture_bundle(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    created_at = now_iso()
    label = sanitize_file_base(opt_str(args, "label") or "bundle", "bundle")
    if opt_str(args, "outputDir"):
        output_dir = ctx.artifacts.require_safe_path(args["outputDir"], "outputDir")
    else:
        output_dir = ctx.artifacts.require_safe_path(
            Path(ctx.config.bundle_dir) / f"{now_file_safe()}-{label}", "outputDir"
        )
    ctx.artifacts.make_dir(output_dir)

    full_page = bool(args.get("fullPage"))
    shot = ctx.session.screenshot(args.get("format") or "png", args.get("quality"), full_page)
    screenshot_path = output_dir / f"screenshot.{ext_for_format(shot['format'])}"
    size = ctx.artifacts.write_base64(screenshot_path, shot["base64"])

    dom_path: Path | None = None
    dom_meta: dict[str, Any] | None = None
    if opt_bool(args, "includeDom", True):
        dom_selector = opt_str(args, "domSelector")
        snap = ctx.session.outer_html(dom_selector, opt_int(args, "domMaxChars", DEFAULT_OUTER_HTML_CHARS, 1))
        dom_path = output_dir / "dom.html"
        ctx.artifacts.write_text(dom_path, ("(null)" if snap["html"] is None else snap["html"]) + "\n")
        dom_meta = {"selector": dom_selector, "truncated": snap["truncated"], "chars": snap["chars"]}

    events_path: Path | None = None
    events_summary: dict[str, Any] | None = None
    events_count: int | None = None
    if opt_bool(args, "includeEvents", True):
        events = ctx.session.list_events(
            since_seq=opt_int(args, "eventsSinceSeq", 0, 0),
            limit=opt_int(args, "eventsLimit", 200, 1),
            types=opt_str_list(args, "eventsTypes") or DEFAULT_BUNDLE_EVENT_TYPES,
            clear=bool(args.get("clearEvents")),
        )
        events_count = len(events)
        events_summary = summarize_events(events)
        events_path = output_dir / "events.json"
        ctx.artifacts.write_json(events_path, {"events": events})

    layout_path: Path | None = None
    layout_summary: dict[str, Any] | None = None
    if opt_bool(args, "includeLayoutAudit", True):
        layout_summary = audit_layout(
            collect_layout_metrics(ctx),
            opt_int(args, "tolerancePx", 1, 0),
            opt_int(args, "maxElements", 30, 1),
        )
        layout_path = output_dir / "layout.json"
        ctx.artifacts.write_json(layout_path, layout_summary)

    target = ctx.session.target
    manifest_path = output_dir / "bundle.json"
    manifest = {
        "schemaVersion": 1,
        "createdAt": created_at,
        "serverInfo": SERVER_INFO,
        "browserUrl": ctx.session.browser_url or None,
        "selectedTarget": target.to_dict() if target else None,
        "outputDir": relative_display(output_dir),
        "screenshot": {"path": screenshot_path.name, "bytes": size, "format": shot["format"], "fullPage": full_page},
        "dom": {"path": dom_path.name, **dom_meta} if dom_path and dom_meta is not None else None,
        "events": (
            {"path": events_path.name, "count": events_count, "summary": events_summary} if events_path else None
        ),
        "layout": {"path": layout_path.name} if layout_path else None,
    }
    ctx.artifacts.write_json(manifest_path, manifest)

    lines = [f"Bundle: {output_dir}", f"Screenshot: {screenshot_path}"]
    if dom_path:
        lines.append(f"DOM: {dom_path}")
    if events_path:
        lines.append(f"Events: {events_path}")
    if layout_path:
        lines.append(f"Layout: {layout_path}")
    lines.append(f"Manifest: {manifest_path}")

    result = ToolResult.text(
        "\n".join(lines),
        {
            "outputDir": str(output_dir),
            "createdAt": created_at,
            "screenshotPath": str(screenshot_path),
            "domPath": str(dom_path) if dom_path else None,
            "eventsPath": str(events_path) if events_path else None,
            "layoutPath": str(layout_path) if layout_path else None,
            "manifestPath": str(manifest_path),
            "eventsSummary": events_summary,
            "layoutSummary": layout_summary,
        },
    )
    if args.get("inlineScreenshot") and size < MAX_INLINE_SCREENSHOT_BYTES:
        result.add_image(shot["base64"], mime_for_format(shot["format"]))
    return result


CAPTURE_HANDLERS: dict[str, tuple] = {
    "take_screenshot": (handle_take_screenshot, True),
    "screenshot_element": (handle_screenshot_element, True),
    "capture_bundle": (handle_capture_bundle, True),
}
