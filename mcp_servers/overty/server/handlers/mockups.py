"""
Mockup tool handler - batch rendering of standalone HTML with CSS variants.

The mockup tab is throwaway: it is closed and the previously connected target
restored whether rendering succeeds or not. Cleanup failures are logged only.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ...artifacts import ext_for_format, mime_for_format
from ...config import DEFAULT_STYLE_ID, MAX_INLINE_SCREENSHOT_BYTES
from ...errors import INVALID_ARG, ToolError
from ...events import EVENT_TYPES, summarize_events
from ...gallery import build_mockups_index_html, inject_style_into_html, now_file_safe, now_iso, sanitize_file_base
from ...http_client import require_loopback
from ...js_helpers import FONTS_READY_EXPRESSION, set_css_expression, set_html_expression
from ...targets import TargetSelection
from ..contract import SERVER_INFO
from ..types import ToolResult
from .common import opt_bool, opt_int, opt_str, relative_display, sleep_ms

if TYPE_CHECKING:
    from ..types import ToolContext

logger = logging.getLogger("mcp.overty.handlers.mockups")

SETTLE_MS = 50
DEFAULT_VARIANT_WAIT_MS = 100
VARIANT_EVENT_LIMIT = 200


def _render_variant(
    ctx: ToolContext,
    *,
    index: int,
    variant: dict[str, Any],
    html: str,
    base_css: str,
    fmt: str,
    quality: Any,
    output_dir: Path,
    write_html: bool,
    include_events: bool,
) -> tuple[dict[str, Any], str]:
    session = ctx.session
    name = opt_str(variant, "name") or f"variant-{index + 1}"
    css = variant.get("css") if isinstance(variant.get("css"), str) else ""
    js = variant.get("js") if isinstance(variant.get("js"), str) else ""
    wait_ms = opt_int(variant, "waitMs", DEFAULT_VARIANT_WAIT_MS, 0)
    full_page = bool(variant.get("fullPage"))
    stem = f"{index + 1:02d}-{sanitize_file_base(name)}"
    combined_css = "\n".join(part for part in (base_css, css) if part)

    html_file_name = html_path = None
    if write_html:
        html_file_name = f"{stem}.html"
        html_path = output_dir / html_file_name
        ctx.artifacts.write_text(html_path, inject_style_into_html(html, combined_css, DEFAULT_STYLE_ID))

    seq_start = session.events.last_seq
    session.evaluate(set_css_expression(DEFAULT_STYLE_ID, combined_css, "replace"))
    if js:
        session.evaluate(js)
    sleep_ms(wait_ms)

    shot = session.screenshot(fmt, quality, full_page)
    file_name = f"{stem}.{ext_for_format(shot['format'])}"
    file_path = output_dir / file_name
    size = ctx.artifacts.write_base64(file_path, shot["base64"])

    event_summary = event_seq = None
    if include_events:
        events = session.list_events(since_seq=seq_start, limit=VARIANT_EVENT_LIMIT, types=list(EVENT_TYPES))
        event_summary = summarize_events(events)
        event_seq = {"start": seq_start, "end": session.events.last_seq}

    entry = {
        "name": name,
        "fileName": file_name,
        "filePath": str(file_path),
        "htmlFileName": html_file_name,
        "htmlPath": str(html_path) if html_path else None,
        "bytes": size,
        "format": shot["format"],
        "fullPage": full_page,
        "eventSummary": event_summary,
        "eventSeq": event_seq,
    }
    return entry, shot["base64"]


def handle_render_html_mockups(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    html = args.get("html")
    variants = args.get("variants")
    if not isinstance(html, str):
        raise ToolError(INVALID_ARG, "Missing required string argument: html")
    if not isinstance(variants, list) or not variants:
        raise ToolError(INVALID_ARG, "Missing required array argument: variants")

    session = ctx.session
    allow_remote = bool(args.get("allowRemote"))
    browser_url = require_loopback(
        opt_str(args, "browserUrl") or session.browser_url or ctx.config.browser_url, allow_remote
    )
    keep_open = bool(args.get("keepPageOpen"))
    restore = opt_bool(args, "restorePreviousTarget", True)
    previous = None
    if session.is_connected and session.target is not None:
        previous = (session.browser_url or browser_url, session.target.id, session.allow_remote)

    fmt = str(args.get("format") or "png")
    quality = args.get("quality")
    if opt_str(args, "outputDir"):
        output_dir = ctx.artifacts.require_safe_path(args["outputDir"], "outputDir")
    else:
        output_dir = ctx.artifacts.require_safe_path(Path(ctx.config.mockup_dir) / now_file_safe(), "outputDir")
    ctx.artifacts.make_dir(output_dir)

    mock_target = ctx.directory.new_page(browser_url, "about:blank", allow_remote=allow_remote)
    closed = False
    restored: dict[str, Any] | None = None
    try:
        try:
            ctx.directory.activate(browser_url, mock_target.id, allow_remote=allow_remote)
        except ToolError as exc:
            logger.warning("render_html_mockups: activate failed: %s", exc)

        session.connect(browser_url, selection=TargetSelection(target_id=mock_target.id), allow_remote=allow_remote)

        viewport = args.get("viewport")
        if isinstance(viewport, dict):
            session.set_viewport(
                viewport.get("width"),
                viewport.get("height"),
                viewport.get("deviceScaleFactor"),
                bool(viewport.get("mobile")),
            )

        session.evaluate(set_html_expression(html))
        try:
            session.evaluate(FONTS_READY_EXPRESSION)
        except ToolError as exc:
            logger.debug("render_html_mockups: fonts not settled: %s", exc)
        sleep_ms(SETTLE_MS)

        base_css = args.get("baseCss") if isinstance(args.get("baseCss"), str) else ""
        write_html = opt_bool(args, "writeHtmlFiles", True)
        include_events = opt_bool(args, "includeEventSummary", True)
        inline_limit = opt_int(args, "inlineLimit", 0, 0)
        created_at = now_iso()
        results: list[dict[str, Any]] = []
        failures: list[dict[str, Any]] = []
        inline_images: list[tuple[str, str]] = []

        for i, raw in enumerate(variants):
            variant = raw if isinstance(raw, dict) else {}
            try:
                entry, data_b64 = _render_variant(
                    ctx,
                    index=i,
                    variant=variant,
                    html=html,
                    base_css=base_css,
                    fmt=fmt,
                    quality=quality,
                    output_dir=output_dir,
                    write_html=write_html,
                    include_events=include_events,
                )
            except ToolError as exc:
                name = opt_str(variant, "name") or f"variant-{i + 1}"
                logger.info("render_html_mockups: variant %s failed: %s", name, exc)
                failures.append({"name": name, "error": str(exc)})
                continue
            results.append(entry)
            if len(inline_images) < inline_limit and entry["bytes"] < MAX_INLINE_SCREENSHOT_BYTES:
                inline_images.append((data_b64, mime_for_format(entry["format"])))

        if not keep_open:
            closed = _close_mock_target(ctx, browser_url, mock_target.id, allow_remote)
            sleep_ms(SETTLE_MS)
        if previous and restore:
            restored = _restore_previous(ctx, previous)
    finally:
        if not keep_open and not closed:
            _close_mock_target(ctx, browser_url, mock_target.id, allow_remote)
        if previous and restore and restored is None:
            _restore_previous(ctx, previous)

    lines = [f"Rendered {len(results)}/{len(variants)} variants", f"Output: {output_dir}"]
    if failures:
        lines.append(f"Failures: {len(failures)}")
    if keep_open:
        lines.append(f"Mockup targetId: {mock_target.id}")

    display_dir = relative_display(output_dir)
    write_index = opt_bool(args, "writeIndexHtml", True)

    manifest_path: Path | None = None
    if opt_bool(args, "writeManifest", True):
        manifest_path = output_dir / "manifest.json"
        ctx.artifacts.write_json(
            manifest_path,
            {
                "schemaVersion": 1,
                "createdAt": created_at,
                "serverInfo": SERVER_INFO,
                "browserUrl": browser_url,
                "outputDir": display_dir,
                "mockTargetId": mock_target.id,
                "writeHtmlFiles": write_html,
                "writeIndexHtml": write_index,
                "includeEventSummary": include_events,
                "results": [
                    {
                        k: r[k]
                        for k in ("name", "fileName", "htmlFileName", "bytes", "format", "fullPage", "eventSummary")
                    }
                    for r in results
                ],
                "failures": failures,
            },
        )
        lines.append(f"Manifest: {manifest_path}")

    index_path: Path | None = None
    if write_index:
        index_path = output_dir / "index.html"
        ctx.artifacts.write_text(
            index_path,
            build_mockups_index_html(
                results=results,
                failures=failures,
                created_at=created_at,
                output_dir=display_dir,
                title=opt_str(args, "indexTitle") or "overty mockups",
            ),
        )
        lines.append(f"Index: {index_path}")

    out = ToolResult.text(
        "\n".join(lines),
        {
            "browserUrl": browser_url,
            "outputDir": str(output_dir),
            "mockTargetId": mock_target.id,
            "createdAt": created_at,
            "results": results,
            "failures": failures,
            "restored": restored,
            "manifestPath": str(manifest_path) if manifest_path else None,
            "indexPath": str(index_path) if index_path else None,
        },
    )
    for data, mime in inline_images:
        out.add_image(data, mime)
    return out


def _close_mock_target(ctx: ToolContext, browser_url: str, target_id: str, allow_remote: bool) -> bool:
    if ctx.session.target is not None and ctx.session.target.id == target_id:
        ctx.session.disconnect("mockup tab closed")
    try:
        ctx.directory.close(browser_url, target_id, allow_remote=allow_remote)
    except ToolError as exc:
        logger.warning("render_html_mockups: close failed: %s", exc)
        return False
    return True


def _restore_previous(ctx: ToolContext, previous: tuple[str, str, bool]) -> dict[str, Any]:
    browser_url, target_id, allow_remote = previous
    try:
        info = ctx.session.connect(
            browser_url, selection=TargetSelection(target_id=target_id), allow_remote=allow_remote
        )
    except ToolError as exc:
        logger.warning("render_html_mockups: restore failed: %s", exc)
        return {"ok": False, "error": exc.to_dict()}
    return {"ok": True, "selectedTarget": info["selectedTarget"]}


MOCKUP_HANDLERS: dict[str, tuple] = {
    # opens and connects to its own tab
    "render_html_mockups": (handle_render_html_mockups, False),
}
