"""
QA tool handlers - layout audit/assertions, visual diff and the viewport matrix.

The page only reports raw geometry (see ``js_helpers.layout_metrics_expression``);
every threshold is applied in ``qa.layout`` so rules behave the same in every tool.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ...artifacts import ext_for_format, mime_for_format
from ...config import MAX_INLINE_SCREENSHOT_BYTES
from ...errors import INVALID_ARG, ToolError
from ...events import EVENT_TYPES, summarize_events
from ...gallery import now_file_safe, now_iso, sanitize_file_base
from ...qa.layout import LayoutRules, assert_layout, audit_layout, merge_rule_args
from ...qa.visual_diff import evaluate_pass, visual_diff
from ..contract import SERVER_INFO
from ..types import ToolResult
from .common import collect_layout_metrics, opt_bool, opt_int, opt_number, opt_str, relative_display, sleep_ms

if TYPE_CHECKING:
    from ..types import ToolContext

logger = logging.getLogger("mcp.overty.handlers.qa")

DEFAULT_VIEWPORTS: list[dict[str, Any]] = [
    {"name": "mobile", "width": 390, "height": 844, "mobile": True, "deviceScaleFactor": 1},
    {"name": "tablet", "width": 768, "height": 1024, "mobile": True, "deviceScaleFactor": 1},
    {"name": "desktop", "width": 1440, "height": 900, "mobile": False, "deviceScaleFactor": 1},
]


def _metrics_for_rules(ctx: ToolContext, rules: LayoutRules) -> dict[str, Any]:
    return collect_layout_metrics(
        ctx,
        include_overlaps=rules.includeOverlaps,
        overlap_selector=rules.overlapSelector,
        overlap_candidate_limit=rules.overlapCandidateLimit,
    )


def handle_audit_layout(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    report = audit_layout(
        collect_layout_metrics(ctx),
        opt_int(args, "tolerancePx", 1, 0),
        opt_int(args, "maxElements", 30, 1),
    )
    overflow = "yes" if report["document"]["horizontalOverflow"] else "no"
    return ToolResult.text(
        f"audit_layout: horizontalOverflow={overflow}, offenders={len(report['overflowingElements'])}", report
    )


def handle_assert_layout(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    rules = LayoutRules.from_raw(merge_rule_args(args))
    report = assert_layout(_metrics_for_rules(ctx, rules), rules)
    passed = "yes" if report["pass"] else "no"
    return ToolResult.text(f"assert_layout: pass={passed} violations={len(report['violations'])}", report)


# ─────────────────────────────────────────────────────────────────────────────
# Visual diff
# ─────────────────────────────────────────────────────────────────────────────


def handle_visual_diff(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    raw_baseline = opt_str(args, "baselinePath")
    if not raw_baseline:
        raise ToolError(INVALID_ARG, "Missing required string argument: baselinePath")
    baseline_path = ctx.artifacts.require_safe_path(raw_baseline, "baselinePath")
    baseline = ctx.artifacts.read_bytes(baseline_path, "baselinePath")

    candidate_path: Path | None = None
    full_page_fallback = False
    raw_candidate = opt_str(args, "candidatePath")
    if raw_candidate:
        candidate_path = ctx.artifacts.require_safe_path(raw_candidate, "candidatePath")
        candidate = ctx.artifacts.read_bytes(candidate_path, "candidatePath")
    else:
        ctx.session.require_connected()
        shot = ctx.session.screenshot(args.get("format") or "png", args.get("quality"), bool(args.get("fullPage")))
        candidate = base64.b64decode(shot["base64"])
        full_page_fallback = bool(shot.get("fullPageFallback"))

    diff_path_arg = opt_str(args, "diffPath")
    write_diff = args.get("writeDiff") is True or (diff_path_arg is not None and args.get("writeDiff") is not False)
    inline_diff = bool(args.get("inlineDiff"))
    result = visual_diff(baseline, candidate, args.get("threshold"), include_diff=write_diff or inline_diff)

    fail_percent = opt_number(args, "failPercent")
    if fail_percent is not None:
        fail_percent = max(0.0, min(100.0, fail_percent))
    fail_on_mismatch = bool(args.get("failOnDimensionMismatch"))
    passed = evaluate_pass(result, fail_percent, fail_on_mismatch)

    diff_path: Path | None = None
    diff_bytes: int | None = None
    if result.diff_png is not None:
        diff_bytes = len(result.diff_png)
        if write_diff:
            diff_path = ctx.artifacts.require_safe_path(
                diff_path_arg or Path(ctx.config.diff_dir) / f"diff-{now_file_safe()}.png", "diffPath"
            )
            ctx.artifacts.write_bytes(diff_path, result.diff_png)

    lines = [f"visual_diff: pass={'yes' if passed else 'no'}", f"diffPercent={result.diff_percent:.4f}%"]
    if fail_percent is not None:
        lines.append(f"failPercent={fail_percent:g}%")
    lines.append(f"dimensionMismatch={'yes' if result.dimension_mismatch else 'no'}")
    if diff_path:
        lines.append(f"diffPath={diff_path}")
    if full_page_fallback:
        lines.append("fullPageFallback=yes (candidate is a viewport capture)")

    out = ToolResult.text(
        "\n".join(lines),
        {
            "pass": passed,
            "failPercent": fail_percent,
            "failOnDimensionMismatch": fail_on_mismatch,
            "baselinePath": str(baseline_path),
            "candidatePath": str(candidate_path) if candidate_path else None,
            "diffPath": str(diff_path) if diff_path else None,
            "diffBytes": diff_bytes,
            "fullPageFallback": full_page_fallback,
            **result.metrics,
        },
    )
    if inline_diff and result.diff_png is not None and diff_bytes < MAX_INLINE_SCREENSHOT_BYTES:
        out.add_image(base64.b64encode(result.diff_png).decode("ascii"), "image/png")
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Viewport matrix
# ─────────────────────────────────────────────────────────────────────────────


def normalize_viewports(raw: Any) -> list[dict[str, Any]]:
    """Validate viewport entries; per-entry ``fullPage``/``waitMs`` stay ``None`` when not overridden."""
    entries = raw if isinstance(raw, list) and raw else DEFAULT_VIEWPORTS
    out: list[dict[str, Any]] = []
    for i, entry in enumerate(entries):
        v = entry if isinstance(entry, dict) else {}
        width = opt_number(v, "width")
        height = opt_number(v, "height")
        if width is None or height is None or width <= 0 or height <= 0:
            raise ToolError(INVALID_ARG, f"Invalid viewport width/height at index {i}")
        scale = opt_number(v, "deviceScaleFactor")
        wait = opt_number(v, "waitMs")
        out.append(
            {
                "name": opt_str(v, "name") or f"viewport-{i + 1}",
                "width": int(width),
                "height": int(height),
                "mobile": bool(v.get("mobile")),
                "deviceScaleFactor": scale if scale is not None and scale > 0 else 1,
                "fullPage": v["fullPage"] if isinstance(v.get("fullPage"), bool) else None,
                "waitMs": max(0, int(wait)) if wait is not None else None,
            }
        )
    return out


def handle_qa_matrix(ctx: ToolContext, args: dict[str, Any]) -> ToolResult:
    session = ctx.session
    viewports = normalize_viewports(args.get("viewports"))

    fmt = str(args.get("format") or "png")
    quality = args.get("quality")
    default_full_page = bool(args.get("fullPage"))
    default_wait = opt_int(args, "waitMs", 120, 0)
    include_audit = opt_bool(args, "includeLayoutAudit", True)
    include_assertions = opt_bool(args, "includeAssertions", True)
    include_events = opt_bool(args, "includeEvents", True)
    events_limit = opt_int(args, "eventsLimit", 150, 1)
    inline_limit = opt_int(args, "inlineLimit", 0, 0)
    rules = LayoutRules.from_raw(args.get("assertRules"))

    if opt_str(args, "outputDir"):
        output_dir = ctx.artifacts.require_safe_path(args["outputDir"], "outputDir")
    else:
        output_dir = ctx.artifacts.require_safe_path(Path(ctx.config.matrix_dir) / now_file_safe(), "outputDir")
    ctx.artifacts.make_dir(output_dir)

    created_at = now_iso()
    results: list[dict[str, Any]] = []
    failures: list[dict[str, Any]] = []
    inline_images: list[tuple[str, str]] = []

    for i, vp in enumerate(viewports):
        seq_start = session.events.last_seq
        full_page = default_full_page if vp["fullPage"] is None else vp["fullPage"]
        try:
            session.set_viewport(vp["width"], vp["height"], vp["deviceScaleFactor"], vp["mobile"])
            sleep_ms(default_wait if vp["waitMs"] is None else vp["waitMs"])

            shot = session.screenshot(fmt, quality, full_page)
            file_name = f"{i + 1:02d}-{sanitize_file_base(vp['name'], 'viewport')}.{ext_for_format(shot['format'])}"
            file_path = output_dir / file_name
            size = ctx.artifacts.write_base64(file_path, shot["base64"])

            events: list[dict[str, Any]] | None = None
            if include_events:
                events = session.list_events(since_seq=seq_start, limit=events_limit, types=list(EVENT_TYPES))

            layout_audit = assertion = None
            if include_audit or include_assertions:
                metrics = _metrics_for_rules(ctx, rules) if include_assertions else collect_layout_metrics(ctx)
                if include_audit:
                    layout_audit = audit_layout(metrics)
                if include_assertions:
                    assertion = assert_layout(metrics, rules)
        except ToolError as exc:
            logger.info("qa_matrix: viewport %s failed: %s", vp["name"], exc)
            failures.append(
                {"viewport": {"name": vp["name"], "width": vp["width"], "height": vp["height"]}, "error": str(exc)}
            )
            continue

        results.append(
            {
                "viewport": {k: vp[k] for k in ("name", "width", "height", "mobile", "deviceScaleFactor")},
                "screenshot": {
                    "fileName": file_name,
                    "filePath": str(file_path),
                    "bytes": size,
                    "format": shot["format"],
                    "fullPage": full_page,
                },
                "eventSummary": summarize_events(events) if events is not None else None,
                "eventCount": len(events) if events is not None else None,
                "layoutAudit": layout_audit,
                "assertion": assertion,
            }
        )
        if len(inline_images) < inline_limit and size < MAX_INLINE_SCREENSHOT_BYTES:
            inline_images.append((shot["base64"], mime_for_format(shot["format"])))

    if opt_bool(args, "clearViewportAtEnd", True):
        try:
            session.clear_viewport()
        except ToolError as exc:
            logger.warning("qa_matrix: could not clear viewport override: %s", exc)

    passed_count = sum(1 for r in results if r["assertion"] and r["assertion"]["pass"]) if include_assertions else None
    overall_pass = not failures and (not include_assertions or passed_count == len(results))

    manifest_path: Path | None = None
    if opt_bool(args, "writeManifest", True):
        manifest_path = output_dir / "manifest.json"
        target = session.target
        ctx.artifacts.write_json(
            manifest_path,
            {
                "schemaVersion": 1,
                "createdAt": created_at,
                "serverInfo": SERVER_INFO,
                "browserUrl": session.browser_url or None,
                "selectedTarget": target.to_dict() if target else None,
                "outputDir": relative_display(output_dir),
                "includeLayoutAudit": include_audit,
                "includeAssertions": include_assertions,
                "includeEvents": include_events,
                "assertRules": rules.to_dict() if include_assertions else None,
                "overallPass": overall_pass,
                "counts": {
                    "viewports": len(viewports),
                    "succeeded": len(results),
                    "failed": len(failures),
                    "assertionPassed": passed_count,
                },
                "results": [
                    {**r, "screenshot": {k: v for k, v in r["screenshot"].items() if k != "filePath"}}
                    for r in results
                ],
                "failures": failures,
            },
        )

    lines = [
        f"qa_matrix: {len(results)}/{len(viewports)} viewports captured",
        f"overallPass={'yes' if overall_pass else 'no'}",
    ]
    if include_assertions:
        lines.append(f"assertionPassed={passed_count}/{len(results)}")
    if failures:
        lines.append(f"failures={len(failures)}")
    lines.append(f"outputDir={output_dir}")
    if manifest_path:
        lines.append(f"manifestPath={manifest_path}")

    out = ToolResult.text(
        "\n".join(lines),
        {
            "createdAt": created_at,
            "outputDir": str(output_dir),
            "manifestPath": str(manifest_path) if manifest_path else None,
            "overallPass": overall_pass,
            "includeLayoutAudit": include_audit,
            "includeAssertions": include_assertions,
            "includeEvents": include_events,
            "results": results,
            "failures": failures,
        },
    )
    for data, mime in inline_images:
        out.add_image(data, mime)
    return out


QA_HANDLERS: dict[str, tuple] = {
    "audit_layout": (handle_audit_layout, True),
    "assert_layout": (handle_assert_layout, True),
    # comparing two files needs no browser; live captures check for a session
    "visual_diff": (handle_visual_diff, False),
    "qa_matrix": (handle_qa_matrix, True),
}
