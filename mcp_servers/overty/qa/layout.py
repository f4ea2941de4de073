"""
Layout audit and rule assertions.

The page-side collector (``js_helpers.layout_metrics_expression``) only reports raw
geometry and computed styles. Everything here is a pure function over that payload:

- audit_layout: horizontal overflow + elements extending past the viewport
- assert_layout: per-category thresholds (overflow, clipped text, overlaps, tap targets)
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any

HIDING_OVERFLOW_VALUES = frozenset({"hidden", "clip", "auto", "scroll"})
CLIP_SLACK_PX = 1

RULE_KEYS = (
    "overflowTolerancePx",
    "maxHorizontalOverflowPx",
    "maxOverflowingElements",
    "maxClippedText",
    "maxOverlapCount",
    "maxTapTargetViolations",
    "minTapTargetPx",
    "overlapTolerancePx",
    "maxElements",
    "overlapCandidateLimit",
    "overlapSelector",
    "includeOverlaps",
)

AUDIT_SUGGESTIONS = (
    "Horizontal overflow detected. Common quick fix: body { overflow-x: hidden; }",
    "Find the overflowing element(s) and apply max-width: 100vw or clamp widths.",
)

SUGGESTIONS = {
    "overflow": "Investigate overflow offenders and constrain widths to viewport bounds.",
    "CLIPPED_TEXT": "Review text containers with clipping/overflow styles and improve responsive wrapping.",
    "OVERLAPS": "Review stacking/positioning rules for overlapping elements.",
    "TAP_TARGETS_UNDER_MIN": "Increase hit area for interactive elements (recommended minimum: 44px).",
}


def _num(value: Any, fallback: float) -> float:
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    return n if math.isfinite(n) else fallback


def _int(value: Any, fallback: int, minimum: int | None = None) -> int:
    n = int(math.floor(_num(value, fallback)))
    return max(minimum, n) if minimum is not None else n


def _compact(n: float) -> int | float:
    return int(n) if float(n).is_integer() else n


@dataclass(slots=True)
class LayoutRules:
    overflowTolerancePx: int = 1  # noqa: N815
    maxHorizontalOverflowPx: int = 0  # noqa: N815
    maxOverflowingElements: int = 0  # noqa: N815
    maxClippedText: int = 0  # noqa: N815
    maxOverlapCount: int = 0  # noqa: N815
    maxTapTargetViolations: int = 0  # noqa: N815
    minTapTargetPx: float = 44  # noqa: N815
    overlapTolerancePx: float = 2  # noqa: N815
    maxElements: int = 30  # noqa: N815
    overlapCandidateLimit: int = 120  # noqa: N815
    overlapSelector: str = "body *"  # noqa: N815
    includeOverlaps: bool = True  # noqa: N815

    @classmethod
    def from_raw(cls, raw: Any) -> LayoutRules:
        """Normalize a loosely-typed rules object, clamping each field to its floor."""
        rules = raw if isinstance(raw, dict) else {}
        selector = rules.get("overlapSelector")
        return cls(
            overflowTolerancePx=_int(rules.get("overflowTolerancePx"), 1, 0),
            maxHorizontalOverflowPx=_int(rules.get("maxHorizontalOverflowPx"), 0, 0),
            maxOverflowingElements=_int(rules.get("maxOverflowingElements"), 0, 0),
            maxClippedText=_int(rules.get("maxClippedText"), 0, 0),
            maxOverlapCount=_int(rules.get("maxOverlapCount"), 0, 0),
            maxTapTargetViolations=_int(rules.get("maxTapTargetViolations"), 0, 0),
            minTapTargetPx=_compact(_num(rules.get("minTapTargetPx"), 44)),
            overlapTolerancePx=_compact(_num(rules.get("overlapTolerancePx"), 2)),
            maxElements=_int(rules.get("maxElements"), 30, 1),
            overlapCandidateLimit=_int(rules.get("overlapCandidateLimit"), 120, 10),
            overlapSelector=selector.strip() if isinstance(selector, str) and selector.strip() else "body *",
            includeOverlaps=rules.get("includeOverlaps") is not False,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def merge_rule_args(args: dict[str, Any]) -> dict[str, Any]:
    """Combine ``args["rules"]`` with top-level rule fields (top-level wins)."""
    base = args.get("rules")
    merged = dict(base) if isinstance(base, dict) else {}
    for key in RULE_KEYS:
        if key in args:
            merged[key] = args[key]
    return merged


def _viewport(metrics: dict[str, Any]) -> tuple[float, float, float, float]:
    vp = metrics.get("viewport") or {}
    doc = metrics.get("document") or {}
    vw = _num(vp.get("width"), 0)
    vh = _num(vp.get("height"), 0)
    return vw, vh, _num(doc.get("scrollWidth"), vw), _num(doc.get("scrollHeight"), vh)


def _visible(rect: Any) -> bool:
    return isinstance(rect, dict) and _num(rect.get("width"), 0) > 0 and _num(rect.get("height"), 0) > 0


def find_overflowing(metrics: dict[str, Any], tolerance_px: float, limit: int) -> list[dict[str, Any]]:
    vw = _viewport(metrics)[0]
    out: list[dict[str, Any]] = []
    for el in metrics.get("elements") or []:
        if len(out) >= limit:
            break
        rect = el.get("rect") if isinstance(el, dict) else None
        if not _visible(rect):
            continue
        if _num(rect.get("right"), 0) > vw + tolerance_px or _num(rect.get("left"), 0) < -tolerance_px:
            out.append({"selector": el.get("selector"), "rect": rect})
    return out


def is_clipped(item: dict[str, Any]) -> bool:
    """Text is clipped when its scroll extent exceeds the client box and overflow is hidden."""
    clip_x = _num(item.get("scrollWidth"), 0) > _num(item.get("clientWidth"), 0) + CLIP_SLACK_PX
    clip_y = _num(item.get("scrollHeight"), 0) > _num(item.get("clientHeight"), 0) + CLIP_SLACK_PX
    ox = str(item.get("overflowX") or "").lower()
    oy = str(item.get("overflowY") or "").lower()
    return (clip_x or clip_y) and (ox in HIDING_OVERFLOW_VALUES or oy in HIDING_OVERFLOW_VALUES)


def find_clipped_text(metrics: dict[str, Any], limit: int) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for item in metrics.get("textElements") or []:
        if len(out) >= limit:
            break
        if isinstance(item, dict) and str(item.get("textSample") or "").strip() and is_clipped(item):
            out.append(dict(item))
    return out


def find_small_tap_targets(metrics: dict[str, Any], min_px: float, limit: int) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for item in metrics.get("interactive") or []:
        if len(out) >= limit:
            break
        if not isinstance(item, dict):
            continue
        width = _num(item.get("width"), 0)
        height = _num(item.get("height"), 0)
        if width <= 0 or height <= 0:
            continue
        if width < min_px or height < min_px:
            out.append({"selector": item.get("selector"), "width": width, "height": height})
    return out


def is_ancestor_path(a: list[int], b: list[int]) -> bool:
    """True when the node at path ``a`` contains (or is) the node at path ``b``."""
    return len(a) <= len(b) and list(b[: len(a)]) == list(a)


def find_overlaps(
    candidates: list[dict[str, Any]],
    *,
    tolerance_px: float,
    candidate_limit: int,
    sample_limit: int,
) -> tuple[int, list[dict[str, Any]]]:
    """Count intersecting candidate pairs, skipping ancestor/descendant pairs."""
    pool = [c for c in candidates if isinstance(c, dict) and _visible(c.get("rect"))][:candidate_limit]
    count = 0
    samples: list[dict[str, Any]] = []
    for i, a in enumerate(pool):
        ra = a["rect"]
        path_a = a.get("path") or []
        for b in pool[i + 1 :]:
            path_b = b.get("path") or []
            if is_ancestor_path(path_a, path_b) or is_ancestor_path(path_b, path_a):
                continue
            rb = b["rect"]
            left = max(_num(ra.get("left"), 0), _num(rb.get("left"), 0))
            right = min(_num(ra.get("right"), 0), _num(rb.get("right"), 0))
            top = max(_num(ra.get("top"), 0), _num(rb.get("top"), 0))
            bottom = min(_num(ra.get("bottom"), 0), _num(rb.get("bottom"), 0))
            width = right - left
            height = bottom - top
            if width > tolerance_px and height > tolerance_px:
                count += 1
                if len(samples) < sample_limit:
                    samples.append(
                        {
                            "a": a.get("selector"),
                            "b": b.get("selector"),
                            "intersection": {"width": width, "height": height, "left": left, "top": top},
                        }
                    )
    return count, samples


def audit_layout(metrics: dict[str, Any], tolerance_px: int = 1, max_elements: int = 30) -> dict[str, Any]:
    tolerance_px = max(0, int(tolerance_px))
    max_elements = max(1, int(max_elements))
    vw, vh, scroll_w, scroll_h = _viewport(metrics)
    horizontal = scroll_w > vw + tolerance_px
    return {
        "viewport": {"width": vw, "height": vh},
        "document": {"scrollWidth": scroll_w, "scrollHeight": scroll_h, "horizontalOverflow": horizontal},
        "overflowingElements": find_overflowing(metrics, tolerance_px, max_elements),
        "suggestions": list(AUDIT_SUGGESTIONS) if horizontal else [],
    }


def assert_layout(metrics: dict[str, Any], rules: LayoutRules | None = None) -> dict[str, Any]:
    rules = rules or LayoutRules()
    vw, vh, scroll_w, scroll_h = _viewport(metrics)
    overflow_px = max(0.0, scroll_w - vw)

    overflowing = find_overflowing(metrics, rules.overflowTolerancePx, rules.maxElements)
    clipped = find_clipped_text(metrics, rules.maxElements)
    taps = find_small_tap_targets(metrics, rules.minTapTargetPx, rules.maxElements)
    overlap_count = 0
    overlap_samples: list[dict[str, Any]] = []
    if rules.includeOverlaps:
        overlap_count, overlap_samples = find_overlaps(
            metrics.get("overlapCandidates") or [],
            tolerance_px=rules.overlapTolerancePx,
            candidate_limit=rules.overlapCandidateLimit,
            sample_limit=rules.maxElements,
        )

    violations: list[dict[str, Any]] = []

    def check(code: str, actual: float, limit: float, **extra: Any) -> None:
        if actual > limit:
            violations.append({"code": code, "actual": _compact(actual), "limit": limit, **extra})

    check("HORIZONTAL_OVERFLOW_PX", overflow_px, rules.maxHorizontalOverflowPx)
    check("OVERFLOWING_ELEMENTS", len(overflowing), rules.maxOverflowingElements)
    check("CLIPPED_TEXT", len(clipped), rules.maxClippedText)
    check("OVERLAPS", overlap_count, rules.maxOverlapCount)
    check("TAP_TARGETS_UNDER_MIN", len(taps), rules.maxTapTargetViolations, minTapTargetPx=rules.minTapTargetPx)

    codes = {v["code"] for v in violations}
    suggestions: list[str] = []
    if codes & {"HORIZONTAL_OVERFLOW_PX", "OVERFLOWING_ELEMENTS"}:
        suggestions.append(SUGGESTIONS["overflow"])
    for code in ("CLIPPED_TEXT", "OVERLAPS", "TAP_TARGETS_UNDER_MIN"):
        if code in codes:
            suggestions.append(SUGGESTIONS[code])

    return {
        "pass": not violations,
        "rules": rules.to_dict(),
        "metrics": {
            "viewport": {"width": vw, "height": vh},
            "document": {
                "scrollWidth": scroll_w,
                "scrollHeight": scroll_h,
                "horizontalOverflowPx": _compact(overflow_px),
            },
            "overflowingElements": len(overflowing),
            "clippedText": len(clipped),
            "overlapCount": overlap_count,
            "tapTargetsUnderMin": len(taps),
        },
        "samples": {
            "overflowingElements": overflowing,
            "clippedText": clipped,
            "overlaps": overlap_samples,
            "tapTargetsUnderMin": taps,
        },
        "violations": violations,
        "suggestions": suggestions,
    }
