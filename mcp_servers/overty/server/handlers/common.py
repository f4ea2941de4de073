"""
Argument coercion and image-delivery helpers shared by the tool handlers.

Tool arguments arrive as loosely-typed JSON; these helpers apply the same
"finite number or default" and "non-empty string" rules everywhere.
"""

from __future__ import annotations

import base64
import math
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ...artifacts import ext_for_format, mime_for_format
from ...config import MAX_INLINE_SCREENSHOT_BYTES
from ...errors import INVALID_ARG, ToolError
from ...gallery import now_file_safe
from ...js_helpers import layout_metrics_expression
from ..types import ToolResult

if TYPE_CHECKING:
    from ..types import ToolContext

LAYOUT_TIMEOUT_SECONDS = 30.0


def opt_str(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def require_str(args: dict[str, Any], key: str, *, allow_blank: bool = False) -> str:
    value = args.get(key)
    if not isinstance(value, str) or (not allow_blank and not value.strip()):
        raise ToolError(INVALID_ARG, f"Missing required string argument: {key}")
    return value


def opt_number(args: dict[str, Any], key: str) -> float | None:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def opt_int(args: dict[str, Any], key: str, default: int, minimum: int | None = None) -> int:
    value = opt_number(args, key)
    n = default if value is None else int(math.floor(value))
    return max(minimum, n) if minimum is not None else n


def opt_bool(args: dict[str, Any], key: str, default: bool) -> bool:
    """``default`` unless the flag is given; default-true flags are only disabled by an explicit ``false``."""
    if key not in args or args[key] is None:
        return default
    if default:
        return args[key] is not False
    return bool(args[key])


def opt_str_list(args: dict[str, Any], key: str) -> list[str] | None:
    value = args.get(key)
    if not isinstance(value, list):
        return None
    return [str(v) for v in value]


def timeout_seconds(args: dict[str, Any], default_ms: int = 30_000) -> float | None:
    """``timeoutMs`` in seconds; ``None`` (session default) when zero."""
    return opt_int(args, "timeoutMs", default_ms, 0) / 1000.0 or None


def sleep_ms(ms: int) -> None:
    if ms > 0:
        time.sleep(ms / 1000.0)


def relative_display(path: Path) -> str:
    """``path`` relative to the working directory when it lies beneath it."""
    try:
        return str(path.relative_to(Path.cwd().resolve())) or str(path)
    except ValueError:
        return str(path)


def deliver_image(
    ctx: ToolContext,
    shot: dict[str, Any],
    raw_path: Any,
    *,
    default_name: str,
    meta: dict[str, Any] | None = None,
    saved_label: str = "screenshot",
) -> ToolResult:
    """Return a capture inline when small and unrequested on disk; otherwise write it to an allowed path."""
    data_b64 = shot["base64"]
    fmt = shot["format"]
    size = len(base64.b64decode(data_b64))
    structured: dict[str, Any] = {**(meta or {}), "bytes": size, "format": fmt}
    if shot.get("fullPageFallback"):
        structured["fullPageFallback"] = True

    requested = str(raw_path).strip() if raw_path else ""
    target: Path | None = ctx.artifacts.require_safe_path(requested, "filePath") if requested else None

    if target is None and size < MAX_INLINE_SCREENSHOT_BYTES:
        result = ToolResult(structured=structured)
        return result.add_image(data_b64, mime_for_format(fmt))

    if target is None:
        target = ctx.artifacts.require_safe_path(
            Path(ctx.config.screenshot_dir) / f"{default_name}-{now_file_safe()}.{ext_for_format(fmt)}",
            "filePath",
        )
    ctx.artifacts.write_base64(target, data_b64)
    return ToolResult.text(f"Saved {saved_label} to {target}", {**structured, "filePath": str(target)})


def collect_layout_metrics(
    ctx: ToolContext,
    *,
    include_overlaps: bool = False,
    overlap_selector: str = "body *",
    overlap_candidate_limit: int = 120,
) -> dict[str, Any]:
    """Run the page-side layout collector and return its raw facts."""
    expression = layout_metrics_expression(
        overlap_selector=overlap_selector,
        overlap_candidate_limit=overlap_candidate_limit,
        include_overlaps=include_overlaps,
    )
    value = ctx.session.evaluate_value(expression, timeout=LAYOUT_TIMEOUT_SECONDS)
    return value if isinstance(value, dict) else {}
