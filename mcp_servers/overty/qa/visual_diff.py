"""Pixel-level comparison of two captured screenshots (Pillow, in-process)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from io import BytesIO
from typing import Any

from PIL import Image, ImageChops, ImageStat, UnidentifiedImageError

from ..errors import INVALID_ARG, ToolError

DEFAULT_THRESHOLD = 16
DIFF_COLOR = (255, 64, 64, 255)


@dataclass(slots=True)
class VisualDiffResult:
    metrics: dict[str, Any]
    diff_png: bytes | None = None

    @property
    def diff_percent(self) -> float:
        return self.metrics["diffPercent"]

    @property
    def dimension_mismatch(self) -> bool:
        return self.metrics["dimensionMismatch"]


def normalize_threshold(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_THRESHOLD
    try:
        t = float(value)
    except (TypeError, ValueError):
        return DEFAULT_THRESHOLD
    if not math.isfinite(t):
        return DEFAULT_THRESHOLD
    t = max(0.0, min(255.0, t))
    return int(t) if t.is_integer() else t


def _decode(data: bytes, label: str) -> Image.Image:
    try:
        with Image.open(BytesIO(data)) as img:
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise ToolError(INVALID_ARG, f"Could not decode {label} image", str(exc)) from exc


def visual_diff(
    baseline: bytes,
    candidate: bytes,
    threshold: Any = DEFAULT_THRESHOLD,
    include_diff: bool = True,
) -> VisualDiffResult:
    """Compare the overlapping top-left region of two images.

    A pixel differs when its largest absolute RGBA channel delta exceeds ``threshold``.
    The diff raster paints differing pixels red and the rest as the candidate's luma.
    """
    threshold = normalize_threshold(threshold)
    base_img = _decode(baseline, "baseline")
    cand_img = _decode(candidate, "candidate")
    bw, bh = base_img.size
    cw, ch = cand_img.size
    width, height = min(bw, cw), min(bh, ch)
    if not width or not height:
        raise ToolError(INVALID_ARG, "Invalid image dimensions for diff.")

    box = (0, 0, width, height)
    base_img = base_img.crop(box)
    cand_img = cand_img.crop(box)

    delta = ImageChops.difference(base_img, cand_img)
    r, g, b, a = delta.split()
    max_channel = ImageChops.lighter(ImageChops.lighter(r, g), ImageChops.lighter(b, a))

    compared = width * height
    histogram = max_channel.histogram()
    diff_pixels = sum(histogram[int(math.floor(threshold)) + 1 :])
    max_delta = max_channel.getextrema()[1]
    mean_delta = sum(ImageStat.Stat(delta).sum) / 4 / compared

    diff_png = None
    if include_diff:
        mask = max_channel.point(lambda v: 255 if v > threshold else 0)
        gray = cand_img.convert("L").convert("RGBA")
        painted = Image.composite(Image.new("RGBA", (width, height), DIFF_COLOR), gray, mask)
        buf = BytesIO()
        painted.save(buf, format="PNG")
        diff_png = buf.getvalue()

    metrics = {
        "baselineDimensions": {"width": bw, "height": bh},
        "candidateDimensions": {"width": cw, "height": ch},
        "comparedDimensions": {"width": width, "height": height},
        "comparedPixels": compared,
        "diffPixels": diff_pixels,
        "diffPercent": diff_pixels * 100 / compared,
        "meanDelta": mean_delta,
        "maxDelta": max_delta,
        "threshold": threshold,
        "dimensionMismatch": (bw, bh) != (cw, ch),
    }
    return VisualDiffResult(metrics=metrics, diff_png=diff_png)


def evaluate_pass(result: VisualDiffResult, fail_percent: float | None, fail_on_dimension_mismatch: bool) -> bool:
    if fail_percent is not None and result.diff_percent > fail_percent:
        return False
    return not (fail_on_dimension_mismatch and result.dimension_mismatch)
