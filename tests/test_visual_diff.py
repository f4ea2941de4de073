from __future__ import annotations

from io import BytesIO

import pytest
from conftest import png_bytes
from PIL import Image

from mcp_servers.overty.errors import ToolError
from mcp_servers.overty.qa import evaluate_pass, visual_diff
from mcp_servers.overty.qa.visual_diff import normalize_threshold


def _with_block(width: int, height: int, block: tuple[int, int, int, int], color: tuple[int, int, int, int]) -> bytes:
    img = Image.new("RGBA", (width, height), (255, 255, 255, 255))
    img.paste(Image.new("RGBA", (block[2] - block[0], block[3] - block[1]), color), block[:2])
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def test_identical_images() -> None:
    data = png_bytes(10, 10)
    result = visual_diff(data, data)

    assert result.metrics["diffPixels"] == 0
    assert result.diff_percent == 0
    assert result.metrics["maxDelta"] == 0
    assert result.dimension_mismatch is False
    assert result.diff_png is not None
    assert evaluate_pass(result, 0, True)


def test_counts_changed_block() -> None:
    baseline = png_bytes(10, 10)
    candidate = _with_block(10, 10, (0, 0, 5, 2), (0, 0, 0, 255))
    result = visual_diff(baseline, candidate)

    assert result.metrics["diffPixels"] == 10
    assert result.diff_percent == pytest.approx(10.0)
    assert result.metrics["maxDelta"] == 255
    assert not evaluate_pass(result, 5, False)
    assert evaluate_pass(result, 10, False)
    assert evaluate_pass(result, None, False)


def test_threshold_ignores_small_deltas() -> None:
    baseline = png_bytes(4, 4)
    candidate = _with_block(4, 4, (0, 0, 4, 4), (250, 250, 250, 255))

    assert visual_diff(baseline, candidate).metrics["diffPixels"] == 0
    assert visual_diff(baseline, candidate, threshold=0).metrics["diffPixels"] == 16
    assert visual_diff(baseline, candidate, threshold=5).metrics["diffPixels"] == 0


def test_dimension_mismatch_compares_common_region() -> None:
    result = visual_diff(png_bytes(10, 8), png_bytes(6, 12), include_diff=False)

    assert result.metrics["comparedDimensions"] == {"width": 6, "height": 8}
    assert result.metrics["comparedPixels"] == 48
    assert result.dimension_mismatch is True
    assert result.diff_png is None
    assert evaluate_pass(result, 1, False)
    assert not evaluate_pass(result, 1, True)


def test_diff_raster_paints_changed_pixels() -> None:
    baseline = png_bytes(4, 4)
    candidate = _with_block(4, 4, (0, 0, 1, 1), (0, 0, 0, 255))
    result = visual_diff(baseline, candidate)

    with Image.open(BytesIO(result.diff_png or b"")) as img:
        assert img.size == (4, 4)
        assert img.getpixel((0, 0)) == (255, 64, 64, 255)
        assert img.getpixel((3, 3)) == (255, 255, 255, 255)


def test_undecodable_image() -> None:
    with pytest.raises(ToolError) as exc:
        visual_diff(b"not an image", png_bytes())
    assert exc.value.code == "OVERTY_INVALID_ARG"
    assert "baseline" in exc.value.message


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 16), (True, 16), ("x", 16), (float("nan"), 16), (-3, 0), (999, 255), (7.5, 7.5), ("12", 12)],
)
def test_threshold_normalization(raw: object, expected: float) -> None:
    assert normalize_threshold(raw) == expected
