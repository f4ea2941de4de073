from __future__ import annotations

import base64
import json
from pathlib import Path

import pytest

from mcp_servers.overty.artifacts import ArtifactWriter, ext_for_format, mime_from_path
from mcp_servers.overty.errors import ToolError


def test_safe_path_must_live_under_a_root(tmp_path: Path) -> None:
    root = tmp_path / "out"
    writer = ArtifactWriter([str(root)])

    assert writer.resolve_safe_path(root / "a" / "b.png") == (root / "a" / "b.png").resolve()
    assert writer.resolve_safe_path(root) == root.resolve()
    assert writer.resolve_safe_path(root / ".." / "escape.png") is None
    assert writer.resolve_safe_path(tmp_path / "outside.png") is None
    assert writer.resolve_safe_path("") is None
    assert writer.resolve_safe_path("bad\0name") is None


def test_relative_paths_resolve_against_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    writer = ArtifactWriter([str(tmp_path / "out")])
    assert writer.resolve_safe_path("out/shot.png") == (tmp_path / "out" / "shot.png").resolve()


def test_require_safe_path_reports_roots(tmp_path: Path) -> None:
    writer = ArtifactWriter([str(tmp_path / "out")])
    with pytest.raises(ToolError) as exc:
        writer.require_safe_path("/etc/passwd", "filePath")
    assert exc.value.code == "OVERTY_INVALID_ARG"
    assert exc.value.message == "Invalid filePath"
    assert exc.value.details["allowedRoots"] == [str((tmp_path / "out").resolve())]


def test_writes_are_atomic_and_create_parents(tmp_path: Path) -> None:
    writer = ArtifactWriter([str(tmp_path)])
    target = tmp_path / "deep" / "dir" / "data.json"

    writer.write_json(target, {"a": 1})
    size = writer.write_base64(tmp_path / "img.bin", base64.b64encode(b"\x89PNG").decode())

    assert json.loads(target.read_text()) == {"a": 1}
    assert size == 4
    assert sorted(p.name for p in (tmp_path / "deep" / "dir").iterdir()) == ["data.json"]


def test_read_missing_file(tmp_path: Path) -> None:
    writer = ArtifactWriter([str(tmp_path)])
    with pytest.raises(ToolError) as exc:
        writer.read_bytes(tmp_path / "nope.png", "baseline")
    assert exc.value.code == "OVERTY_IO_ERROR"


def test_format_helpers() -> None:
    assert ext_for_format("jpeg") == "jpg"
    assert ext_for_format("webp") == "webp"
    assert mime_from_path("x/shot.JPG") == "image/jpeg"
    assert mime_from_path("x/shot.bmp") == "image/png"
