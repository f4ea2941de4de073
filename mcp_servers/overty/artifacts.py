"""Output-path allow-listing and atomic artifact writes.

Every file the server reads or writes on behalf of a tool call must resolve inside one
of the configured output roots; writes land in a temp sibling and are renamed into place.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from .errors import INVALID_ARG, IO_ERROR, ToolError

logger = logging.getLogger("mcp.overty.artifacts")

MIME_BY_EXT = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def mime_from_path(path: str | Path, fallback: str = "image/png") -> str:
    return MIME_BY_EXT.get(Path(path).suffix.lower(), fallback)


def ext_for_format(fmt: str) -> str:
    return "jpg" if fmt == "jpeg" else fmt


def mime_for_format(fmt: str) -> str:
    return f"image/{fmt}"


class ArtifactWriter:
    def __init__(self, roots: list[str]) -> None:
        self.roots = [Path(r).resolve() for r in roots if r]

    def is_safe_path(self, path: str | Path) -> bool:
        resolved = Path(path).resolve()
        if resolved == Path(resolved.anchor):
            return False
        return any(resolved == root or root in resolved.parents for root in self.roots)

    def resolve_safe_path(self, raw: Any) -> Path | None:
        """Resolve ``raw`` against the working directory; ``None`` unless it lands in an allowed root."""
        text = str(raw or "").strip()
        if not text or "\0" in text:
            return None
        resolved = (Path.cwd() / Path(text).expanduser()).resolve()
        return resolved if self.is_safe_path(resolved) else None

    def require_safe_path(self, raw: Any, label: str) -> Path:
        resolved = self.resolve_safe_path(raw)
        if resolved is None:
            raise ToolError(
                INVALID_ARG,
                f"Invalid {label}",
                {"path": str(raw), "allowedRoots": [str(r) for r in self.roots]},
            )
        return resolved

    def write_bytes(self, path: str | Path, data: bytes) -> int:
        target = Path(path)
        tmp = target.with_name(f"{target.name}.tmp-{os.getpid()}-{int(time.time() * 1000)}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise ToolError(IO_ERROR, f"Could not write {target}", str(exc)) from exc
        logger.debug("wrote %s (%d bytes)", target, len(data))
        return len(data)

    def write_text(self, path: str | Path, text: str) -> int:
        return self.write_bytes(path, text.encode("utf-8"))

    def write_json(self, path: str | Path, obj: Any) -> int:
        return self.write_text(path, json.dumps(obj, ensure_ascii=False, indent=2))

    def write_base64(self, path: str | Path, data_b64: str) -> int:
        return self.write_bytes(path, base64.b64decode(data_b64))

    def read_bytes(self, path: str | Path, label: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise ToolError(IO_ERROR, f"Could not read {label}: {path}", str(exc)) from exc

    def make_dir(self, path: str | Path) -> Path:
        target = Path(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ToolError(IO_ERROR, f"Could not create directory {target}", str(exc)) from exc
        return target
