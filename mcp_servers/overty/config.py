from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BROWSER_URL = "http://127.0.0.1:9222"
DEFAULT_STYLE_ID = "overty-style"
MAX_INLINE_SCREENSHOT_BYTES = 2_000_000


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser().resolve())


def _output_dir(env_name: str, kind: str) -> str:
    raw = os.environ.get(env_name)
    if raw and raw.strip():
        return expand_path(raw.strip())
    return str(Path.cwd().resolve() / "output" / "overty" / kind)


def _env_flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}


def parse_sidecar_args(raw: str | None) -> list[str]:
    """Parse sidecar arguments given either as a JSON array or a shell-like string."""
    text = (raw or "").strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item or "").strip()]
    return shlex.split(text)


@dataclass
class OvertyConfig:
    browser_url: str = DEFAULT_BROWSER_URL
    debug: bool = False
    cdp_timeout: float = 30.0
    connect_timeout: float = 5.0
    http_timeout: float = 5.0
    screenshot_dir: str = field(default_factory=lambda: _output_dir("OVERTY_SCREENSHOT_DIR", "screenshots"))
    mockup_dir: str = field(default_factory=lambda: _output_dir("OVERTY_MOCKUP_DIR", "mockups"))
    bundle_dir: str = field(default_factory=lambda: _output_dir("OVERTY_BUNDLE_DIR", "bundles"))
    matrix_dir: str = field(default_factory=lambda: _output_dir("OVERTY_MATRIX_DIR", "qa-matrix"))
    diff_dir: str = field(default_factory=lambda: _output_dir("OVERTY_DIFF_DIR", "diffs"))
    with_sidecar: bool = False
    sidecar_exec: str = "node"
    sidecar_command: str = ""
    sidecar_args: list[str] = field(default_factory=list)
    sidecar_start_delay: float = 1.5

    @classmethod
    def from_env(cls) -> OvertyConfig:
        browser_url = (os.environ.get("OVERTY_BROWSER_URL") or "").strip() or DEFAULT_BROWSER_URL
        cdp_timeout_ms = float(os.environ.get("OVERTY_CDP_TIMEOUT_MS", "30000"))
        connect_timeout = float(os.environ.get("OVERTY_CONNECT_TIMEOUT", "5"))
        http_timeout = float(os.environ.get("OVERTY_HTTP_TIMEOUT", "5"))
        delay_ms = int(os.environ.get("OVERTY_CHROME_DEVTOOLS_START_DELAY_MS", "1500"))
        return cls(
            browser_url=browser_url,
            debug=(os.environ.get("OVERTY_DEBUG") or "").strip() == "1",
            cdp_timeout=max(0.1, cdp_timeout_ms / 1000.0),
            connect_timeout=connect_timeout,
            http_timeout=http_timeout,
            with_sidecar=_env_flag("OVERTY_WITH_CHROME_DEVTOOLS"),
            sidecar_exec=(os.environ.get("OVERTY_CHROME_DEVTOOLS_EXEC") or "node").strip(),
            sidecar_command=(os.environ.get("OVERTY_CHROME_DEVTOOLS_CMD") or "").strip(),
            sidecar_args=parse_sidecar_args(os.environ.get("OVERTY_CHROME_DEVTOOLS_ARGS")),
            sidecar_start_delay=max(0, delay_ms) / 1000.0,
        )

    @property
    def output_roots(self) -> list[str]:
        """Allow-listed output directories, deduplicated in declaration order."""
        roots: list[str] = []
        for raw in (self.screenshot_dir, self.mockup_dir, self.bundle_dir, self.matrix_dir, self.diff_dir):
            root = str(Path(raw).resolve()) if raw else ""
            if root and root not in roots:
                roots.append(root)
        return roots
