"""Protocol and tool contract definitions.

This is the single source of truth for:
- server identity and the protocol version handshake
- capabilities and instructions advertised by initialize
- the tool list
"""

from __future__ import annotations

from typing import Any

from ..config import DEFAULT_BROWSER_URL
from .definitions import TOOL_DEFINITIONS

SERVER_INFO: dict[str, str] = {"name": "overty", "version": "0.1.0"}

SUPPORTED_PROTOCOL_VERSIONS = ["2025-06-18", "2025-03-26", "2024-11-05"]
DEFAULT_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

CAPABILITIES: dict[str, Any] = {"tools": {}}

CAPABILITY_LINES = (
    "execute JS (inject CSS, query layout, read state)",
    "set CSS quickly (set_css)",
    "install CSS persistently across reloads (install_css / uninstall_css / list_installed_css)",
    "set a consistent viewport (set_viewport)",
    "navigate with readiness waits (navigate)",
    "wait for stability (wait_for) or network idle (wait_for_network_idle)",
    "inspect console/log/exception events (list_events)",
    "audit and assert layout quality (audit_layout / assert_layout)",
    "compare screenshots with pixel-diff metrics (visual_diff)",
    "run viewport QA sweeps with screenshots + assertions (qa_matrix)",
    "capture a QA bundle (capture_bundle)",
    "take page or element screenshots (take_screenshot / screenshot_element)",
    "snapshot DOM outerHTML (take_dom_snapshot)",
    "batch-render standalone HTML mockups with CSS variants + gallery (render_html_mockups)",
)


def select_protocol(requested: Any) -> str:
    """Echo the client's protocol version; fall back to the default when none is given."""
    if isinstance(requested, str) and requested.strip():
        return requested.strip()
    return DEFAULT_PROTOCOL_VERSION


def instructions(browser_url: str = DEFAULT_BROWSER_URL) -> str:
    lines = ["overty connects to a CDP endpoint (Chrome/Electron) and lets you:"]
    lines.extend(f"- {line}" for line in CAPABILITY_LINES)
    lines.append("")
    lines.append(f"Default CDP endpoint: {browser_url}")
    lines.append("Safety: connect() refuses non-loopback endpoints unless allowRemote=true.")
    return "\n".join(lines)


def initialize_result(protocol: str, browser_url: str = DEFAULT_BROWSER_URL) -> dict[str, Any]:
    return {
        "protocolVersion": protocol,
        "serverInfo": SERVER_INFO,
        "capabilities": CAPABILITIES,
        "instructions": instructions(browser_url),
    }


def tools_list() -> list[dict[str, Any]]:
    return TOOL_DEFINITIONS
