"""
MCP tool definitions.

Each tool definition contains:
- name: Tool identifier (matches the registry key)
- title / description: what the tool does, phrased for the calling agent
- inputSchema: JSON Schema for tool arguments
"""

from __future__ import annotations

from typing import Any

from ..config import DEFAULT_BROWSER_URL, DEFAULT_STYLE_ID

EVENT_TYPE_ITEMS = {"type": "string", "enum": ["console", "exception", "log"]}


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties or {}, "required": required or []}


def _tool(name: str, title: str, description: str, schema: dict[str, Any]) -> dict[str, Any]:
    return {"name": name, "title": title, "description": description, "inputSchema": schema}


def _int(description: str, minimum: int = 0, **extra: Any) -> dict[str, Any]:
    return {"type": "integer", "minimum": minimum, "description": description, **extra}


def _bool(description: str) -> dict[str, Any]:
    return {"type": "boolean", "description": description}


def _str(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


ENDPOINT_PROPS: dict[str, Any] = {
    "browserUrl": _str(f"CDP HTTP endpoint (default: {DEFAULT_BROWSER_URL}). Bare host:port is accepted."),
    "allowRemote": _bool("If true, allow non-loopback CDP endpoints. Default false (loopback-only)."),
}

IMAGE_PROPS: dict[str, Any] = {
    "format": _str("Image format (default: png).", enum=["png", "jpeg", "webp"]),
    "quality": _int("Image quality (0-100). Only applies to jpeg/webp.", maximum=100),
}

FILE_PATH_PROP = _str(
    "Optional: save the image to this path (must resolve inside an output directory). "
    "If omitted, the image is returned inline when small enough."
)

# ═══════════════════════════════════════════════════════════════════════════════
# TARGETS - discovery and connection
# ═══════════════════════════════════════════════════════════════════════════════

TARGET_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "connect",
        "Connect To CDP",
        "Connect to a Chrome DevTools Protocol endpoint, list its targets and select one for "
        "subsequent tool calls. Selection order: targetId, URL/title substring, targetIndex, "
        "first page, first target.",
        _schema(
            {
                **ENDPOINT_PROPS,
                "targetIndex": _int("Select target by index in the targets list (0-based)."),
                "targetId": _str("Select target by exact target id (from /json/list)."),
                "targetUrlSubstring": _str("Select the first target whose URL contains this substring."),
                "targetTitleSubstring": _str("Select the first target whose title contains this substring."),
                "navigateUrl": _str("Optional: navigate the selected target to this URL after connecting."),
            }
        ),
    ),
    _tool(
        "list_targets",
        "List CDP Targets",
        "List debuggable targets from a CDP HTTP endpoint without connecting.",
        _schema(ENDPOINT_PROPS),
    ),
    _tool(
        "open_page",
        "Open New Page",
        "Open a new page via /json/new and optionally connect to it.",
        _schema(
            {
                **ENDPOINT_PROPS,
                "url": _str("URL to open (default: about:blank)."),
                "connect": _bool("Connect to the new page immediately. Default true."),
                "activate": _bool("Bring the new page to the front (best-effort). Default true."),
            }
        ),
    ),
    _tool(
        "close_target",
        "Close Target",
        "Close a target via /json/close/{id}. Defaults to the connected target, which also disconnects.",
        _schema({**ENDPOINT_PROPS, "targetId": _str("Target id to close (default: connected target).")}),
    ),
]

# ═══════════════════════════════════════════════════════════════════════════════
# PAGE - viewport, navigation, waiting, scripts, events
# ═══════════════════════════════════════════════════════════════════════════════

PAGE_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "set_viewport",
        "Set Viewport",
        "Set a viewport size for consistent screenshots (Emulation.setDeviceMetricsOverride).",
        _schema(
            {
                "width": _int("Viewport width in CSS pixels.", minimum=1),
                "height": _int("Viewport height in CSS pixels.", minimum=1),
                "deviceScaleFactor": {"type": "number", "minimum": 0, "description": "Device scale factor (default: 1)."},
                "mobile": _bool("Emulate a mobile device (default: false)."),
            },
            ["width", "height"],
        ),
    ),
    _tool(
        "clear_viewport",
        "Clear Viewport Override",
        "Clear any viewport override previously set by set_viewport.",
        _schema(),
    ),
    _tool(
        "navigate",
        "Navigate",
        "Navigate the connected target to a URL, then wait for document readiness and optional app signals.",
        _schema(
            {
                "url": _str("URL to navigate to."),
                "waitUntil": _str("Readiness to wait for (default: load).", enum=["none", "domcontentloaded", "load"]),
                "waitForText": _str("Optional: wait until body innerText contains this substring."),
                "waitForExpression": _str("Optional: JS predicate to wait for after navigation."),
                "timeoutMs": _int("Overall timeout in ms (default: 30000)."),
                "pollMs": _int("Polling interval in ms (default: 100).", minimum=10),
            },
            ["url"],
        ),
    ),
    _tool(
        "wait_for",
        "Wait For",
        "Wait for a delay, a text snippet in the page, or a JS predicate to become truthy.",
        _schema(
            {
                "timeMs": _int("Sleep for this many milliseconds."),
                "text": _str("Wait until body innerText contains this substring."),
                "expression": _str("JS predicate evaluated repeatedly until truthy."),
                "timeoutMs": _int("Overall timeout in ms (default: 30000)."),
                "pollMs": _int("Polling interval in ms (default: 100).", minimum=10),
            }
        ),
    ),
    _tool(
        "wait_for_network_idle",
        "Wait For Network Idle",
        "Wait until at most maxInflight requests are in flight for idleMs. Enables the Network domain "
        "lazily and ignores EventSource/WebSocket by default.",
        _schema(
            {
                "idleMs": _int("Required quiet window in ms (default: 500)."),
                "timeoutMs": _int("Overall timeout in ms (default: 30000, 0 = no limit)."),
                "pollMs": _int("Polling interval in ms (default: 100).", minimum=10),
                "maxInflight": _int("Treat as idle when in-flight <= this number (default: 0)."),
                "ignoreResourceTypes": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": 'Network.ResourceType values to ignore (default: ["EventSource","WebSocket"]).',
                },
            }
        ),
    ),
    _tool(
        "execute_js",
        "Execute JavaScript",
        "Evaluate JavaScript in the connected target (Runtime.evaluate).",
        _schema(
            {
                "expression": _str("JavaScript expression to evaluate."),
                "awaitPromise": _bool("Await a returned promise. Default true."),
                "returnByValue": _bool("Return a JSON-serializable value. Default true."),
                "timeoutMs": _int("CDP response timeout in ms (default: 30000)."),
            },
            ["expression"],
        ),
    ),
    _tool(
        "list_events",
        "List Captured Events",
        "List console, exception and log events captured since connect().",
        _schema(
            {
                "sinceSeq": _int("Only return events with seq > sinceSeq."),
                "limit": _int("Max events to return (default: 50).", minimum=1),
                "types": {"type": "array", "items": EVENT_TYPE_ITEMS, "description": "Optional type filter."},
                "clear": _bool("Clear buffered events after returning."),
            }
        ),
    ),
    _tool(
        "take_dom_snapshot",
        "Take DOM Snapshot",
        "Return document.documentElement.outerHTML or the outerHTML of the first selector match.",
        _schema(
            {
                "selector": _str("Optional CSS selector."),
                "maxChars": _int("Maximum characters to return (default: 200000).", minimum=1),
                "timeoutMs": _int("Evaluation timeout in ms (default: 30000)."),
            }
        ),
    ),
]

# ═══════════════════════════════════════════════════════════════════════════════
# CSS - live and persistent style injection
# ═══════════════════════════════════════════════════════════════════════════════

_CSS_PROPS: dict[str, Any] = {
    "css": _str("CSS text."),
    "styleId": _str(f"Style element id (default: {DEFAULT_STYLE_ID})."),
    "mode": _str("Replace or append to the existing style text (default: replace).", enum=["replace", "append"]),
}

CSS_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "set_css",
        "Set CSS",
        f'Create or update a <style> tag in the current document. Default style id: "{DEFAULT_STYLE_ID}".',
        _schema(_CSS_PROPS, ["css"]),
    ),
    _tool(
        "install_css",
        "Install CSS (Persistent)",
        "Install CSS that survives reloads and navigations (Page.addScriptToEvaluateOnNewDocument) "
        "and apply it to the current document.",
        _schema(_CSS_PROPS, ["css"]),
    ),
    _tool(
        "uninstall_css",
        "Uninstall CSS (Persistent)",
        "Remove one (or every) persistent CSS install; by default also removes the live <style> element.",
        _schema(
            {
                "styleId": _str("Style id to uninstall (default: all installs)."),
                "removeFromPage": _bool("Also remove the <style> element from the current document (default: true)."),
            }
        ),
    ),
    _tool(
        "list_installed_css",
        "List Installed CSS",
        "List persistent CSS installs created by install_css in this session.",
        _schema(),
    ),
]

# ═══════════════════════════════════════════════════════════════════════════════
# CAPTURE - screenshots and bundles
# ═══════════════════════════════════════════════════════════════════════════════

CAPTURE_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "take_screenshot",
        "Take Screenshot",
        "Capture a screenshot of the connected target.",
        _schema(
            {
                **IMAGE_PROPS,
                "fullPage": _bool("Attempt a full-page capture (best-effort). Default false."),
                "filePath": FILE_PATH_PROP,
            }
        ),
    ),
    _tool(
        "screenshot_element",
        "Screenshot Element",
        "Capture a single element matched by CSS selector, clipped to the viewport.",
        _schema(
            {
                "selector": _str("CSS selector to target."),
                "index": _int("Which match to use (0-based). Default 0."),
                "paddingPx": {"type": "number", "minimum": 0, "description": "Extra padding around the clip (default: 0)."},
                "scrollIntoView": _bool("Scroll the element into view first. Default true."),
                **IMAGE_PROPS,
                "filePath": FILE_PATH_PROP,
                "timeoutMs": _int("Timeout for lookup + capture in ms (default: 30000)."),
            },
            ["selector"],
        ),
    ),
    _tool(
        "capture_bundle",
        "Capture Bundle",
        "Write a screenshot, DOM snapshot, recent events and a layout audit into one folder for QA reports.",
        _schema(
            {
                "label": _str("Label used in the default folder name."),
                "outputDir": _str("Output directory (default: output/overty/bundles/<timestamp>-<label>/)."),
                **IMAGE_PROPS,
                "fullPage": _bool("Attempt a full-page screenshot. Default false."),
                "inlineScreenshot": _bool("Attach the screenshot inline when small enough. Default false."),
                "includeDom": _bool("Write dom.html (default: true)."),
                "domSelector": _str("Selector for the DOM snapshot (default: documentElement)."),
                "domMaxChars": _int("Max chars for the DOM snapshot (default: 200000).", minimum=1),
                "includeEvents": _bool("Write events.json (default: true)."),
                "eventsSinceSeq": _int("Only include events with seq > eventsSinceSeq."),
                "eventsLimit": _int("Max events to include (default: 200).", minimum=1),
                "eventsTypes": {"type": "array", "items": EVENT_TYPE_ITEMS, "description": "Optional type filter."},
                "clearEvents": _bool("Clear buffered events after capture (default: false)."),
                "includeLayoutAudit": _bool("Write layout.json (default: true)."),
                "tolerancePx": _int("Overflow tolerance in px (default: 1)."),
                "maxElements": _int("Max overflowing elements (default: 30).", minimum=1),
            }
        ),
    ),
]

# ═══════════════════════════════════════════════════════════════════════════════
# QA - layout rules, visual diff, viewport matrix
# ═══════════════════════════════════════════════════════════════════════════════

RULE_PROPS: dict[str, Any] = {
    "overflowTolerancePx": _int("Tolerance for overflow detection (default: 1)."),
    "maxHorizontalOverflowPx": _int("Max allowed horizontal overflow in px (default: 0)."),
    "maxOverflowingElements": _int("Max allowed overflowing elements (default: 0)."),
    "maxClippedText": _int("Max allowed clipped text elements (default: 0)."),
    "maxOverlapCount": _int("Max allowed overlapping element pairs (default: 0)."),
    "maxTapTargetViolations": _int("Max allowed interactive targets under minTapTargetPx (default: 0)."),
    "minTapTargetPx": {"type": "number", "minimum": 1, "description": "Minimum interactive target size (default: 44)."},
    "overlapTolerancePx": {"type": "number", "minimum": 0, "description": "Minimum counted intersection (default: 2)."},
    "maxElements": _int("Max sampled elements per category (default: 30).", minimum=1),
    "overlapCandidateLimit": _int("Max elements considered for overlaps (default: 120).", minimum=10),
    "overlapSelector": _str('Selector scope for overlap detection (default: "body *").'),
    "includeOverlaps": _bool("Run overlap analysis (default: true)."),
}

QA_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "audit_layout",
        "Audit Layout",
        "Detect horizontal overflow and report elements that extend past the viewport.",
        _schema(
            {
                "tolerancePx": _int("Overflow tolerance in px (default: 1)."),
                "maxElements": _int("Max overflowing elements to return (default: 30).", minimum=1),
            }
        ),
    ),
    _tool(
        "assert_layout",
        "Assert Layout Rules",
        "Check overflow, clipped text, overlaps and tap target size against thresholds; returns pass/fail "
        "with sampled violations.",
        _schema({"rules": {"type": "object", "description": "Rule object; top-level fields also accepted."}, **RULE_PROPS}),
    ),
    _tool(
        "visual_diff",
        "Visual Diff",
        "Compare a baseline image with a candidate file or the current page screenshot and report "
        "pixel-diff metrics. Optionally writes a PNG diff.",
        _schema(
            {
                "baselinePath": _str("Path to the baseline image (png/jpg/webp)."),
                "candidatePath": _str("Candidate image path. If omitted, captures the current page."),
                **IMAGE_PROPS,
                "fullPage": _bool("Full-page candidate capture (default: false)."),
                "threshold": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 255,
                    "description": "Per-channel delta above which a pixel differs (default: 16).",
                },
                "failPercent": {"type": "number", "minimum": 0, "maximum": 100, "description": "Max diff percent to pass."},
                "failOnDimensionMismatch": _bool("Fail when dimensions differ (default: false)."),
                "writeDiff": _bool("Write the diff PNG. Default true when diffPath is given."),
                "diffPath": _str("Diff PNG path (default: output/overty/diffs/diff-<timestamp>.png)."),
                "inlineDiff": _bool("Attach the diff image inline when small enough (default: false)."),
            },
            ["baselinePath"],
        ),
    ),
    _tool(
        "qa_matrix",
        "QA Matrix (Viewport Sweep)",
        "Sweep a viewport matrix: screenshot, audit and assert per viewport, then write a manifest.",
        _schema(
            {
                "outputDir": _str("Output directory (default: output/overty/qa-matrix/<timestamp>/)."),
                "viewports": {
                    "type": "array",
                    "description": "Viewport definitions. Default: mobile/tablet/desktop.",
                    "items": _schema(
                        {
                            "name": {"type": "string"},
                            "width": {"type": "integer", "minimum": 1},
                            "height": {"type": "integer", "minimum": 1},
                            "deviceScaleFactor": {"type": "number", "minimum": 0},
                            "mobile": {"type": "boolean"},
                            "fullPage": {"type": "boolean"},
                            "waitMs": {"type": "integer", "minimum": 0},
                        },
                        ["name", "width", "height"],
                    ),
                },
                **IMAGE_PROPS,
                "fullPage": _bool("Default fullPage flag (default: false)."),
                "waitMs": _int("Wait after each viewport change (default: 120)."),
                "includeLayoutAudit": _bool("Include audit_layout per viewport (default: true)."),
                "includeAssertions": _bool("Run assert_layout per viewport (default: true)."),
                "assertRules": {"type": "object", "description": "Rules passed to assert_layout."},
                "includeEvents": _bool("Include an event summary per viewport (default: true)."),
                "eventsLimit": _int("Max events considered per viewport (default: 150).", minimum=1),
                "writeManifest": _bool("Write manifest.json (default: true)."),
                "clearViewportAtEnd": _bool("Clear the viewport override afterwards (default: true)."),
                "inlineLimit": _int("Attach up to this many screenshots inline (default: 0)."),
            }
        ),
    ),
]

# ═══════════════════════════════════════════════════════════════════════════════
# MOCKUPS - batch rendering of standalone HTML
# ═══════════════════════════════════════════════════════════════════════════════

MOCKUP_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "render_html_mockups",
        "Render HTML Mockups (Batch)",
        "Render standalone HTML in a fresh tab, apply CSS variants and save a screenshot per variant "
        "plus a manifest and an index.html gallery. Restores the previously connected target.",
        _schema(
            {
                **ENDPOINT_PROPS,
                "html": _str("Standalone HTML document to render."),
                "baseCss": _str("CSS applied before each variant."),
                "viewport": _schema(
                    {
                        "width": {"type": "integer", "minimum": 1},
                        "height": {"type": "integer", "minimum": 1},
                        "deviceScaleFactor": {"type": "number", "minimum": 0},
                        "mobile": {"type": "boolean"},
                    }
                ),
                "variants": {
                    "type": "array",
                    "description": "CSS variants to render.",
                    "items": _schema(
                        {
                            "name": _str("Variant name (used in file names)."),
                            "css": _str("Variant CSS."),
                            "js": _str("JS to run after applying CSS."),
                            "waitMs": _int("Delay before the screenshot (default: 100)."),
                            "fullPage": _bool("Full-page screenshot."),
                        },
                        ["name"],
                    ),
                },
                **IMAGE_PROPS,
                "outputDir": _str("Output directory (default: output/overty/mockups/<timestamp>/)."),
                "writeHtmlFiles": _bool("Write a standalone .html file per variant. Default true."),
                "writeManifest": _bool("Write manifest.json. Default true."),
                "writeIndexHtml": _bool("Write an index.html gallery. Default true."),
                "indexTitle": _str("Title for index.html."),
                "includeEventSummary": _bool("Include a per-variant event summary. Default true."),
                "keepPageOpen": _bool("Keep the mockup tab open. Default false."),
                "restorePreviousTarget": _bool("Reconnect to the previous target afterwards. Default true."),
                "inlineLimit": _int("Attach up to this many variant screenshots inline (default: 0)."),
            },
            ["html", "variants"],
        ),
    ),
]

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    *TARGET_TOOL_DEFINITIONS,
    *PAGE_TOOL_DEFINITIONS,
    *CSS_TOOL_DEFINITIONS,
    *CAPTURE_TOOL_DEFINITIONS,
    *QA_TOOL_DEFINITIONS,
    *MOCKUP_TOOL_DEFINITIONS,
]


def get_all_tool_definitions() -> list[dict[str, Any]]:
    return TOOL_DEFINITIONS
