"""
Tool handlers organized by domain.

Each handler module provides functions that handle specific tool calls.
All handlers follow the signature: (ctx, arguments) -> ToolResult
"""

from .capture import CAPTURE_HANDLERS
from .css import CSS_HANDLERS
from .mockups import MOCKUP_HANDLERS
from .page import PAGE_HANDLERS
from .qa import QA_HANDLERS
from .targets import TARGET_HANDLERS

# Aggregate all handlers
ALL_HANDLERS: dict[str, tuple] = {
    **TARGET_HANDLERS,
    **PAGE_HANDLERS,
    **CSS_HANDLERS,
    **CAPTURE_HANDLERS,
    **QA_HANDLERS,
    **MOCKUP_HANDLERS,
}

__all__ = [
    "ALL_HANDLERS",
    "TARGET_HANDLERS",
    "PAGE_HANDLERS",
    "CSS_HANDLERS",
    "CAPTURE_HANDLERS",
    "QA_HANDLERS",
    "MOCKUP_HANDLERS",
]
