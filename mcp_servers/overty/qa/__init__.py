"""Layout rules and visual diff: pure analysis over collected page facts and image bytes."""

from .layout import LayoutRules, assert_layout, audit_layout
from .visual_diff import VisualDiffResult, evaluate_pass, visual_diff

__all__ = [
    "LayoutRules",
    "VisualDiffResult",
    "assert_layout",
    "audit_layout",
    "evaluate_pass",
    "visual_diff",
]
