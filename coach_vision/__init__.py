"""Vision layer for the screen coach: change detection, planner/locator clients, and target checks."""

from .locator import LocatedBox, TargetLocator
from .planner import PlanError, PlanInsufficientQuota, PlanOk, PlanResult, StepPlanner
from .sanitizer import Target, sanitize_box
from .signature import compute_signature
from .validator import instruction_keyword, matches_instruction

__all__ = [
    "LocatedBox",
    "PlanError",
    "PlanInsufficientQuota",
    "PlanOk",
    "PlanResult",
    "StepPlanner",
    "Target",
    "TargetLocator",
    "compute_signature",
    "instruction_keyword",
    "matches_instruction",
    "sanitize_box",
]
