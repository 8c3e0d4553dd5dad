"""Rule matching and action execution"""

from .conditions import evaluate_condition, evaluate_conditions
from .selector import select_rules
from .template import detect_pdf_category, expand_template, sanitize_for_path
from .resolver import resolve_collision, resolve_destination
from .engine import RulesEngine

__all__ = [
    "evaluate_condition",
    "evaluate_conditions",
    "select_rules",
    "detect_pdf_category",
    "expand_template",
    "sanitize_for_path",
    "resolve_collision",
    "resolve_destination",
    "RulesEngine",
]
