"""Bot behaviors bound to GitHub webhook events."""

from .check_gate import CheckGate, decide_conclusion, fold_review_states

__all__ = [
    "CheckGate",
    "decide_conclusion",
    "fold_review_states",
]
