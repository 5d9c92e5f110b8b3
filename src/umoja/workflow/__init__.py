"""Project engagement review workflow."""

from umoja.workflow.engagement import EngagementWorkflow, count_words
from umoja.workflow.state_machine import TERMINAL_STATES, check_transition, legal_targets

__all__ = [
    "EngagementWorkflow",
    "TERMINAL_STATES",
    "check_transition",
    "count_words",
    "legal_targets",
]
