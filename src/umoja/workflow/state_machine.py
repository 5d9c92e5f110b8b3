"""Engagement state machine — the legal lifecycle transitions.

Transitions are fail-closed: any transition not explicitly allowed is
rejected. A waived peer review passes through UNDER_PEER_REVIEW within
the submitting call, so the engagement never skips a state.
"""

from __future__ import annotations

from umoja.errors import InvalidStateTransition
from umoja.models.engagement import EngagementStatus

# Legal transitions: (from_state, to_state)
_TRANSITIONS: set[tuple[EngagementStatus, EngagementStatus]] = {
    (EngagementStatus.IN_PROGRESS, EngagementStatus.UNDER_PEER_REVIEW),
    (EngagementStatus.UNDER_PEER_REVIEW, EngagementStatus.UNDER_LECTURER_REVIEW),
    (EngagementStatus.UNDER_LECTURER_REVIEW, EngagementStatus.VERIFIED),
    (EngagementStatus.UNDER_LECTURER_REVIEW, EngagementStatus.REJECTED),
}

TERMINAL_STATES = frozenset({EngagementStatus.VERIFIED, EngagementStatus.REJECTED})


def is_legal(current: EngagementStatus, target: EngagementStatus) -> bool:
    return (current, target) in _TRANSITIONS


def check_transition(
    engagement_id: str,
    current: EngagementStatus,
    target: EngagementStatus,
) -> None:
    """Raise InvalidStateTransition unless current -> target is legal."""
    if not is_legal(current, target):
        raise InvalidStateTransition(
            f"Engagement {engagement_id}: illegal transition "
            f"{current.value} -> {target.value}"
        )


def legal_targets(current: EngagementStatus) -> list[EngagementStatus]:
    return [to for (frm, to) in _TRANSITIONS if frm == current]
