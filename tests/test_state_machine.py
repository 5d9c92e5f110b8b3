"""Tests for the engagement state machine — proves transition rules are fail-closed."""

import pytest

from umoja.errors import InvalidStateTransition
from umoja.models.engagement import EngagementStatus
from umoja.workflow.state_machine import (
    TERMINAL_STATES,
    check_transition,
    is_legal,
    legal_targets,
)


S = EngagementStatus


class TestLegalTransitions:
    @pytest.mark.parametrize("current,target", [
        (S.IN_PROGRESS, S.UNDER_PEER_REVIEW),
        (S.UNDER_PEER_REVIEW, S.UNDER_LECTURER_REVIEW),
        (S.UNDER_LECTURER_REVIEW, S.VERIFIED),
        (S.UNDER_LECTURER_REVIEW, S.REJECTED),
    ])
    def test_allowed(self, current: EngagementStatus, target: EngagementStatus) -> None:
        assert is_legal(current, target)
        check_transition("eng_1", current, target)

    def test_lecturer_review_targets(self) -> None:
        assert set(legal_targets(S.UNDER_LECTURER_REVIEW)) == {S.VERIFIED, S.REJECTED}


class TestIllegalTransitions:
    @pytest.mark.parametrize("current,target", [
        (S.IN_PROGRESS, S.UNDER_LECTURER_REVIEW),
        (S.IN_PROGRESS, S.VERIFIED),
        (S.UNDER_PEER_REVIEW, S.VERIFIED),
        (S.UNDER_PEER_REVIEW, S.IN_PROGRESS),
        (S.UNDER_LECTURER_REVIEW, S.UNDER_PEER_REVIEW),
        (S.VERIFIED, S.REJECTED),
        (S.REJECTED, S.IN_PROGRESS),
        (S.IN_PROGRESS, S.IN_PROGRESS),
    ])
    def test_rejected(self, current: EngagementStatus, target: EngagementStatus) -> None:
        assert not is_legal(current, target)
        with pytest.raises(InvalidStateTransition) as exc:
            check_transition("eng_1", current, target)
        assert exc.value.code == "INVALID_STATE_TRANSITION"
        assert "eng_1" in exc.value.message

    def test_no_stage_is_skipped(self) -> None:
        """Every path from IN_PROGRESS visits each review stage in order."""
        path = [S.IN_PROGRESS]
        while path[-1] not in TERMINAL_STATES:
            targets = legal_targets(path[-1])
            assert targets
            path.append(sorted(targets, key=lambda s: s.value)[0])
        assert path[:3] == [S.IN_PROGRESS, S.UNDER_PEER_REVIEW, S.UNDER_LECTURER_REVIEW]

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_are_final(self, terminal: EngagementStatus) -> None:
        assert legal_targets(terminal) == []
