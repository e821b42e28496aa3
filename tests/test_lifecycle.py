"""Tests for the shared status enum and the transition tables."""

import pytest

from src.errors import InvalidTransitionError
from src.schemas.status_schema import (
    TASK_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    parse_status,
)
from src.scheduling.lifecycle import (
    BOOKING_TRANSITIONS,
    check_booking_transition,
    check_task_transition,
    valid_booking_targets,
    valid_task_targets,
)

S = BookingStatus


class TestParseStatus:
    def test_accepts_enum_value_strings(self):
        assert parse_status("in-progress") == S.IN_PROGRESS

    def test_accepts_enum_members(self):
        assert parse_status(S.CANCELLED) == S.CANCELLED

    @pytest.mark.parametrize("raw", ["in_progress", "In-Progress", "done", "", None])
    def test_never_coerces_near_misses(self, raw):
        with pytest.raises(InvalidTransitionError) as exc:
            parse_status(raw)
        assert exc.value.field == "status"

    def test_allowed_subset_enforced(self):
        with pytest.raises(InvalidTransitionError, match="not allowed"):
            parse_status("confirmed", allowed=TASK_STATUSES)

    def test_allowed_subset_passes(self):
        assert parse_status("completed", allowed=TASK_STATUSES) == S.COMPLETED


class TestBookingTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (S.PENDING, S.CONFIRMED),
            (S.PENDING, S.CANCELLED),
            (S.CONFIRMED, S.PENDING),
            (S.CONFIRMED, S.IN_PROGRESS),
            (S.CONFIRMED, S.COMPLETED),
            (S.IN_PROGRESS, S.COMPLETED),
        ],
    )
    def test_valid_transitions(self, current, target):
        check_booking_transition(current, target, "B-0001")

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES))
    def test_terminal_states_have_no_targets(self, terminal):
        assert valid_booking_targets(terminal) == []

    def test_in_progress_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransitionError, match="cannot move"):
            check_booking_transition(S.IN_PROGRESS, S.CANCELLED, "B-0001")

    def test_completed_cannot_be_reopened(self):
        with pytest.raises(InvalidTransitionError) as exc:
            check_booking_transition(S.COMPLETED, S.IN_PROGRESS, "B-0007")
        assert exc.value.ref == "B-0007"

    def test_no_self_transitions_in_table(self):
        assert all(t.from_state != t.to_state for t in BOOKING_TRANSITIONS)


class TestTaskTransitions:
    def test_forward_only(self):
        assert set(valid_task_targets(S.PENDING)) == {S.IN_PROGRESS, S.COMPLETED}
        assert valid_task_targets(S.IN_PROGRESS) == [S.COMPLETED]
        assert valid_task_targets(S.COMPLETED) == []

    def test_backwards_rejected(self):
        with pytest.raises(InvalidTransitionError, match="Task T-0001"):
            check_task_transition(S.IN_PROGRESS, S.PENDING, "T-0001")
