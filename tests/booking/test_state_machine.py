"""Appointment state machine tests."""
import pytest

from booking.errors import ConflictError, ErrorCode
from booking.state_machine import (
    AppointmentStateMachine, TERMINAL_STATUSES, TRANSITIONS, can_transition
)
from database.models import Appointment, AppointmentStatus

ALLOWED = [
    ("pending", "in_progress"),
    ("pending", "canceled"),
    ("pending", "no_show"),
    ("in_progress", "completed"),
    ("in_progress", "not_paid"),
    ("completed", "not_paid"),
]


class TestTransitionTable:
    """The transition table itself."""

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {"canceled", "no_show", "not_paid"}

    def test_every_status_is_listed(self):
        assert set(TRANSITIONS) == {s.value for s in AppointmentStatus}

    def test_exactly_the_allowed_pairs(self):
        statuses = [s.value for s in AppointmentStatus]
        allowed = {(a, b) for a in statuses for b in statuses if can_transition(a, b)}
        assert allowed == set(ALLOWED)

    def test_unknown_status(self):
        assert can_transition("pending", "archived") is False
        assert can_transition("archived", "pending") is False

    def test_enum_members_accepted(self):
        assert can_transition(AppointmentStatus.PENDING, AppointmentStatus.CANCELED)


class TestStateMachine:
    """AppointmentStateMachine applied to model instances."""

    @pytest.mark.parametrize("current,target", ALLOWED)
    def test_allowed_transition(self, current, target):
        appointment = Appointment(id=1, status=current)
        previous = AppointmentStateMachine().transition(appointment, target)
        assert previous == current
        assert appointment.status == target

    @pytest.mark.parametrize("current,target", [
        ("pending", "completed"),
        ("pending", "pending"),
        ("completed", "in_progress"),
        ("canceled", "pending"),
        ("no_show", "in_progress"),
        ("not_paid", "completed"),
        ("pending", "archived"),
    ])
    def test_illegal_transition_leaves_status(self, current, target):
        appointment = Appointment(id=1, status=current)
        with pytest.raises(ConflictError) as exc:
            AppointmentStateMachine().transition(appointment, target)
        assert exc.value.code == ErrorCode.ILLEGAL_TRANSITION
        assert appointment.status == current

    def test_only_pending_is_editable(self):
        machine = AppointmentStateMachine()
        machine.assert_editable(Appointment(id=1, status="pending"))
        for status in ("in_progress", "completed", "canceled", "no_show", "not_paid"):
            with pytest.raises(ConflictError) as exc:
                machine.assert_editable(Appointment(id=1, status=status))
            assert exc.value.code == ErrorCode.NOT_EDITABLE
