import pytest

from portal.attendance.models import TimeEntryStatus
from portal.attendance.state_machine import TimeEntryAction, can_transition, next_status
from portal.core.exceptions import ConflictError, ResourceNotFoundError


@pytest.mark.parametrize(
    "current, action, expected",
    [
        (None, TimeEntryAction.CLOCK_IN, TimeEntryStatus.ACTIVE),
        (TimeEntryStatus.ACTIVE, TimeEntryAction.START_BREAK, TimeEntryStatus.BREAK),
        (TimeEntryStatus.BREAK, TimeEntryAction.END_BREAK, TimeEntryStatus.ACTIVE),
        (TimeEntryStatus.ACTIVE, TimeEntryAction.CLOCK_OUT, TimeEntryStatus.COMPLETED),
        (TimeEntryStatus.BREAK, TimeEntryAction.CLOCK_OUT, TimeEntryStatus.COMPLETED),
    ],
)
def test_legal_transitions(current, action, expected):
    assert next_status(current, action) == expected
    assert can_transition(current, action)


def test_clock_in_while_open_is_a_conflict():
    with pytest.raises(ConflictError) as exc_info:
        next_status(TimeEntryStatus.ACTIVE, TimeEntryAction.CLOCK_IN)

    assert exc_info.value.detail == "Already clocked in"
    assert exc_info.value.error_data["current_state"] == "active"


def test_break_actions_from_wrong_state():
    with pytest.raises(ConflictError):
        next_status(TimeEntryStatus.BREAK, TimeEntryAction.START_BREAK)
    with pytest.raises(ConflictError):
        next_status(TimeEntryStatus.ACTIVE, TimeEntryAction.END_BREAK)


@pytest.mark.parametrize("action", [TimeEntryAction.START_BREAK, TimeEntryAction.END_BREAK, TimeEntryAction.CLOCK_OUT])
def test_actions_without_open_entry_are_not_found(action):
    with pytest.raises(ResourceNotFoundError):
        next_status(None, action)
    assert not can_transition(None, action)


def test_accepts_raw_string_values():
    assert next_status("active", "start_break") == TimeEntryStatus.BREAK
