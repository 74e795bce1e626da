"""
Transition table for a time entry's lifecycle.

Only the moves listed in ``TRANSITIONS`` are legal. ``None`` stands for
"no open entry" on the source side.
"""

import enum
from typing import Dict, Optional, Tuple

from portal.attendance.models import TimeEntryStatus
from portal.core.exceptions import ConflictError, ResourceNotFoundError


class TimeEntryAction(str, enum.Enum):
    CLOCK_IN = "clock_in"
    START_BREAK = "start_break"
    END_BREAK = "end_break"
    CLOCK_OUT = "clock_out"


TRANSITIONS: Dict[Tuple[Optional[TimeEntryStatus], TimeEntryAction], TimeEntryStatus] = {
    (None, TimeEntryAction.CLOCK_IN): TimeEntryStatus.ACTIVE,
    (TimeEntryStatus.ACTIVE, TimeEntryAction.START_BREAK): TimeEntryStatus.BREAK,
    (TimeEntryStatus.BREAK, TimeEntryAction.END_BREAK): TimeEntryStatus.ACTIVE,
    (TimeEntryStatus.ACTIVE, TimeEntryAction.CLOCK_OUT): TimeEntryStatus.COMPLETED,
    (TimeEntryStatus.BREAK, TimeEntryAction.CLOCK_OUT): TimeEntryStatus.COMPLETED,
}

_CONFLICT_MESSAGES = {
    TimeEntryAction.CLOCK_IN: "Already clocked in",
    TimeEntryAction.START_BREAK: "Already on break",
    TimeEntryAction.END_BREAK: "Not currently on break",
    TimeEntryAction.CLOCK_OUT: "Time entry is already completed",
}


def next_status(current: Optional[TimeEntryStatus], action: TimeEntryAction) -> TimeEntryStatus:
    """
    Resolve the status ``action`` leads to from ``current``.

    Raises ResourceNotFoundError when the action needs an open entry and there
    is none, and ConflictError for every other move missing from the table.
    """
    action = TimeEntryAction(action)
    if current is not None:
        current = TimeEntryStatus(current)

    target = TRANSITIONS.get((current, action))
    if target is not None:
        return target

    if current is None:
        raise ResourceNotFoundError(resource_type="Open time entry")

    raise ConflictError(
        detail=_CONFLICT_MESSAGES[action],
        current_state=current.value,
        error_data={"action": action.value}
    )


def can_transition(current: Optional[TimeEntryStatus], action: TimeEntryAction) -> bool:
    return (current, TimeEntryAction(action)) in TRANSITIONS
