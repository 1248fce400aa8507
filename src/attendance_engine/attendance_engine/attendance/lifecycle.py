"""Attendance day state machine.

State is never stored: it is folded from the activity log. Checking a
transition is pure and raises a ``TransitionError`` subclass when refused.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from ..activity.model import ActivityEvent
from ..core.enums import ActivityType, LiveStatus, LifecycleState
from ..core.exceptions import AlreadyClockedIn, BreakAlreadyUsed, InvalidTransition, NoActiveSession

_ACTIVE = frozenset(
    {LifecycleState.WORKING, LifecycleState.BREAK, LifecycleState.OVERTIME, LifecycleState.CLIENT_VISIT}
)

# event -> (states it may be applied in, resulting state)
TRANSITIONS: dict[ActivityType, tuple[frozenset[LifecycleState], LifecycleState]] = {
    ActivityType.CLOCK_IN: (frozenset({LifecycleState.NOT_CLOCKED_IN}), LifecycleState.WORKING),
    ActivityType.BREAK_START: (frozenset({LifecycleState.WORKING}), LifecycleState.BREAK),
    ActivityType.BREAK_END: (frozenset({LifecycleState.BREAK}), LifecycleState.WORKING),
    ActivityType.OVERTIME_START: (frozenset({LifecycleState.WORKING}), LifecycleState.OVERTIME),
    ActivityType.OVERTIME_END: (frozenset({LifecycleState.OVERTIME}), LifecycleState.WORKING),
    ActivityType.CLIENT_VISIT_START: (frozenset({LifecycleState.WORKING}), LifecycleState.CLIENT_VISIT),
    ActivityType.CLIENT_VISIT_END: (frozenset({LifecycleState.CLIENT_VISIT}), LifecycleState.WORKING),
    ActivityType.CLOCK_OUT: (_ACTIVE, LifecycleState.COMPLETED),
}

_REFUSALS: dict[LifecycleState, str] = {
    LifecycleState.WORKING: "You are not on a break or activity to end",
    LifecycleState.BREAK: "End your break first",
    LifecycleState.OVERTIME: "End your overtime first",
    LifecycleState.CLIENT_VISIT: "End your client visit first",
}


def derive_state(events: Iterable[ActivityEvent]) -> LifecycleState:
    state = LifecycleState.NOT_CLOCKED_IN
    for e in sorted(events, key=lambda e: e.sort_key):
        allowed, target = TRANSITIONS[e.type]
        if state in allowed:
            state = target
    return state


def break_used(events: Iterable[ActivityEvent]) -> bool:
    return any(e.type == ActivityType.BREAK_START for e in events)


def check_transition(state: LifecycleState, activity_type: ActivityType, *, break_used: bool) -> LifecycleState:
    """Return the state ``activity_type`` leads to, or raise why it can't happen."""
    if activity_type == ActivityType.CLOCK_IN:
        if state != LifecycleState.NOT_CLOCKED_IN:
            raise AlreadyClockedIn()
        return LifecycleState.WORKING

    if state not in _ACTIVE:
        raise NoActiveSession()
    if activity_type == ActivityType.BREAK_START and break_used:
        raise BreakAlreadyUsed()

    allowed, target = TRANSITIONS[activity_type]
    if state not in allowed:
        raise InvalidTransition(_REFUSALS.get(state))
    return target


def live_status(state: LifecycleState) -> LiveStatus:
    if state == LifecycleState.BREAK:
        return LiveStatus.BREAK
    if state in _ACTIVE:
        return LiveStatus.ONLINE
    return LiveStatus.OFFLINE


def check_stored_transition(
    status: LifecycleState,
    event: ActivityEvent,
    *,
    closed: bool,
    break_used: bool,
    last_timestamp: Optional[datetime],
) -> LifecycleState:
    """Re-check ``event`` against the persisted day, under the record's write lock.

    Sessions check against their own copy of the log, which another device
    may have moved past; this is the check that decides what gets stored.
    """
    state = LifecycleState.COMPLETED if closed else status
    target = check_transition(state, event.type, break_used=break_used)
    if last_timestamp is not None and event.timestamp <= last_timestamp:
        raise InvalidTransition("Another activity was recorded at the same moment, please try again")
    return target
