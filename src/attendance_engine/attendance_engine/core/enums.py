from __future__ import annotations

from enum import Enum


class ActivityType(str, Enum):
    """Kind of event recorded in an attendance day's activity log."""

    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    OVERTIME_START = "overtime_start"
    OVERTIME_END = "overtime_end"
    CLIENT_VISIT_START = "client_visit_start"
    CLIENT_VISIT_END = "client_visit_end"


class Category(str, Enum):
    """Bucket that elapsed time is accounted to."""

    WORKING = "working"
    BREAK = "break"
    OVERTIME = "overtime"
    CLIENT_VISIT = "client_visit"


class LifecycleState(str, Enum):
    NOT_CLOCKED_IN = "not_clocked_in"
    WORKING = "working"
    BREAK = "break"
    OVERTIME = "overtime"
    CLIENT_VISIT = "client_visit"
    COMPLETED = "completed"


class EventStatus(str, Enum):
    """Acknowledgement state of a locally originated event."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class LiveStatus(str, Enum):
    """Coarse presence shown to colleagues."""

    ONLINE = "online"
    BREAK = "break"
    OFFLINE = "offline"


class Accuracy(str, Enum):
    """Accuracy mode requested from the device location API."""

    HIGHEST = "highest"
    LOWEST = "lowest"
