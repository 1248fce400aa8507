from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from ..activity.model import ActivityEvent
from .model import AttendanceRecord, DurationTotals


class AttendanceRepository(Protocol):
    """Persistence boundary. Implementations are synchronous; the service
    runs them off the event loop with a timeout."""

    def create_attendance(self, record: AttendanceRecord, *, opening_event: ActivityEvent) -> None:
        """Store a new day record together with its clock_in event.

        Must raise ``AlreadyClockedIn`` when ``(user_id, work_date)`` is taken.
        """

        raise NotImplementedError

    def append_activity(self, event: ActivityEvent) -> None:
        """Store one event if the persisted day still allows it.

        Must re-check the transition atomically with the insert (see
        ``lifecycle.check_stored_transition``) and raise its ``TransitionError``.
        """

        raise NotImplementedError

    def update_accumulated(self, attendance_id: str, totals: DurationTotals) -> bool:
        raise NotImplementedError

    def get_open_attendance(self, user_id: str, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_activities(self, attendance_id: str) -> Sequence[ActivityEvent]:
        raise NotImplementedError

    def get_recent_for_user(self, user_id: str, limit: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError
