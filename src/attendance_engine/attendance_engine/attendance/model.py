from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from ..common.datetime_utils import format_hhmm
from ..core.enums import Category, LifecycleState
from ..geofence.model import Coordinates


@dataclass(frozen=True)
class DurationTotals:
    """Time spent per category. Always derived from the activity log."""

    work: timedelta = timedelta(0)
    break_time: timedelta = timedelta(0)
    overtime: timedelta = timedelta(0)
    client_visit: timedelta = timedelta(0)

    @classmethod
    def from_buckets(cls, buckets: dict[Category, timedelta]) -> "DurationTotals":
        return cls(
            work=buckets.get(Category.WORKING, timedelta(0)),
            break_time=buckets.get(Category.BREAK, timedelta(0)),
            overtime=buckets.get(Category.OVERTIME, timedelta(0)),
            client_visit=buckets.get(Category.CLIENT_VISIT, timedelta(0)),
        )

    @classmethod
    def from_seconds(cls, *, work: int, break_time: int, overtime: int, client_visit: int) -> "DurationTotals":
        return cls(
            work=timedelta(seconds=int(work)),
            break_time=timedelta(seconds=int(break_time)),
            overtime=timedelta(seconds=int(overtime)),
            client_visit=timedelta(seconds=int(client_visit)),
        )

    @property
    def total(self) -> timedelta:
        return self.work + self.break_time + self.overtime + self.client_visit

    def as_seconds(self) -> dict[str, int]:
        return {
            "work": int(self.work.total_seconds()),
            "break_time": int(self.break_time.total_seconds()),
            "overtime": int(self.overtime.total_seconds()),
            "client_visit": int(self.client_visit.total_seconds()),
        }

    def as_hhmm(self) -> dict[str, str]:
        return {
            "work": format_hhmm(self.work),
            "break_time": format_hhmm(self.break_time),
            "overtime": format_hhmm(self.overtime),
            "client_visit": format_hhmm(self.client_visit),
        }


@dataclass(frozen=True)
class AttendanceRecord:
    """Per-day aggregate for one user.

    Everything except the identity fields is a cache of the activity log;
    see ``accumulator.rebuild``.
    """

    attendance_id: str
    user_id: str
    work_date: date
    clock_in: datetime
    clock_out: Optional[datetime]
    status: LifecycleState
    location: Optional[Coordinates] = None
    office_name: Optional[str] = None
    selfie_ref: Optional[str] = None
    totals: DurationTotals = field(default_factory=DurationTotals)

    @property
    def is_completed(self) -> bool:
        return self.status == LifecycleState.COMPLETED
