from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .common.datetime_utils import now_utc
from .database.connection import DBConfig, DatabaseConnection
from .selfies.service import SelfieService, SelfieUploader


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    attendance_repo: AttendanceRepository

    attendance_service: AttendanceService


def build_container(
    settings,
    *,
    attendance_repo: AttendanceRepository | None = None,
    selfie_uploader: SelfieUploader | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> Container:
    from config import build_offices

    conn = None
    if attendance_repo is None:
        conn = DatabaseConnection.get_instance(DBConfig.from_dict(getattr(settings, "DB_CONFIG")))
        attendance_repo = MySQLAttendanceRepository(conn)

    attendance_service = AttendanceService(
        attendance_repo,
        offices=build_offices(settings),
        selfies=SelfieService(selfie_uploader),
        clock=clock,
        persistence_timeout=getattr(settings, "PERSISTENCE_TIMEOUT_SEC"),
        tick_interval=getattr(settings, "TICK_INTERVAL_SEC"),
        selfie_required_for=getattr(settings, "SELFIE_REQUIRED_FOR", ()),
        location_options={
            "max_attempts": getattr(settings, "LOCATION_MAX_ATTEMPTS"),
            "attempt_timeout": getattr(settings, "LOCATION_ATTEMPT_TIMEOUT_SEC"),
            "backoff": getattr(settings, "LOCATION_BACKOFF_SEC"),
            "total_budget": getattr(settings, "LOCATION_TOTAL_BUDGET_SEC"),
        },
    )

    return Container(
        conn=conn,
        attendance_repo=attendance_repo,
        attendance_service=attendance_service,
    )
