from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

import mysql.connector

from ..activity.model import ActivityEvent
from ..core.enums import ActivityType, LifecycleState
from ..core.exceptions import AlreadyClockedIn, NoActiveSession
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_db_datetime, optional_float, to_db_datetime
from ..geofence.model import Coordinates
from .lifecycle import check_stored_transition
from .model import AttendanceRecord, DurationTotals
from .repository import AttendanceRepository

_RECORD_COLUMNS = """
    attendance_id, user_id, work_date, clock_in, clock_out, status,
    location_lat, location_lng, office_name, selfie_ref,
    work_seconds, break_seconds, overtime_seconds, client_visit_seconds
"""


def _to_record(r: dict) -> AttendanceRecord:
    lat, lng = optional_float(r.get("location_lat")), optional_float(r.get("location_lng"))
    return AttendanceRecord(
        attendance_id=str(r["attendance_id"]),
        user_id=str(r["user_id"]),
        work_date=r["work_date"],
        clock_in=from_db_datetime(r["clock_in"]),
        clock_out=from_db_datetime(r.get("clock_out")),
        status=LifecycleState(r["status"]),
        location=Coordinates(lat, lng) if lat is not None and lng is not None else None,
        office_name=r.get("office_name"),
        selfie_ref=r.get("selfie_ref"),
        totals=DurationTotals.from_seconds(
            work=r.get("work_seconds") or 0,
            break_time=r.get("break_seconds") or 0,
            overtime=r.get("overtime_seconds") or 0,
            client_visit=r.get("client_visit_seconds") or 0,
        ),
    )


def _to_event(r: dict) -> ActivityEvent:
    lat, lng = optional_float(r.get("location_lat")), optional_float(r.get("location_lng"))
    return ActivityEvent(
        event_id=str(r["event_id"]),
        attendance_id=str(r["attendance_id"]),
        user_id=str(r["user_id"]),
        type=ActivityType(r["type"]),
        timestamp=from_db_datetime(r["ts"]),
        location=Coordinates(lat, lng) if lat is not None and lng is not None else None,
        notes=r.get("notes"),
        selfie_ref=r.get("selfie_ref"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create_attendance(self, record: AttendanceRecord, *, opening_event: ActivityEvent) -> None:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_records(
                        attendance_id, user_id, work_date, clock_in, status,
                        location_lat, location_lng, office_name, selfie_ref
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        record.attendance_id,
                        record.user_id,
                        record.work_date,
                        to_db_datetime(record.clock_in),
                        record.status.value,
                        record.location.latitude if record.location else None,
                        record.location.longitude if record.location else None,
                        record.office_name,
                        record.selfie_ref,
                    ),
                )
                self._insert_event(cur, opening_event)
        except mysql.connector.IntegrityError as e:
            raise AlreadyClockedIn() from e

    def append_activity(self, event: ActivityEvent) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            # Row lock serializes transitions on one record across sessions and devices.
            cur.execute(
                "SELECT status, clock_out FROM attendance_records WHERE attendance_id=%s FOR UPDATE",
                (event.attendance_id,),
            )
            record = fetchone(cur)
            if record is None:
                raise NoActiveSession()
            cur.execute(
                """
                SELECT MAX(ts) AS last_ts, SUM(type=%s) AS breaks
                FROM activity_records
                WHERE attendance_id=%s
                """,
                (ActivityType.BREAK_START.value, event.attendance_id),
            )
            log = fetchone(cur) or {}
            status = check_stored_transition(
                LifecycleState(record["status"]),
                event,
                closed=record.get("clock_out") is not None,
                break_used=int(log.get("breaks") or 0) > 0,
                last_timestamp=from_db_datetime(log.get("last_ts")),
            )

            self._insert_event(cur, event)
            if event.type == ActivityType.CLOCK_OUT:
                cur.execute(
                    "UPDATE attendance_records SET clock_out=%s, status=%s WHERE attendance_id=%s",
                    (to_db_datetime(event.timestamp), status.value, event.attendance_id),
                )
            else:
                cur.execute(
                    "UPDATE attendance_records SET status=%s WHERE attendance_id=%s",
                    (status.value, event.attendance_id),
                )

    def update_accumulated(self, attendance_id: str, totals: DurationTotals) -> bool:
        seconds = totals.as_seconds()
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_records
                SET work_seconds=%s, break_seconds=%s, overtime_seconds=%s, client_visit_seconds=%s
                WHERE attendance_id=%s
                """,
                (seconds["work"], seconds["break_time"], seconds["overtime"], seconds["client_visit"], attendance_id),
            )
            return cur.rowcount > 0

    def get_open_attendance(self, user_id: str, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE user_id=%s AND work_date=%s AND clock_out IS NULL
                """,
                (user_id, work_date),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE user_id=%s AND work_date=%s",
                (user_id, work_date),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def list_activities(self, attendance_id: str) -> Sequence[ActivityEvent]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT event_id, attendance_id, user_id, type, ts, location_lat, location_lng, notes, selfie_ref
                FROM activity_records
                WHERE attendance_id=%s
                ORDER BY ts ASC, event_id ASC
                """,
                (attendance_id,),
            )
            return [_to_event(r) for r in fetchall(cur)]

    def get_recent_for_user(self, user_id: str, limit: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE user_id=%s
                ORDER BY work_date DESC
                LIMIT %s
                """,
                (user_id, int(limit)),
            )
            return [_to_record(r) for r in fetchall(cur)]

    @staticmethod
    def _insert_event(cur, event: ActivityEvent) -> None:
        cur.execute(
            """
            INSERT INTO activity_records(
                event_id, attendance_id, user_id, type, ts, location_lat, location_lng, notes, selfie_ref
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                event.event_id,
                event.attendance_id,
                event.user_id,
                event.type.value,
                to_db_datetime(event.timestamp),
                event.location.latitude if event.location else None,
                event.location.longitude if event.location else None,
                event.notes,
                event.selfie_ref,
            ),
        )
