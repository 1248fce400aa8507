from datetime import date, datetime, timezone
from pathlib import Path

import mysql.connector
import pytest

from attendance_engine.activity.model import ActivityEvent
from attendance_engine.attendance.model import AttendanceRecord, DurationTotals
from attendance_engine.attendance.mysql_attendance_repository import MySQLAttendanceRepository
from attendance_engine.core.enums import ActivityType, LifecycleState
from attendance_engine.core.exceptions import AlreadyClockedIn, BreakAlreadyUsed, InvalidTransition, NoActiveSession
from attendance_engine.database.bootstrap import _iter_sql_statements, _strip_create_db_and_use
from attendance_engine.geofence.model import Coordinates

from fakes import at

SCHEMA = Path(__file__).resolve().parents[2] / "database" / "schema.sql"


class FakeCursor:
    def __init__(self, conn):
        self._conn = conn
        self.rowcount = 0

    def execute(self, sql, params=()):
        self._conn.executed.append((" ".join(sql.split()), params))
        if self._conn.fail_with is not None:
            raise self._conn.fail_with
        self.rowcount = 1

    def fetchone(self):
        return self._conn.rows[0] if self._conn.rows else None

    def fetchall(self):
        return list(self._conn.rows)

    def close(self):
        pass


class FakeConnection:
    def __init__(self, rows=(), fail_with=None):
        self.rows = list(rows)
        self.fail_with = fail_with
        self.executed = []
        self.committed = False
        self.rolled_back = False

    def cursor(self, dictionary=False):
        return FakeCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


class FakeConnectionFactory:
    def __init__(self, conn):
        self.conn = conn

    def connect(self, *, with_database=True):
        return self.conn


RECORD_ROW = {
    "attendance_id": "att-1",
    "user_id": "7",
    "work_date": date(2026, 3, 2),
    "clock_in": datetime(2026, 3, 2, 9, 0),
    "clock_out": None,
    "status": "break",
    "location_lat": "-6.5623000",
    "location_lng": "107.7816000",
    "office_name": "HQ",
    "selfie_ref": None,
    "work_seconds": 10800,
    "break_seconds": 600,
    "overtime_seconds": 0,
    "client_visit_seconds": None,
}


def make_record():
    return AttendanceRecord(
        attendance_id="att-1",
        user_id="7",
        work_date=date(2026, 3, 2),
        clock_in=at(9),
        clock_out=None,
        status=LifecycleState.WORKING,
        location=Coordinates(-6.5623, 107.7816),
        office_name="HQ",
    )


def make_event(activity_type=ActivityType.CLOCK_IN, when=None):
    return ActivityEvent("e1", "att-1", "7", activity_type, when or at(9), location=Coordinates(-6.5623, 107.7816))


def test_rows_map_to_aware_records():
    repo = MySQLAttendanceRepository(FakeConnectionFactory(FakeConnection(rows=[RECORD_ROW])))

    record = repo.get_open_attendance("7", date(2026, 3, 2))

    assert record.clock_in == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert record.status == LifecycleState.BREAK
    assert record.location == Coordinates(-6.5623, 107.7816)
    assert record.totals == DurationTotals.from_seconds(work=10800, break_time=600, overtime=0, client_visit=0)


def test_open_lookup_filters_on_missing_clock_out():
    conn = FakeConnection()
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    assert repo.get_open_attendance("7", date(2026, 3, 2)) is None
    sql, params = conn.executed[0]
    assert "clock_out IS NULL" in sql
    assert params == ("7", date(2026, 3, 2))


def test_create_writes_record_and_opening_event_in_one_transaction():
    conn = FakeConnection()
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    repo.create_attendance(make_record(), opening_event=make_event())

    assert [sql.split("(")[0] for sql, _ in conn.executed] == [
        "INSERT INTO attendance_records",
        "INSERT INTO activity_records",
    ]
    # DATETIME columns are written as naive UTC.
    assert conn.executed[1][1][4] == datetime(2026, 3, 2, 9, 0)
    assert conn.committed


def test_duplicate_day_maps_to_already_clocked_in():
    conn = FakeConnection(fail_with=mysql.connector.IntegrityError("Duplicate entry for uq_attendance_user_day"))
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    with pytest.raises(AlreadyClockedIn):
        repo.create_attendance(make_record(), opening_event=make_event())
    assert conn.rolled_back
    assert not conn.committed


def stored_day(**overrides):
    # One row answers both the locked record read and the log summary.
    row = {"status": "working", "clock_out": None, "last_ts": datetime(2026, 3, 2, 9, 0), "breaks": 0}
    row.update(overrides)
    return row


def test_append_locks_the_record_before_writing():
    conn = FakeConnection(rows=[stored_day()])
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    repo.append_activity(make_event(ActivityType.BREAK_START, at(12)))

    statements = [sql for sql, _ in conn.executed]
    assert statements[0].endswith("FOR UPDATE")
    assert statements[2].startswith("INSERT INTO activity_records")
    assert conn.executed[3][1] == ("break", "att-1")
    assert conn.committed


def test_clock_out_closes_the_cached_record():
    conn = FakeConnection(rows=[stored_day(status="overtime")])
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    repo.append_activity(make_event(ActivityType.CLOCK_OUT, at(18)))

    sql, params = conn.executed[-1]
    assert sql.startswith("UPDATE attendance_records SET clock_out=%s, status=%s")
    assert params == (datetime(2026, 3, 2, 18, 0), "completed", "att-1")


def test_append_refuses_events_on_a_clocked_out_record():
    # The cached status may lag; a set clock_out alone closes the day.
    conn = FakeConnection(
        rows=[stored_day(status="working", clock_out=datetime(2026, 3, 2, 17, 0), last_ts=datetime(2026, 3, 2, 17, 0))]
    )
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    with pytest.raises(NoActiveSession):
        repo.append_activity(make_event(ActivityType.BREAK_START, at(17, 30)))

    assert not any(sql.startswith("INSERT") for sql, _ in conn.executed)
    assert conn.rolled_back
    assert not conn.committed


def test_append_refuses_a_second_break():
    conn = FakeConnection(rows=[stored_day(breaks=1, last_ts=datetime(2026, 3, 2, 12, 30))])
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    with pytest.raises(BreakAlreadyUsed):
        repo.append_activity(make_event(ActivityType.BREAK_START, at(15)))
    assert conn.rolled_back


def test_append_refuses_event_not_after_the_stored_log():
    conn = FakeConnection(rows=[stored_day(last_ts=datetime(2026, 3, 2, 12, 0))])
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    with pytest.raises(InvalidTransition):
        repo.append_activity(make_event(ActivityType.CLOCK_OUT, at(12)))


def test_append_to_unknown_record_is_refused():
    repo = MySQLAttendanceRepository(FakeConnectionFactory(FakeConnection()))

    with pytest.raises(NoActiveSession):
        repo.append_activity(make_event(ActivityType.BREAK_START, at(12)))


def test_totals_cache_reports_whether_a_row_was_updated():
    conn = FakeConnection()
    repo = MySQLAttendanceRepository(FakeConnectionFactory(conn))

    assert repo.update_accumulated("att-1", DurationTotals.from_seconds(work=60, break_time=0, overtime=0, client_visit=0))
    assert conn.executed[0][1] == (60, 0, 0, 0, "att-1")


def test_schema_splits_into_create_statements():
    sql = _strip_create_db_and_use(SCHEMA.read_text(encoding="utf-8"))

    statements = list(_iter_sql_statements(sql))

    assert len(statements) == 2
    assert all(s.startswith("CREATE TABLE IF NOT EXISTS") for s in statements)
