import logging
from datetime import date, timedelta

import pytest

from attendance_engine.activity.model import ActivityEvent
from attendance_engine.attendance.model import AttendanceRecord
from attendance_engine.attendance.session import AttendanceSession
from attendance_engine.core.enums import ActivityType, LifecycleState, LiveStatus

from fakes import ManualClock, at


def open_day(clock, *events):
    record = AttendanceRecord(
        attendance_id="att-1",
        user_id="u1",
        work_date=date(2026, 3, 2),
        clock_in=at(9),
        clock_out=None,
        status=LifecycleState.WORKING,
    )
    clock_in = ActivityEvent("e1", "att-1", "u1", ActivityType.CLOCK_IN, at(9))
    return AttendanceSession("u1", record=record, events=[clock_in, *events], clock=clock, tick_interval=0.01)


def test_empty_session_is_offline():
    session = AttendanceSession("u1", clock=ManualClock(at(8)))
    snapshot = session.snapshot()

    assert snapshot.state == LifecycleState.NOT_CLOCKED_IN
    assert snapshot.live_status == LiveStatus.OFFLINE
    assert snapshot.attendance_id is None
    assert snapshot.totals.total == timedelta(0)
    assert session.activities() == []


def test_snapshot_is_derived_from_loaded_events():
    clock = ManualClock(at(12, 45))
    session = open_day(clock, ActivityEvent("e2", "att-1", "u1", ActivityType.BREAK_START, at(12)))

    snapshot = session.snapshot()

    assert snapshot.state == LifecycleState.BREAK
    assert snapshot.break_used
    assert snapshot.totals.work == timedelta(hours=3)
    assert snapshot.totals.break_time == timedelta(minutes=45)


def test_snapshot_as_dict_is_json_ready():
    session = open_day(ManualClock(at(10, 30)))

    payload = session.snapshot().as_dict()

    assert payload["state"] == "working"
    assert payload["live_status"] == "online"
    assert payload["clock_in"] == "2026-03-02T09:00:00+00:00"
    assert payload["clock_out"] is None
    assert payload["totals"]["work"] == "01:30"
    assert payload["totals_seconds"]["work"] == 5400


def test_subscribers_get_every_recompute_until_unsubscribed():
    clock = ManualClock(at(10))
    session = open_day(clock)
    seen = []
    unsubscribe = session.subscribe(seen.append)

    clock.advance(minutes=1)
    session.recompute()
    unsubscribe()
    unsubscribe()
    session.recompute()

    assert [s.totals.work for s in seen] == [timedelta(hours=1, minutes=1)]


def test_failing_listener_does_not_break_others(caplog):
    session = open_day(ManualClock(at(10)))
    seen = []

    def broken(_snapshot):
        raise RuntimeError("render failed")

    session.subscribe(broken)
    session.subscribe(seen.append)

    with caplog.at_level(logging.ERROR):
        session.recompute()

    assert len(seen) == 1
    assert "Snapshot listener failed" in caplog.text


@pytest.mark.asyncio
async def test_tick_runs_only_while_day_is_open():
    clock = ManualClock(at(10))
    async with open_day(clock) as session:
        session.start()
        assert session.is_ticking

        session.merge_remote(ActivityEvent("e9", "att-1", "u1", ActivityType.CLOCK_OUT, at(17)))

        assert session.state == LifecycleState.COMPLETED
        assert not session.is_ticking


@pytest.mark.asyncio
async def test_close_stops_tick_and_listeners():
    session = open_day(ManualClock(at(10)))
    closed = []
    session.on_close(lambda: closed.append(True))
    session.start()

    await session.close()
    await session.close()

    assert session.closed
    assert not session.is_ticking
    assert closed == [True]
    with pytest.raises(RuntimeError):
        session.start()


@pytest.mark.asyncio
async def test_start_without_record_does_not_tick():
    async with AttendanceSession("u1", clock=ManualClock(at(8))) as session:
        session.start()
        assert not session.is_ticking
