import asyncio
from dataclasses import replace

import pytest

from attendance_engine.activity.model import ActivityEvent
from attendance_engine.core.enums import ActivityType, LifecycleState, LiveStatus
from attendance_engine.realtime.channel import ActivityNotification

from fakes import FakeChannel, FakeLocationPlatform, at


def remote(session, activity_type, when, **kwargs):
    return ActivityNotification(
        ActivityEvent.new(
            attendance_id=session.record.attendance_id,
            user_id=session.user_id,
            type=activity_type,
            timestamp=when,
            **kwargs,
        )
    )


@pytest.mark.asyncio
async def test_pushed_event_is_merged_once(make_service):
    service = make_service()
    channel = FakeChannel()
    async with await service.open_session("u1", platform=FakeLocationPlatform(), channel=channel) as session:
        await service.clock_in(session)
        notification = remote(session, ActivityType.BREAK_START, at(9, 30))

        assert await channel.publish(notification) is True
        assert await channel.publish(notification) is False

        assert session.state == LifecycleState.BREAK
        assert session.snapshot().live_status == LiveStatus.BREAK
        assert len(session.activities()) == 2


@pytest.mark.asyncio
async def test_out_of_order_pushes_converge(make_service, clock):
    service = make_service()
    channel = FakeChannel()
    async with await service.open_session("u1", platform=FakeLocationPlatform(), channel=channel) as session:
        await service.clock_in(session)
        start = remote(session, ActivityType.OVERTIME_START, at(17))
        end = remote(session, ActivityType.OVERTIME_END, at(18))

        await channel.publish(end)
        await channel.publish(start)
        clock.set(at(19))
        snapshot = session.recompute()

        assert snapshot.state == LifecycleState.WORKING
        assert snapshot.totals.overtime.total_seconds() == 3600
        assert snapshot.totals.work.total_seconds() == 9 * 3600


@pytest.mark.asyncio
async def test_event_for_previous_attendance_is_dropped(make_service):
    service = make_service()
    channel = FakeChannel()
    async with await service.open_session("u1", platform=FakeLocationPlatform(), channel=channel) as session:
        await service.clock_in(session)
        stale = remote(session, ActivityType.BREAK_START, at(9, 30))
        stale = ActivityNotification(replace(stale.event, attendance_id="yesterday"))

        assert await channel.publish(stale) is False
        assert session.state == LifecycleState.WORKING


@pytest.mark.asyncio
async def test_inconsistent_event_is_dropped(make_service):
    service = make_service()
    channel = FakeChannel()
    async with await service.open_session("u1", platform=FakeLocationPlatform(), channel=channel) as session:
        await service.clock_in(session)

        assert await channel.publish(remote(session, ActivityType.BREAK_START, at(8))) is False
        assert len(session.activities()) == 1


@pytest.mark.asyncio
async def test_other_users_events_are_ignored(make_service):
    service = make_service()
    async with await service.open_session("u1", platform=FakeLocationPlatform()) as session:
        await service.clock_in(session)
        foreign = remote(session, ActivityType.BREAK_START, at(9, 30))
        foreign = ActivityNotification(replace(foreign.event, user_id="u2"))

        assert await session.reconciler.handle(foreign) is False
        assert session.state == LifecycleState.WORKING


@pytest.mark.asyncio
async def test_clock_in_on_another_device_is_picked_up(make_service):
    service = make_service()
    channel = FakeChannel()
    laptop = await service.open_session("u1", channel=channel)
    phone = await service.open_session("u1", platform=FakeLocationPlatform())
    try:
        await service.clock_in(phone)
        (clock_in,) = phone.activities()

        assert await channel.publish(ActivityNotification(clock_in)) is True
        assert laptop.state == LifecycleState.WORKING
        assert laptop.record.attendance_id == phone.record.attendance_id
        assert laptop.is_ticking
    finally:
        await phone.close()
        await laptop.close()


@pytest.mark.asyncio
async def test_unknown_remote_day_is_dropped(make_service):
    service = make_service()
    channel = FakeChannel()
    async with await service.open_session("u1", channel=channel) as session:
        ghost = ActivityEvent.new(
            attendance_id="ghost", user_id="u1", type=ActivityType.CLOCK_IN, timestamp=at(9)
        )

        assert await channel.publish(ActivityNotification(ghost)) is False
        assert session.record is None


@pytest.mark.asyncio
async def test_push_during_local_transition_waits_for_ack(make_service, repo, clock):
    service = make_service()
    channel = FakeChannel()
    async with await service.open_session("u1", platform=FakeLocationPlatform(), channel=channel) as session:
        await service.clock_in(session)
        (clock_in,) = session.activities()
        clock.set(at(17))
        repo.delay["append_activity"] = 0.2

        local = asyncio.create_task(service.start_overtime(session))
        await asyncio.sleep(0.05)
        assert session.snapshot().has_pending

        edited = ActivityNotification(replace(clock_in, notes="edited on web"))
        assert await channel.publish(edited) is False
        assert session.activities()[0].notes is None

        await local
        assert session.activities()[0].notes == "edited on web"
        assert session.state == LifecycleState.OVERTIME
        assert not session.snapshot().has_pending


@pytest.mark.asyncio
async def test_closing_session_unsubscribes(make_service):
    service = make_service()
    channel = FakeChannel()
    session = await service.open_session("u1", channel=channel)
    assert session.reconciler.attached
    assert "u1" in channel.handlers

    await session.close()

    assert not session.reconciler.attached
    assert channel.handlers == {}
