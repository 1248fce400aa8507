from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from ..activity.model import ActivityEvent
from ..common.datetime_utils import now_utc
from ..core.constants import DEFAULT_HISTORY_LIMIT, DEFAULT_PERSISTENCE_TIMEOUT_SEC, DEFAULT_TICK_INTERVAL_SEC
from ..core.enums import ActivityType, LifecycleState
from ..core.exceptions import AlreadyClockedIn, DomainError, OutOfRange, PersistenceFailure, ValidationError
from ..geofence.model import GeofenceResult, OfficeLocation
from ..geofence.validator import nearest_office
from ..location.acquirer import LocationAcquirer
from ..location.platform import LocationPlatform, PositionFix
from ..realtime.channel import RealtimeChannel
from ..realtime.reconciler import StatusReconciler
from ..selfies.service import SelfieService
from .accumulator import rebuild
from .lifecycle import check_transition
from .model import AttendanceRecord
from .repository import AttendanceRepository
from .session import AttendanceSession, SessionSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SELFIE_LABELS = {
    ActivityType.CLOCK_IN: "clock in",
    ActivityType.CLOCK_OUT: "clock out",
    ActivityType.BREAK_START: "start a break",
    ActivityType.BREAK_END: "end a break",
    ActivityType.OVERTIME_START: "start overtime",
    ActivityType.OVERTIME_END: "end overtime",
    ActivityType.CLIENT_VISIT_START: "start a client visit",
    ActivityType.CLIENT_VISIT_END: "end a client visit",
}


class AttendanceService:
    """Drives the attendance lifecycle for sessions.

    Every transition follows the same path: check the precondition, do the
    slow I/O (location, selfie), re-check, append a pending event, persist
    it, then confirm or roll back. A refused or failed transition leaves no
    event behind.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        *,
        offices: Sequence[OfficeLocation],
        selfies: SelfieService | None = None,
        clock: Callable[[], datetime] = now_utc,
        persistence_timeout: float = DEFAULT_PERSISTENCE_TIMEOUT_SEC,
        tick_interval: float = DEFAULT_TICK_INTERVAL_SEC,
        selfie_required_for: Iterable[ActivityType] = (),
        geofenced: Iterable[ActivityType] = (ActivityType.CLOCK_IN,),
        location_options: dict | None = None,
    ):
        if not offices:
            raise ValueError("at least one office location is required")
        self._attendance = attendance
        self._offices = tuple(offices)
        self._selfies = selfies or SelfieService()
        self._clock = clock
        self._persistence_timeout = float(persistence_timeout)
        self._tick_interval = float(tick_interval)
        self._selfie_required_for = frozenset(selfie_required_for)
        self._geofenced = frozenset(geofenced) | {ActivityType.CLOCK_IN}
        self._location_options = dict(location_options or {})

    # -- sessions -----------------------------------------------------------

    async def open_session(
        self,
        user_id: str,
        *,
        platform: LocationPlatform | None = None,
        channel: RealtimeChannel | None = None,
        live: bool = True,
    ) -> AttendanceSession:
        record, events = await self.load_day(user_id, self._clock().date())
        acquirer = LocationAcquirer(platform, **self._location_options) if platform else None

        session = AttendanceSession(
            user_id,
            record=record,
            events=events,
            acquirer=acquirer,
            clock=self._clock,
            tick_interval=self._tick_interval,
        )
        reconciler = self._reconciler(session)
        if channel is not None:
            reconciler.attach(channel)
        if live:
            session.start()

        logger.info("Attendance session opened for user %s (state=%s)", user_id, session.state.value)
        return session

    async def load_day(self, user_id: str, work_date: date) -> tuple[Optional[AttendanceRecord], list[ActivityEvent]]:
        record = await self._persist(self._attendance.get_open_attendance, user_id, work_date)
        if record is None:
            record = await self._persist(self._attendance.get_for_user_and_date, user_id, work_date)
        if record is None:
            return None, []
        events = await self._persist(self._attendance.list_activities, record.attendance_id)
        return record, list(events)

    async def get_history(self, user_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[AttendanceRecord]:
        """Past days, newest first, with totals re-derived from their events."""
        now = self._clock()
        records = await self._persist(self._attendance.get_recent_for_user, user_id, int(limit))
        history = []
        for record in records:
            events = await self._persist(self._attendance.list_activities, record.attendance_id)
            history.append(rebuild(record, events, now) if events else record)
        return history

    # -- transitions --------------------------------------------------------

    async def clock_in(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.CLOCK_IN, **kwargs)

    async def clock_out(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.CLOCK_OUT, **kwargs)

    async def start_break(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.BREAK_START, **kwargs)

    async def end_break(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.BREAK_END, **kwargs)

    async def start_overtime(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.OVERTIME_START, **kwargs)

    async def end_overtime(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.OVERTIME_END, **kwargs)

    async def start_client_visit(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.CLIENT_VISIT_START, **kwargs)

    async def end_client_visit(self, session: AttendanceSession, **kwargs) -> SessionSnapshot:
        return await self.apply(session, ActivityType.CLIENT_VISIT_END, **kwargs)

    async def apply(
        self,
        session: AttendanceSession,
        activity_type: ActivityType,
        *,
        selfie_ref: str | None = None,
        notes: str | None = None,
    ) -> SessionSnapshot:
        activity_type = ActivityType(activity_type)
        if session.closed:
            raise RuntimeError("session is closed")

        # One transition per session at a time; a queued one re-checks afterwards.
        async with session.transition_lock:
            try:
                if activity_type == ActivityType.CLOCK_IN:
                    await self._clock_in(session, selfie_ref=selfie_ref, notes=notes)
                else:
                    await self._advance(session, activity_type, selfie_ref=selfie_ref, notes=notes)
            except DomainError as e:
                logger.warning("Rejected %s for user %s: %s", activity_type.value, session.user_id, e)
                raise

        logger.info("Applied %s for user %s", activity_type.value, session.user_id)
        return session.snapshot()

    async def _clock_in(self, session: AttendanceSession, *, selfie_ref: str | None, notes: str | None) -> None:
        now = self._clock()
        check_transition(session.state, ActivityType.CLOCK_IN, break_used=False)
        self._require_selfie(ActivityType.CLOCK_IN, selfie_ref)

        existing = await self._persist(self._attendance.get_for_user_and_date, session.user_id, now.date())
        if existing is not None:
            # Clocked in from another device; show that day instead.
            await self._reconciler(session).resync_quietly()
            raise AlreadyClockedIn()

        fix, geofence = await self._locate(session)
        selfie_url = await self._selfies.resolve(
            user_id=session.user_id, ref=selfie_ref, activity_type=ActivityType.CLOCK_IN
        )

        check_transition(session.state, ActivityType.CLOCK_IN, break_used=False)
        timestamp = self._clock()
        record = AttendanceRecord(
            attendance_id=str(uuid.uuid4()),
            user_id=session.user_id,
            work_date=now.date(),
            clock_in=timestamp,
            clock_out=None,
            status=LifecycleState.WORKING,
            location=fix.coordinates,
            office_name=geofence.office.name if geofence.office else None,
            selfie_ref=selfie_url,
        )
        event = ActivityEvent.new(
            attendance_id=record.attendance_id,
            user_id=session.user_id,
            type=ActivityType.CLOCK_IN,
            timestamp=timestamp,
            location=fix.coordinates,
            notes=notes,
            selfie_ref=selfie_url,
        )

        session.begin(record, event)
        try:
            await self._persist(self._attendance.create_attendance, record, opening_event=event)
        except asyncio.CancelledError:
            session.reject(event.event_id)
            raise
        except DomainError:
            session.reject(event.event_id)
            await self._reconciler(session).resync_quietly()
            raise
        session.confirm(event.event_id)

    async def _advance(
        self,
        session: AttendanceSession,
        activity_type: ActivityType,
        *,
        selfie_ref: str | None,
        notes: str | None,
    ) -> None:
        check_transition(session.state, activity_type, break_used=session.break_used)
        self._require_selfie(activity_type, selfie_ref)

        location = None
        if activity_type in self._geofenced:
            fix, _ = await self._locate(session)
            location = fix.coordinates
        selfie_url = await self._selfies.resolve(user_id=session.user_id, ref=selfie_ref, activity_type=activity_type)

        # Remote events may have landed while we were waiting on I/O.
        check_transition(session.state, activity_type, break_used=session.break_used)
        event = ActivityEvent.new(
            attendance_id=session.record.attendance_id,
            user_id=session.user_id,
            type=activity_type,
            timestamp=self._next_timestamp(session),
            location=location,
            notes=notes,
            selfie_ref=selfie_url,
        )

        session.append_local(event)
        try:
            await self._persist(self._attendance.append_activity, event)
        except asyncio.CancelledError:
            session.reject(event.event_id)
            raise
        except DomainError:
            session.reject(event.event_id)
            await self._reconciler(session).resync_quietly()
            raise
        session.confirm(event.event_id)
        await self._store_totals(session)

    # -- helpers ------------------------------------------------------------

    def _reconciler(self, session: AttendanceSession) -> StatusReconciler:
        if session.reconciler is None:
            session.reconciler = StatusReconciler(session, self)
        return session.reconciler

    async def _locate(self, session: AttendanceSession) -> tuple[PositionFix, GeofenceResult]:
        if session.acquirer is None:
            raise ValidationError("No location source is available for this session")
        fix = await session.acquirer.acquire()
        result = nearest_office(fix.coordinates, self._offices, accuracy_m=fix.accuracy_m)
        if not result.is_within_range:
            raise OutOfRange(result)
        return fix, result

    def _require_selfie(self, activity_type: ActivityType, selfie_ref: str | None) -> None:
        if activity_type in self._selfie_required_for and not selfie_ref:
            raise ValidationError(f"A selfie is required to {_SELFIE_LABELS[activity_type]}")

    def _next_timestamp(self, session: AttendanceSession) -> datetime:
        now = self._clock()
        last = session.log.last if session.log else None
        if last is not None and now <= last.timestamp:
            now = last.timestamp + timedelta(microseconds=1)
        return now

    async def _store_totals(self, session: AttendanceSession) -> None:
        record = session.record
        try:
            await self._persist(self._attendance.update_accumulated, record.attendance_id, record.totals)
        except PersistenceFailure as e:
            # The event is durable; totals are a cache rebuilt from it.
            logger.warning("Could not store totals for attendance %s: %s", record.attendance_id, e)

    async def _persist(self, fn: Callable[..., T], *args, **kwargs) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self._persistence_timeout)
        except DomainError:
            raise
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(f"{fn.__name__} timed out after {self._persistence_timeout:g}s") from e
        except Exception as e:
            raise PersistenceFailure(f"{fn.__name__} failed: {e}") from e
