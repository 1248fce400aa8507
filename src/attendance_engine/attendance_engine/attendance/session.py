from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from ..activity.log import ActivityEventLog
from ..activity.model import ActivityEvent
from ..common.datetime_utils import now_utc
from ..core.constants import DEFAULT_TICK_INTERVAL_SEC
from ..core.enums import ActivityType, LifecycleState, LiveStatus
from ..core.exceptions import DomainError
from ..location.acquirer import LocationAcquirer
from .accumulator import rebuild
from .lifecycle import live_status
from .model import AttendanceRecord, DurationTotals

if TYPE_CHECKING:
    from ..realtime.reconciler import StatusReconciler

logger = logging.getLogger(__name__)

SnapshotListener = Callable[["SessionSnapshot"], None]


@dataclass(frozen=True)
class SessionSnapshot:
    user_id: str
    attendance_id: Optional[str]
    state: LifecycleState
    live_status: LiveStatus
    totals: DurationTotals
    break_used: bool
    has_pending: bool
    clock_in: Optional[datetime]
    clock_out: Optional[datetime]
    taken_at: datetime

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "attendance_id": self.attendance_id,
            "state": self.state.value,
            "live_status": self.live_status.value,
            "break_used": self.break_used,
            "has_pending": self.has_pending,
            "clock_in": self.clock_in.isoformat() if self.clock_in else None,
            "clock_out": self.clock_out.isoformat() if self.clock_out else None,
            "totals_seconds": self.totals.as_seconds(),
            "totals": self.totals.as_hhmm(),
            "taken_at": self.taken_at.isoformat(),
        }


class AttendanceSession:
    """State container for one signed-in user's attendance day.

    Owns the activity log, the derived record and the 1-second tick that
    keeps durations current. UI layers read ``snapshot()`` or ``subscribe()``;
    they never drive the tick. Only ``AttendanceService`` and
    ``StatusReconciler`` mutate the log.
    """

    def __init__(
        self,
        user_id: str,
        *,
        record: Optional[AttendanceRecord] = None,
        events: Iterable[ActivityEvent] = (),
        acquirer: Optional[LocationAcquirer] = None,
        clock: Callable[[], datetime] = now_utc,
        tick_interval: float = DEFAULT_TICK_INTERVAL_SEC,
    ):
        self.user_id = user_id
        self.acquirer = acquirer
        self.reconciler: Optional["StatusReconciler"] = None
        self.transition_lock = asyncio.Lock()
        self._clock = clock
        self._tick_interval = float(tick_interval)
        self._record = record
        self._log = ActivityEventLog(record.attendance_id, events) if record else None
        self._deferred: dict[str, ActivityEvent] = {}
        self._listeners: list[SnapshotListener] = []
        self._closers: list[Callable[[], None]] = []
        self._tick_task: Optional[asyncio.Task] = None
        self._live = False
        self._closed = False
        self._snapshot = self.recompute()

    async def __aenter__(self) -> "AttendanceSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def record(self) -> Optional[AttendanceRecord]:
        return self._record

    @property
    def log(self) -> Optional[ActivityEventLog]:
        return self._log

    @property
    def state(self) -> LifecycleState:
        return self._record.status if self._record else LifecycleState.NOT_CLOCKED_IN

    @property
    def break_used(self) -> bool:
        return self._log is not None and self._log.has_type(ActivityType.BREAK_START)

    @property
    def is_ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def activities(self) -> list[ActivityEvent]:
        return self._log.events() if self._log else []

    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def on_close(self, callback: Callable[[], None]) -> None:
        self._closers.append(callback)

    # -- derivation -------------------------------------------------------

    def recompute(self, now: Optional[datetime] = None) -> SessionSnapshot:
        now = now or self._clock()
        if self._record is not None and self._log is not None:
            self._record = rebuild(self._record, self._log.events(), now)

        record = self._record
        self._snapshot = SessionSnapshot(
            user_id=self.user_id,
            attendance_id=record.attendance_id if record else None,
            state=self.state,
            live_status=live_status(self.state),
            totals=record.totals if record else DurationTotals(),
            break_used=self.break_used,
            has_pending=self._log is not None and self._log.has_pending(),
            clock_in=record.clock_in if record else None,
            clock_out=record.clock_out if record else None,
            taken_at=now,
        )

        if record is not None and record.is_completed:
            self._stop_tick()
        self._publish(self._snapshot)
        return self._snapshot

    def _publish(self, snapshot: SessionSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed for user %s", self.user_id)

    # -- tick -------------------------------------------------------------

    def start(self) -> None:
        """Keep durations current while a non-completed record exists."""
        if self._closed:
            raise RuntimeError("session is closed")
        self._live = True
        self._ensure_tick()

    def _ensure_tick(self) -> None:
        if not self._live or self._closed or self.is_ticking:
            return
        if self._record is None or self._record.is_completed:
            return
        self._tick_task = asyncio.get_running_loop().create_task(self._run_tick())

    def _stop_tick(self) -> None:
        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _run_tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            self.recompute()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._live = False

        task, self._tick_task = self._tick_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        for callback in self._closers:
            callback()
        self._closers.clear()
        self._listeners.clear()
        logger.info("Attendance session closed for user %s", self.user_id)

    # -- mutations ----------------------------------------------------------

    def begin(self, record: AttendanceRecord, clock_in: ActivityEvent) -> None:
        """Optimistically open a new day with a pending clock_in."""
        self._record = record
        self._log = ActivityEventLog(record.attendance_id)
        self._log.append_local(clock_in)
        self.recompute()
        self._ensure_tick()

    def append_local(self, event: ActivityEvent) -> None:
        if self._log is None:
            raise RuntimeError("no attendance to append to")
        self._log.append_local(event)
        self.recompute()

    def confirm(self, event_id: str) -> None:
        self._log.confirm(event_id)
        self._flush_deferred()
        self.recompute()

    def reject(self, event_id: str) -> None:
        """Drop a speculative event the backend refused or never stored."""
        event = self._log.reject(event_id)
        if event.type == ActivityType.CLOCK_IN:
            self._record = None
            self._log = None
            self._deferred.clear()
            self._stop_tick()
        else:
            self._flush_deferred()
        self.recompute()

    def merge_remote(self, event: ActivityEvent) -> bool:
        """Fold in an authoritative event. Deferred while a local one is in flight."""
        if self._log is None:
            raise RuntimeError("no attendance to merge into")

        if self._log.has_pending():
            self._log.check_belongs(event)
            self._deferred[event.event_id] = event
            return False

        changed = self._log.upsert_remote(event)
        if changed:
            self.recompute()
        return changed

    def adopt(self, record: Optional[AttendanceRecord], events: Iterable[ActivityEvent]) -> None:
        """Replace local state wholesale with the backend's copy."""
        self._deferred.clear()
        if record is None:
            self._record = None
            self._log = None
            self._stop_tick()
        else:
            if self._log is None or self._log.attendance_id != record.attendance_id:
                self._log = ActivityEventLog(record.attendance_id)
            self._log.adopt(events)
            self._record = record
        self.recompute()
        self._ensure_tick()

    def _flush_deferred(self) -> None:
        deferred, self._deferred = self._deferred, {}
        for event in sorted(deferred.values(), key=lambda e: e.sort_key):
            try:
                self._log.upsert_remote(event)
            except DomainError as e:
                logger.warning("Dropping deferred remote event %s: %s", event.event_id, e)
