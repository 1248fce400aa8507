from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Protocol, Sequence

from ..activity.model import ActivityEvent
from ..attendance.model import AttendanceRecord
from ..attendance.session import AttendanceSession
from ..core.exceptions import PersistenceFailure, StaleReconciliation, ValidationError
from .channel import ActivityNotification, RealtimeChannel, Subscription

logger = logging.getLogger(__name__)


class DayLoader(Protocol):
    async def load_day(
        self, user_id: str, work_date: date
    ) -> tuple[Optional[AttendanceRecord], Sequence[ActivityEvent]]:
        raise NotImplementedError


class StatusReconciler:
    """Fold pushed activity changes into one session's log.

    Merges are keyed by event id, so duplicates and arrival order do not
    change the outcome. While a local transition is in flight, remote events
    are parked by the session and applied once the backend answers.
    """

    def __init__(self, session: AttendanceSession, loader: DayLoader):
        self._session = session
        self._loader = loader
        self._subscription: Optional[Subscription] = None

    @property
    def attached(self) -> bool:
        return self._subscription is not None

    def attach(self, channel: RealtimeChannel) -> None:
        if self._subscription is not None:
            return
        self._subscription = channel.subscribe(self._session.user_id, self.handle)
        self._session.on_close(self.detach)

    def detach(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()

    async def handle(self, notification: ActivityNotification) -> bool:
        """Apply one notification. Returns True when local state changed."""
        event = notification.event
        session = self._session
        if session.closed or event.user_id != session.user_id:
            return False

        try:
            if session.record is None:
                return await self._pick_up_remote_day(event)
            return session.merge_remote(event)
        except StaleReconciliation as e:
            logger.warning("Dropping stale remote event %s: %s", event.event_id, e)
        except ValidationError as e:
            logger.warning("Dropping inconsistent remote event %s: %s", event.event_id, e)
        return False

    async def resync(self) -> None:
        """Adopt the backend's copy of today's attendance wholesale."""
        session = self._session
        work_date = session.record.work_date if session.record else session.snapshot().taken_at.date()
        record, events = await self._loader.load_day(session.user_id, work_date)
        session.adopt(record, events)
        logger.info("Resynced attendance for user %s (%d events)", session.user_id, len(events))

    async def resync_quietly(self) -> None:
        try:
            await self.resync()
        except PersistenceFailure as e:
            logger.warning("Resync for user %s failed, keeping local log: %s", self._session.user_id, e)

    async def _pick_up_remote_day(self, event: ActivityEvent) -> bool:
        # Another device may have clocked in; only the backend knows the record.
        await self.resync()
        record = self._session.record
        if record is None or record.attendance_id != event.attendance_id:
            raise StaleReconciliation(f"attendance {event.attendance_id} is unknown to this session")
        return True
