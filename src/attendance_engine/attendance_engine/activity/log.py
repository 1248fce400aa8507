from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from ..core.enums import ActivityType, EventStatus
from ..core.exceptions import StaleReconciliation, ValidationError
from .model import ActivityEvent


@dataclass
class _Entry:
    event: ActivityEvent
    status: EventStatus


class ActivityEventLog:
    """Ordered record of one attendance day's events, keyed by event id.

    Locally originated events enter as PENDING and are either confirmed or
    removed once the backend answers. Remote events are upserted by id, so
    re-delivery and out-of-order arrival converge on the same log.
    """

    def __init__(self, attendance_id: str, events: Iterable[ActivityEvent] = ()):
        self.attendance_id = attendance_id
        self._entries: dict[str, _Entry] = {}
        for e in events:
            self.upsert_remote(e)

    def __iter__(self) -> Iterator[ActivityEvent]:
        return iter(self.events())

    def __len__(self) -> int:
        return len(self._entries)

    def events(self) -> list[ActivityEvent]:
        return sorted((entry.event for entry in self._entries.values()), key=lambda e: e.sort_key)

    @property
    def last(self) -> Optional[ActivityEvent]:
        events = self.events()
        return events[-1] if events else None

    def status_of(self, event_id: str) -> Optional[EventStatus]:
        entry = self._entries.get(event_id)
        return entry.status if entry else None

    def has_pending(self) -> bool:
        return any(entry.status == EventStatus.PENDING for entry in self._entries.values())

    def has_type(self, activity_type: ActivityType) -> bool:
        return any(entry.event.type == activity_type for entry in self._entries.values())

    def append_local(self, event: ActivityEvent) -> None:
        self.check_belongs(event)
        if event.event_id in self._entries:
            raise ValidationError(f"event {event.event_id} is already in the log")

        last = self.last
        if last is not None and event.timestamp <= last.timestamp:
            raise ValidationError("new events must be later than the last logged event")
        self._check_placement(event)
        self._entries[event.event_id] = _Entry(event, EventStatus.PENDING)

    def confirm(self, event_id: str) -> None:
        entry = self._entries.get(event_id)
        if entry is None:
            raise KeyError(event_id)
        entry.status = EventStatus.CONFIRMED

    def reject(self, event_id: str) -> ActivityEvent:
        """Drop a speculative local event. The log never keeps rejected attempts."""
        entry = self._entries.pop(event_id)
        return entry.event

    def upsert_remote(self, event: ActivityEvent) -> bool:
        """Merge an authoritative event. Returns True when the log changed.

        An event that is still pending locally is left untouched: the local
        optimistic copy wins until the backend acknowledges it.
        """
        self.check_belongs(event)

        existing = self._entries.get(event.event_id)
        if existing is not None:
            if existing.status == EventStatus.PENDING or existing.event == event:
                return False
            self._entries[event.event_id] = _Entry(event, EventStatus.CONFIRMED)
            return True

        self._check_placement(event)
        self._entries[event.event_id] = _Entry(event, EventStatus.CONFIRMED)
        return True

    def adopt(self, events: Iterable[ActivityEvent]) -> None:
        """Replace the whole log with the backend's copy."""
        self._entries = {}
        for e in sorted(events, key=lambda e: e.sort_key):
            self.upsert_remote(e)

    def check_belongs(self, event: ActivityEvent) -> None:
        if event.attendance_id != self.attendance_id:
            raise StaleReconciliation(
                f"event {event.event_id} belongs to attendance {event.attendance_id}, not {self.attendance_id}"
            )

    def _check_placement(self, event: ActivityEvent) -> None:
        events = self.events()
        clock_in = next((e for e in events if e.type == ActivityType.CLOCK_IN), None)
        clock_out = next((e for e in events if e.type == ActivityType.CLOCK_OUT), None)

        if event.type == ActivityType.CLOCK_IN:
            if clock_in is not None:
                raise ValidationError("the log already has a clock_in")
            if events and events[0].timestamp <= event.timestamp:
                raise ValidationError("clock_in must be the first event")
            return

        if clock_in is None:
            raise ValidationError("the first event must be clock_in")
        if event.timestamp <= clock_in.timestamp:
            raise ValidationError("events cannot precede clock_in")
        if clock_out is not None and event.timestamp >= clock_out.timestamp:
            raise ValidationError("the attendance is already clocked out")
        if event.type == ActivityType.CLOCK_OUT:
            if clock_out is not None:
                raise ValidationError("the log already has a clock_out")
            if events[-1].timestamp >= event.timestamp:
                raise ValidationError("clock_out must be the last event")
