"""Derive per-category durations from an activity log.

``recompute`` is a fold over the ordered events: it never reads previous
totals, so running it from scratch on every tick gives the same answer as
running it once.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable

from ..activity.model import ActivityEvent
from ..core.enums import ActivityType, Category
from .lifecycle import derive_state
from .model import AttendanceRecord, DurationTotals

NEXT_CATEGORY: dict[ActivityType, Category] = {
    ActivityType.BREAK_START: Category.BREAK,
    ActivityType.BREAK_END: Category.WORKING,
    ActivityType.OVERTIME_START: Category.OVERTIME,
    ActivityType.OVERTIME_END: Category.WORKING,
    ActivityType.CLIENT_VISIT_START: Category.CLIENT_VISIT,
    ActivityType.CLIENT_VISIT_END: Category.WORKING,
}


def ordered_unique(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    """Sort by timestamp, keeping one event per id."""
    by_id = {e.event_id: e for e in events}
    return sorted(by_id.values(), key=lambda e: e.sort_key)


def recompute(events: Iterable[ActivityEvent], now: datetime) -> DurationTotals:
    buckets = {c: timedelta(0) for c in Category}
    active: Category | None = None
    since: datetime | None = None

    for e in ordered_unique(events):
        if e.type == ActivityType.CLOCK_IN:
            if active is None and since is None:
                active, since = Category.WORKING, e.timestamp
            continue
        if active is None:
            # Nothing counts before clock_in or after clock_out.
            continue

        buckets[active] += e.timestamp - since
        since = e.timestamp
        if e.type == ActivityType.CLOCK_OUT:
            active = None
        else:
            active = NEXT_CATEGORY.get(e.type, active)

    if active is not None and since is not None:
        buckets[active] += max(now - since, timedelta(0))

    return DurationTotals.from_buckets(buckets)


def rebuild(record: AttendanceRecord, events: Iterable[ActivityEvent], now: datetime) -> AttendanceRecord:
    """Refresh every derived field of ``record`` from its events."""
    ordered = ordered_unique(events)
    clock_in = next((e.timestamp for e in ordered if e.type == ActivityType.CLOCK_IN), record.clock_in)
    clock_out = next((e.timestamp for e in ordered if e.type == ActivityType.CLOCK_OUT), None)
    return replace(
        record,
        clock_in=clock_in,
        clock_out=clock_out,
        status=derive_state(ordered),
        totals=recompute(ordered, now),
    )
