from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import ActivityType
from ..geofence.model import Coordinates


@dataclass(frozen=True)
class ActivityEvent:
    """One immutable, timestamped lifecycle fact."""

    event_id: str
    attendance_id: str
    user_id: str
    type: ActivityType
    timestamp: datetime
    location: Optional[Coordinates] = None
    notes: Optional[str] = None
    selfie_ref: Optional[str] = None

    @classmethod
    def new(
        cls,
        *,
        attendance_id: str,
        user_id: str,
        type: ActivityType,
        timestamp: datetime,
        location: Optional[Coordinates] = None,
        notes: Optional[str] = None,
        selfie_ref: Optional[str] = None,
    ) -> "ActivityEvent":
        return cls(
            event_id=str(uuid.uuid4()),
            attendance_id=attendance_id,
            user_id=user_id,
            type=type,
            timestamp=timestamp,
            location=location,
            notes=notes,
            selfie_ref=selfie_ref,
        )

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.timestamp, self.event_id)
