from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from ..core.enums import Accuracy
from ..core.exceptions import LocationUnavailable
from ..geofence.model import Coordinates


@dataclass(frozen=True)
class PositionFix:
    """One raw reading from the device location API."""

    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    def is_plausible(self) -> bool:
        # (0, 0) is what several GPS stacks report before a real fix.
        if self.latitude == 0 and self.longitude == 0:
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0


class LocationPlatform(Protocol):
    """OS-level location API consumed by ``LocationAcquirer``."""

    async def has_permission(self) -> bool:
        raise NotImplementedError

    async def request_permission(self) -> bool:
        """Prompt the user. Returns True when granted."""

        raise NotImplementedError

    async def get_position(self, *, accuracy: Accuracy, timeout: float) -> PositionFix:
        raise NotImplementedError


class ReportedPositionPlatform(LocationPlatform):
    """Serves a position the client already measured (server-side use).

    The HTTP layer receives the device reading in the request body; this
    adapter lets it flow through the same acquisition checks.
    """

    def __init__(self, fix: Optional[PositionFix]):
        self._fix = fix

    async def has_permission(self) -> bool:
        return True

    async def request_permission(self) -> bool:
        return True

    async def get_position(self, *, accuracy: Accuracy, timeout: float) -> PositionFix:
        if self._fix is None:
            raise LocationUnavailable("No position was reported by the device")
        return self._fix
