from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..common.validators import require_latitude, require_longitude, require_positive


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    @classmethod
    def parse(cls, latitude, longitude) -> "Coordinates":
        """Build from untrusted input, rejecting out-of-range values."""
        return cls(latitude=require_latitude(latitude), longitude=require_longitude(longitude))

    def __str__(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


@dataclass(frozen=True)
class OfficeLocation:
    name: str
    coordinates: Coordinates
    radius_m: float

    @classmethod
    def parse(cls, *, name: str, latitude, longitude, radius_m) -> "OfficeLocation":
        return cls(
            name=str(name),
            coordinates=Coordinates.parse(latitude, longitude),
            radius_m=require_positive(radius_m, "radius_m"),
        )


@dataclass(frozen=True)
class GeofenceResult:
    """Outcome of one proximity check. Never persisted."""

    is_within_range: bool
    distance_m: float
    radius_m: float
    accuracy_m: Optional[float] = None
    office: Optional[OfficeLocation] = None
