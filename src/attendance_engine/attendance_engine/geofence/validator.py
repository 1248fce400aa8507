"""Great-circle proximity checks against office locations.

Everything here is pure: coordinates are validated by the caller
(``Coordinates.parse``) and nothing is normalized silently.
"""

from __future__ import annotations

from math import atan2, cos, radians, sin, sqrt
from typing import Optional, Sequence

from ..core.constants import EARTH_RADIUS_M
from .model import Coordinates, GeofenceResult, OfficeLocation


def haversine_m(a: Coordinates, b: Coordinates) -> float:
    """Distance in meters between two points given in decimal degrees."""
    lat1, lon1, lat2, lon2 = map(radians, [a.latitude, a.longitude, b.latitude, b.longitude])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * atan2(sqrt(h), sqrt(1 - h))


def check(
    current: Coordinates,
    reference: Coordinates,
    radius_m: float,
    *,
    accuracy_m: Optional[float] = None,
) -> GeofenceResult:
    distance = haversine_m(current, reference)
    return GeofenceResult(
        is_within_range=distance <= radius_m,
        distance_m=distance,
        radius_m=float(radius_m),
        accuracy_m=accuracy_m,
    )


def nearest_office(
    current: Coordinates,
    offices: Sequence[OfficeLocation],
    *,
    accuracy_m: Optional[float] = None,
) -> GeofenceResult:
    """Check against every office and pick the best match.

    An office whose fence contains the point wins over one that doesn't;
    ties are broken by distance.
    """
    if not offices:
        raise ValueError("at least one office location is required")

    results = []
    for office in offices:
        r = check(current, office.coordinates, office.radius_m, accuracy_m=accuracy_m)
        results.append(
            GeofenceResult(
                is_within_range=r.is_within_range,
                distance_m=r.distance_m,
                radius_m=r.radius_m,
                accuracy_m=r.accuracy_m,
                office=office,
            )
        )
    return min(results, key=lambda r: (not r.is_within_range, r.distance_m))
