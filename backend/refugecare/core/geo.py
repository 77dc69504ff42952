"""
RefugeCare Triage - Geospatial Index

Great-circle distance, bearing and k-nearest lookups over coordinates.
All functions are pure.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from refugecare.core.types import Coordinate

EARTH_RADIUS_KM = 6371.0

COMPASS_POINTS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


@dataclass(frozen=True)
class NearestResult:
    id: str
    distance_km: float
    bearing: float


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in kilometers."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    # Clamp against rounding pushing h slightly above 1 for antipodal points
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Initial heading from a to b, in degrees within [0, 360)."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lng = math.radians(b.lng - a.lng)

    y = math.sin(d_lng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lng)

    degrees = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    # (-tiny + 360) % 360 can round to exactly 360.0
    return 0.0 if degrees >= 360.0 else degrees


def within_radius(origin: Coordinate, target: Coordinate, radius_km: float) -> bool:
    return distance(origin, target) <= radius_km


def nearest(
    origin: Coordinate,
    candidates: Iterable[Tuple[str, Coordinate]],
    k: int,
) -> List[NearestResult]:
    """
    Return up to k candidates ordered by ascending distance from origin.

    Ties keep candidate insertion order. An empty candidate set or k <= 0
    yields an empty list.
    """
    if k <= 0:
        return []

    results = [
        NearestResult(id=cid, distance_km=distance(origin, coord), bearing=bearing(origin, coord))
        for cid, coord in candidates
    ]
    results.sort(key=lambda r: r.distance_km)
    return results[:k]


def format_distance(km: float) -> str:
    """Short label: meters below 1 km, otherwise one decimal of km."""
    if km < 1.0:
        return f"{round(km * 1000)}m"
    return f"{km:.1f}km"


def compass_direction(degrees: float) -> str:
    """Map a bearing to one of eight compass points."""
    index = int(round((degrees % 360.0) / 45.0)) % 8
    return COMPASS_POINTS[index]
