"""
Great-circle distance helpers for GPS trails.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

EARTH_RADIUS_KM = 6371.0

Coordinate = Tuple[float, float]


def haversine_km(start: Coordinate, end: Coordinate) -> float:
    lat1, lon1 = start
    lat2, lon2 = end
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def trail_distance_km(points: Iterable[Coordinate]) -> float:
    """Sum of consecutive leg distances; fewer than two points is 0."""
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += haversine_km(previous, point)
        previous = point
    return total


def average_speed_kmh(distance_km: float, duration_hours: float) -> float:
    if duration_hours <= 0:
        return 0.0
    return distance_km / duration_hours


def as_coordinates(rows: Sequence) -> list:
    return [(row.latitude, row.longitude) for row in rows]
