"""
Purpose: Great-circle math shared by routing, eligibility and geofencing.
No HTTP here. Coordinates are (lat, lon) like everywhere else in the codebase.
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

LatLon = Tuple[float, float]

EARTH_RADIUS_M = 6371000.0


def haversine_m(origin: LatLon, destination: LatLon) -> float:
    """
    Great-circle distance in meters between two (lat, lon) points.
    """
    lat1, lon1 = origin
    lat2, lon2 = destination

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_km(origin: LatLon, destination: LatLon) -> float:
    return haversine_m(origin, destination) / 1000.0


def path_length_m(points: Sequence[LatLon]) -> float:
    """Sum of direct distances between consecutive points."""
    total = 0.0
    for a, b in zip(points[:-1], points[1:]):
        total += haversine_m(a, b)
    return total


def bounding_box(center: LatLon, radius_m: float) -> Tuple[float, float, float, float]:
    """
    (min_lat, max_lat, min_lon, max_lon) enclosing a circle of radius_m.
    Cheap prefilter for ORM queries before the exact haversine check.
    """
    lat, lon = center
    d_lat = math.degrees(radius_m / EARTH_RADIUS_M)
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    d_lon = math.degrees(radius_m / (EARTH_RADIUS_M * cos_lat))
    return lat - d_lat, lat + d_lat, lon - d_lon, lon + d_lon


def nearest_neighbour_order(points: List[LatLon]) -> List[int]:
    """
    Greedy visiting order starting at points[0]. Used by the local trip estimator.
    """
    if not points:
        return []

    remaining = list(range(1, len(points)))
    sequence = [0]
    while remaining:
        current = points[sequence[-1]]
        next_idx = min(remaining, key=lambda idx: haversine_m(current, points[idx]))
        remaining.remove(next_idx)
        sequence.append(next_idx)
    return sequence
