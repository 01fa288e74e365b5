"""
Batching subpackage for the Orders domain.

Public API:
- BatchingPolicy / default_policy
- BatchStop, Waypoint
- build_batch_waypoints, detour_ratio, direct_distance_m
"""

from .feasibility import (
    BatchStop,
    Waypoint,
    build_batch_waypoints,
    coordinates_of,
    detour_ratio,
    direct_distance_m,
)
from .policy import BatchingPolicy, default_policy

__all__ = [
    "BatchingPolicy",
    "default_policy",
    "BatchStop",
    "Waypoint",
    "build_batch_waypoints",
    "coordinates_of",
    "detour_ratio",
    "direct_distance_m",
]
