# orders/batching/feasibility.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from routing.geo import LatLon, path_length_m


@dataclass(frozen=True)
class BatchStop:
    """
    The geographic facts about one order that batching needs.
    """
    order_id: int
    restaurant_id: int
    restaurant_coordinates: Optional[LatLon]
    delivery_coordinates: Optional[LatLon]


@dataclass(frozen=True)
class Waypoint:
    coordinates: LatLon
    kind: str  # "pickup" | "delivery"
    order_id: int


def build_batch_waypoints(stops: Sequence[BatchStop]) -> List[Waypoint]:
    """
    Waypoint set for a batch, in batch order:
    each distinct restaurant once (first time it appears), then every delivery destination.

    Orders without coordinates contribute nothing.
    """
    waypoints: List[Waypoint] = []
    seen_restaurants = set()

    for stop in stops:
        if stop.restaurant_coordinates is not None:
            key = (round(stop.restaurant_coordinates[0], 6), round(stop.restaurant_coordinates[1], 6))
            if key not in seen_restaurants:
                seen_restaurants.add(key)
                waypoints.append(Waypoint(stop.restaurant_coordinates, "pickup", stop.order_id))

        if stop.delivery_coordinates is not None:
            waypoints.append(Waypoint(stop.delivery_coordinates, "delivery", stop.order_id))

    return waypoints


def direct_distance_m(waypoints: Sequence[Waypoint]) -> float:
    """
    Sum of straight-line distances between consecutive waypoints, in meters.
    This is the baseline for the detour ratio.
    """
    return path_length_m([waypoint.coordinates for waypoint in waypoints])


def detour_ratio(trip_distance_m: float, waypoints: Sequence[Waypoint]) -> float:
    """
      detour_ratio = trip_distance / direct_distance

    All waypoints on the same spot give a zero baseline; that batch is not a detour (1.0).
    """
    baseline = direct_distance_m(waypoints)
    if baseline <= 0:
        return 1.0
    return trip_distance_m / baseline


def coordinates_of(waypoints: Sequence[Waypoint]) -> List[LatLon]:
    return [waypoint.coordinates for waypoint in waypoints]
