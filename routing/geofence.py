#Purpose: Straight-line geofencing.
#Given a center point and a set of things that have a location,
#keep the ones inside a radius and sort them by distance.
#Used for driver broadcasts and for the nearby-orders search.
#Output: a list of GeofenceCandidate sorted nearest first.

from dataclasses import dataclass #for simple data structures
from typing import Any, Callable, Iterable, List, Optional #for type annotations

from .geo import LatLon, haversine_m


@dataclass(frozen=True) #immutable data structure for geofence candidates
class GeofenceCandidate:
    """
    One item that passed the radius check, with its distance to the center.
    """
    item: Any
    distance_m: float # in meters - from the center point to the item

    @property
    def distance_km(self) -> float:
        return self.distance_m / 1000.0


def geofence_candidates(
        center: LatLon,
        items: Iterable[Any],
        location_of: Callable[[Any], Optional[LatLon]],
        *,
        radius_m: float,
        sort_key: Optional[Callable[[GeofenceCandidate], Any]] = None,
) -> List[GeofenceCandidate]:
    """
    Filter items to those within radius_m of center.

    Args:
        center: (lat, lon) of the search origin
        items: anything with a location
        location_of: returns (lat, lon) for an item, or None when it has no fix
        radius_m: inclusive radius in meters
        sort_key: ordering of the result, defaults to distance ascending

    Returns:
        List[GeofenceCandidate]
    """
    candidates: List[GeofenceCandidate] = []

    for item in items:
        location = location_of(item)
        #fail closed : no location fix means the item cannot be placed
        if location is None:
            continue

        distance = haversine_m(center, location)
        if distance > radius_m:
            continue

        candidates.append(GeofenceCandidate(item=item, distance_m=distance))

    candidates.sort(key=sort_key or (lambda candidate: candidate.distance_m))
    return candidates
