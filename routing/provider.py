"""
Purpose: Routing capability used by dispatch.

One interface, three implementations, chosen once when services are built:
- OSRMRoutingProvider: live road network (routing/osrm_client.py)
- GreatCircleRoutingProvider: local haversine estimate, road factor 1.3
- FallbackRoutingProvider: primary for everything, fallback for single routes only

Single routes may degrade to an estimate. Trips never do: a failing trip call
propagates RoutingError so batch decisions fail closed.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .eta_service import travel_window_minutes
from .geo import LatLon, haversine_km, haversine_m, nearest_neighbour_order
from .osrm_client import OSRMClient, OSRMError

logger = logging.getLogger(__name__)

DEFAULT_SPEED_KMH = 40.0
ROAD_FACTOR = 1.3
MIN_TIMEOUT_SEC = 3.0
MAX_TIMEOUT_SEC = 5.0


class RoutingError(Exception):
    """Raised when a routing provider cannot answer."""
    pass


@dataclass(frozen=True)
class RouteEstimate:
    distance_km: float
    time_min: int
    time_max: int
    estimated: bool = False  # True when produced by the great-circle estimator

    def as_dict(self) -> dict:
        return {
            "distance_km": self.distance_km,
            "time_min": self.time_min,
            "time_max": self.time_max,
            "estimated": self.estimated,
        }


@dataclass(frozen=True)
class TripLeg:
    distance_m: float
    duration_s: float


@dataclass(frozen=True)
class TripPlan:
    """
    Optimized multi-stop trip over a waypoint set.
    """
    distance_m: float
    duration_s: float
    legs: List[TripLeg] = field(default_factory=list)


class RoutingProvider(ABC):

    @abstractmethod
    def route(self, origin: LatLon, destination: LatLon,
              speed_kmh: float = DEFAULT_SPEED_KMH) -> RouteEstimate:
        """Distance and travel window between two points."""

    @abstractmethod
    def trip(self, waypoints: Sequence[LatLon], *,
             source_first: bool = True, roundtrip: bool = False) -> TripPlan:
        """Optimized one-way trip visiting every waypoint."""


def _estimate(distance_km: float, speed_kmh: float, *, estimated: bool) -> RouteEstimate:
    time_min, time_max = travel_window_minutes(distance_km, speed_kmh)
    return RouteEstimate(round(distance_km, 2), time_min, time_max, estimated=estimated)


class OSRMRoutingProvider(RoutingProvider):
    """
    Live provider. Every OSRM failure surfaces as RoutingError.
    """
    def __init__(self, client: OSRMClient):
        self.client = client

    def route(self, origin: LatLon, destination: LatLon,
              speed_kmh: float = DEFAULT_SPEED_KMH) -> RouteEstimate:
        try:
            result = self.client.compute_route([origin, destination])
        except (OSRMError, ValueError) as exc:
            raise RoutingError(str(exc)) from exc
        return _estimate(result["distance"] / 1000.0, speed_kmh, estimated=False)

    def trip(self, waypoints: Sequence[LatLon], *,
             source_first: bool = True, roundtrip: bool = False) -> TripPlan:
        try:
            result = self.client.compute_trip(list(waypoints), source_first=source_first, roundtrip=roundtrip)
        except (OSRMError, ValueError) as exc:
            raise RoutingError(str(exc)) from exc

        legs = [TripLeg(leg["distance"], leg["duration"]) for leg in result["legs"]]
        return TripPlan(distance_m=result["distance"], duration_s=result["duration"], legs=legs)


class GreatCircleRoutingProvider(RoutingProvider):
    """
    Offline estimator: straight-line distance times a road factor.
    Trips are ordered nearest-neighbour from the first waypoint.
    """
    def __init__(self, road_factor: float = ROAD_FACTOR, speed_kmh: float = DEFAULT_SPEED_KMH):
        self.road_factor = road_factor
        self.speed_kmh = speed_kmh

    def route(self, origin: LatLon, destination: LatLon,
              speed_kmh: float = DEFAULT_SPEED_KMH) -> RouteEstimate:
        distance_km = haversine_km(origin, destination) * self.road_factor
        return _estimate(distance_km, speed_kmh, estimated=True)

    def trip(self, waypoints: Sequence[LatLon], *,
             source_first: bool = True, roundtrip: bool = False) -> TripPlan:
        points = list(waypoints)
        if len(points) < 2:
            raise RoutingError("At least two waypoints are required to compute a trip.")

        sequence = nearest_neighbour_order(points)
        if roundtrip:
            sequence.append(sequence[0])

        legs: List[TripLeg] = []
        for a, b in zip(sequence[:-1], sequence[1:]):
            distance_m = haversine_m(points[a], points[b]) * self.road_factor
            duration_s = distance_m / (self.speed_kmh * 1000.0 / 3600.0)
            legs.append(TripLeg(distance_m, duration_s))

        return TripPlan(
            distance_m=sum(leg.distance_m for leg in legs),
            duration_s=sum(leg.duration_s for leg in legs),
            legs=legs,
        )


class FallbackRoutingProvider(RoutingProvider):
    """
    Routes through `primary`; single routes degrade to `fallback` on RoutingError.
    Trips are not degraded.
    """
    def __init__(self, primary: RoutingProvider, fallback: RoutingProvider):
        self.primary = primary
        self.fallback = fallback

    def route(self, origin: LatLon, destination: LatLon,
              speed_kmh: float = DEFAULT_SPEED_KMH) -> RouteEstimate:
        try:
            return self.primary.route(origin, destination, speed_kmh)
        except RoutingError as exc:
            logger.warning("Routing provider failed (%s), using great-circle estimate", exc)
            return self.fallback.route(origin, destination, speed_kmh)

    def trip(self, waypoints: Sequence[LatLon], *,
             source_first: bool = True, roundtrip: bool = False) -> TripPlan:
        return self.primary.trip(waypoints, source_first=source_first, roundtrip=roundtrip)


def clamp_timeout(value: Optional[str]) -> float:
    try:
        timeout = float(value) if value else MAX_TIMEOUT_SEC
    except ValueError:
        timeout = MAX_TIMEOUT_SEC
    return min(MAX_TIMEOUT_SEC, max(MIN_TIMEOUT_SEC, timeout))


def build_routing_provider(base_url: Optional[str] = None, timeout: Optional[float] = None) -> RoutingProvider:
    """
    Select the routing implementation once.
    With an OSRM endpoint configured: live provider with great-circle fallback for routes.
    Without one: the great-circle estimator alone.
    """
    base_url = base_url or os.getenv("BASE_URL")
    estimator = GreatCircleRoutingProvider()

    if not base_url:
        logger.info("No OSRM endpoint configured, routing with great-circle estimates")
        return estimator

    timeout = timeout if timeout is not None else clamp_timeout(os.getenv("ROUTING_TIMEOUT"))
    live = OSRMRoutingProvider(OSRMClient(base_url=base_url, timeout=timeout))
    return FallbackRoutingProvider(primary=live, fallback=estimator)
