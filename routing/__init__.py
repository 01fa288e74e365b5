#Marks routing as a package.
#Re-exports the public routing API so other modules import from routing
#without knowing internal file names.
#No business logic.

from .geo import LatLon, haversine_m, haversine_km, path_length_m
from .geofence import GeofenceCandidate, geofence_candidates
from .osrm_client import OSRMClient, OSRMError
from .provider import (
    FallbackRoutingProvider,
    GreatCircleRoutingProvider,
    OSRMRoutingProvider,
    RouteEstimate,
    RoutingError,
    RoutingProvider,
    TripPlan,
    build_routing_provider,
)

__all__ = [
           "LatLon",
           "haversine_m",
           "haversine_km",
           "path_length_m",
           "GeofenceCandidate",
           "geofence_candidates",
           "OSRMClient",
           "OSRMError",
           "RoutingProvider",
           "OSRMRoutingProvider",
           "GreatCircleRoutingProvider",
           "FallbackRoutingProvider",
           "RouteEstimate",
           "TripPlan",
           "RoutingError",
           "build_routing_provider",
             ]
