"""
Purpose: Business rules and distance math for choosing which drivers hear about an order.
What it does:
Accepts a pickup point and a pool of drivers, filters out the ones that cannot take
more work, and keeps those inside the broadcast radius, closest first.
"""

from typing import Any, Iterable, List, Optional, Tuple

from routing.geofence import GeofenceCandidate, geofence_candidates
from .models import DriverStatus


def driver_location(driver) -> Optional[Tuple[float, float]]:
    if driver.current_lat is None or driver.current_lng is None:
        return None
    return (driver.current_lat, driver.current_lng)


def has_spare_capacity(driver) -> bool:
    return len(driver.active_orders or []) < driver.max_orders_capacity


def filter_eligible_drivers(drivers: Iterable[Any]) -> List[Any]:
    """
    Returns only drivers who are active, available, and still have
    room for one more order.
    """
    eligible = []

    for driver in drivers:
        if DriverStatus(driver.status) != DriverStatus.AVAILABLE:
            continue

        if not driver.is_active:
            continue

        if not has_spare_capacity(driver):
            continue

        eligible.append(driver)

    return eligible


def drivers_within_radius(
    pickup_location: Tuple[float, float],
    drivers: Iterable[Any],
    radius_km: float,
) -> List[GeofenceCandidate]:
    """
    Eligible drivers within radius_km of the pickup location, sorted closest first.
    """
    return geofence_candidates(
        pickup_location,
        filter_eligible_drivers(drivers),
        driver_location,
        radius_m=radius_km * 1000.0,
    )
