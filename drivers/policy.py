"""
Purpose: Central configuration for driver broadcasts and travel estimates.
What it does:

Stores all tunable thresholds for finding drivers and pushing offers:

BROADCAST_RADIUS_KM = 5
URGENT_BROADCAST_RADIUS_KM = 10
MOTOR_SPEED_KMH = 40

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class DriverPolicy:
    """
    Central configuration for driver broadcasts and routing speed.
    """

    # --- Broadcast Rings ---
    # Radius around the restaurant for the offer sent when a restaurant accepts.
    broadcast_radius_km: float = 5.0

    # Radius for re-broadcasting an order a driver dropped mid-delivery.
    urgent_broadcast_radius_km: float = 10.0

    # --- Travel estimates ---
    # Average motor speed used to turn routed distances into minutes.
    motor_speed_kmh: float = 40.0

    # --- Nearby orders search ---
    default_search_radius_m: int = 5000
    max_search_radius_m: int = 50000
    default_page_size: int = 20
    max_page_size: int = 100

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.broadcast_radius_km <= 0 or self.urgent_broadcast_radius_km <= 0:
            raise ValueError("broadcast radii must be > 0")

        if self.urgent_broadcast_radius_km < self.broadcast_radius_km:
            raise ValueError("urgent_broadcast_radius_km must be >= broadcast_radius_km")

        if self.motor_speed_kmh <= 0:
            raise ValueError("motor_speed_kmh must be > 0")

        if not 0 < self.default_search_radius_m <= self.max_search_radius_m:
            raise ValueError("default_search_radius_m must be within (0, max_search_radius_m]")

        if not 0 < self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be within (0, max_page_size]")


def default_driver_policy() -> DriverPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DriverPolicy()
    p.validate()
    return p
