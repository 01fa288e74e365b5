"""
Purpose: Core vocabulary for the drivers domain.
What it does:
Defines driver statuses and vehicle types without relying on Django ORM constraints.
"""

from __future__ import annotations

from enum import Enum


class DriverStatus(str, Enum):
    """
    Standardizes the state a driver can be in.
    busy means the driver carries at least one active order.
    """
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"
    SUSPENDED = "suspended"

    @classmethod
    def choices(cls):
        return [(status.value, status.value.capitalize()) for status in cls]


class VehicleType(str, Enum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    BICYCLE = "bicycle"
    SCOOTER = "scooter"

    @classmethod
    def choices(cls):
        return [(vehicle.value, vehicle.value.capitalize()) for vehicle in cls]


# Statuses in which a driver may still take on work, capacity permitting.
WORKING_STATUSES = frozenset({DriverStatus.AVAILABLE, DriverStatus.BUSY})
