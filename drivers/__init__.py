"""
Drivers domain package.

Public API:
- Vocabulary: DriverStatus, VehicleType
- DriverPolicy / default_driver_policy
- Broadcast selection: drivers_within_radius
"""
from .models import DriverStatus, VehicleType, WORKING_STATUSES
from .policy import DriverPolicy, default_driver_policy
from .selection import drivers_within_radius, filter_eligible_drivers

__all__ = [
    "DriverStatus",
    "VehicleType",
    "WORKING_STATUSES",
    "DriverPolicy",
    "default_driver_policy",
    "drivers_within_radius",
    "filter_eligible_drivers",
]
