"""
Purpose: Bounded reads of admin-tunable SystemConfig values.
Dispatch never writes these. Missing or malformed values fall back to the default,
out-of-range values are clamped into bounds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from logistics.models import SystemConfig

logger = logging.getLogger(__name__)

MAX_ORDERS_PER_DRIVER = "max_orders_per_driver"
MAX_DISTANCE_BETWEEN_RESTAURANTS = "max_distance_between_restaurants"
PENDING_ORDER_TIMEOUT = "pending_order_timeout"
MAX_DRIVER_CANCELLATIONS = "max_driver_cancellations"
DEFAULT_PREPARATION_TIME = "default_preparation_time"


@dataclass(frozen=True)
class ConfigBounds:
    default: int
    minimum: int
    maximum: int

    def clamp(self, value: int) -> int:
        return min(self.maximum, max(self.minimum, value))


CONFIG_BOUNDS: Dict[str, ConfigBounds] = {
    MAX_ORDERS_PER_DRIVER: ConfigBounds(default=5, minimum=1, maximum=10),
    MAX_DISTANCE_BETWEEN_RESTAURANTS: ConfigBounds(default=500, minimum=100, maximum=5000),  # meters
    PENDING_ORDER_TIMEOUT: ConfigBounds(default=3, minimum=1, maximum=60),  # minutes
    MAX_DRIVER_CANCELLATIONS: ConfigBounds(default=3, minimum=1, maximum=20),
    DEFAULT_PREPARATION_TIME: ConfigBounds(default=15, minimum=5, maximum=120),  # minutes
}


class SystemConfigReader:
    """
    Reads SystemConfig fresh on every call so admin changes apply to the next decision.
    """

    def __init__(self, store=None):
        self.store = store or SystemConfig

    def get_int(self, key: str) -> int:
        bounds = CONFIG_BOUNDS[key]
        raw = self.store.get(key, bounds.default)
        try:
            value = int(float(str(raw).strip()))
        except (TypeError, ValueError, OverflowError):
            logger.warning("SystemConfig %s has non-numeric value %r, using default %s", key, raw, bounds.default)
            return bounds.default

        clamped = bounds.clamp(value)
        if clamped != value:
            logger.warning("SystemConfig %s=%s out of bounds, clamped to %s", key, value, clamped)
        return clamped

    def max_orders_per_driver(self) -> int:
        return self.get_int(MAX_ORDERS_PER_DRIVER)

    def max_distance_between_restaurants_m(self) -> int:
        return self.get_int(MAX_DISTANCE_BETWEEN_RESTAURANTS)

    def pending_order_timeout_minutes(self) -> int:
        return self.get_int(PENDING_ORDER_TIMEOUT)

    def max_driver_cancellations(self) -> int:
        return self.get_int(MAX_DRIVER_CANCELLATIONS)

    def default_preparation_time_minutes(self) -> int:
        return self.get_int(DEFAULT_PREPARATION_TIME)

    def preparation_minutes(self, requested) -> int:
        """
        Clamp a restaurant-quoted preparation time, or use the configured default.
        """
        bounds = CONFIG_BOUNDS[DEFAULT_PREPARATION_TIME]
        try:
            minutes = int(float(str(requested).strip()))
        except (TypeError, ValueError, OverflowError):
            return self.default_preparation_time_minutes()
        if minutes <= 0:
            return self.default_preparation_time_minutes()
        return bounds.clamp(minutes)
