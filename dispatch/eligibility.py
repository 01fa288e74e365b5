"""
Purpose: Decide whether a driver may add one more order to the batch they carry.
What it does:
1. Driver gate: working status, active account, below capacity.
2. Empty batch: always eligible, the routing provider is not consulted.
3. Restaurant cluster: every batch restaurant must be within the configured distance
   of the candidate's restaurant.
4. Detour: optimized one-way trip over all waypoints divided by the straight-line
   path must stay under the policy cap. A routing failure is a rejection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from logistics.models import Order
from orders.batching import (
    BatchingPolicy,
    BatchStop,
    build_batch_waypoints,
    coordinates_of,
    default_policy,
    detour_ratio,
)
from routing.geo import haversine_m
from routing.provider import RoutingError, RoutingProvider
from users.models import Driver

from .config import SystemConfigReader
from .exceptions import NotFound
from .state_machines import can_accept_more_orders

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityResult:
    can_accept: bool
    reason: Optional[str] = None
    detour_ratio: Optional[float] = None

    def as_dict(self) -> dict:
        data = {"canAccept": self.can_accept}
        if self.reason:
            data["reason"] = self.reason
        if self.detour_ratio is not None:
            data["detourRatio"] = round(self.detour_ratio, 3)
        return data


def _batch_stop(order: Order) -> BatchStop:
    return BatchStop(
        order_id=order.pk,
        restaurant_id=order.restaurant_id,
        restaurant_coordinates=order.restaurant.get_coordinates(),
        delivery_coordinates=order.get_delivery_coordinates(),
    )


class BatchEligibilityChecker:

    def __init__(self, routing: RoutingProvider, config: SystemConfigReader,
                 policy: Optional[BatchingPolicy] = None):
        self.routing = routing
        self.config = config
        self.policy = policy or default_policy()

    def capacity_of(self, driver: Driver) -> int:
        """
        Effective capacity: the driver's own limit, capped by the platform-wide setting.
        """
        return min(driver.max_orders_capacity, self.config.max_orders_per_driver())

    def can_accept(self, driver_id: int, order_id: int) -> EligibilityResult:
        driver = Driver.objects.filter(pk=driver_id).first()
        if driver is None:
            raise NotFound(f"Driver {driver_id} not found")

        candidate = Order.objects.select_related("restaurant").filter(pk=order_id).first()
        if candidate is None:
            raise NotFound(f"Order {order_id} not found")

        return self.check(driver, candidate)

    def check(self, driver: Driver, candidate: Order) -> EligibilityResult:
        """
        Same decision as can_accept() for already-loaded records.
        """
        if not can_accept_more_orders(driver):
            return EligibilityResult(False, "Driver is unavailable or at full capacity")

        active_ids: List[int] = list(driver.active_orders or [])
        if len(active_ids) >= self.capacity_of(driver):
            return EligibilityResult(False, f"Driver already carries the maximum of {self.capacity_of(driver)} orders")

        # first order of a batch
        if not active_ids:
            return EligibilityResult(True)

        by_id = Order.objects.select_related("restaurant").in_bulk(active_ids)
        batch = [by_id[active_id] for active_id in active_ids if active_id in by_id]

        max_distance_m = self.config.max_distance_between_restaurants_m()
        candidate_restaurant = candidate.restaurant.get_coordinates()
        for order in batch:
            distance = haversine_m(order.restaurant.get_coordinates(), candidate_restaurant)
            if distance > max_distance_m:
                logger.info(
                    "Order %s rejected for driver %s: restaurant %.0fm from order %s's restaurant",
                    candidate.pk, driver.pk, distance, order.pk,
                )
                return EligibilityResult(False, f"Restaurant too far from existing delivery (max {max_distance_m}m)")

        waypoints = build_batch_waypoints([_batch_stop(order) for order in batch] + [_batch_stop(candidate)])
        if len(waypoints) < 2:
            return EligibilityResult(False, "Route could not be verified")

        try:
            trip = self.routing.trip(coordinates_of(waypoints), source_first=True, roundtrip=False)
        except RoutingError as exc:
            logger.warning("Trip request failed for driver %s + order %s, rejecting: %s", driver.pk, candidate.pk, exc)
            return EligibilityResult(False, "Route could not be verified")

        ratio = detour_ratio(trip.distance_m, waypoints)
        if ratio > self.policy.max_detour_ratio:
            logger.info("Order %s rejected for driver %s: detour ratio %.2f", candidate.pk, driver.pk, ratio)
            return EligibilityResult(
                False,
                f"Route not compatible with current deliveries (detour ratio {ratio:.2f} > {self.policy.max_detour_ratio})",
                detour_ratio=ratio,
            )

        return EligibilityResult(True, detour_ratio=ratio)
