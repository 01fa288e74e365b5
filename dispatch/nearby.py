"""
Purpose: Geospatial search for delivery orders a driver could pick up next.
What it does:
- Radius search (bounding box in SQL, exact haversine in Python) over unassigned
  delivery orders, closest first then newest.
- Post-filters each page through the batch eligibility check and max_distance.
- Attaches driver->restaurant and restaurant->delivery legs; a leg the router
  cannot answer is returned as None instead of dropping the order.

Pagination totals are counted before the post-filter, so total_items can overstate
what a driver is actually allowed to take.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from drivers.policy import DriverPolicy, default_driver_policy
from logistics.models import Order
from orders.models import OrderStatus, OrderType
from routing.geo import LatLon, bounding_box
from routing.geofence import GeofenceCandidate, geofence_candidates
from routing.provider import RoutingError, RoutingProvider
from users.models import Driver

from .eligibility import BatchEligibilityChecker
from .exceptions import NotFound, ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_STATUSES = (OrderStatus.PREPARING.value, OrderStatus.ACCEPTED.value)


@dataclass
class NearbyOrdersPage:
    orders: List[Dict[str, Any]]
    page: int
    page_size: int
    total_items: int
    driver_location: Optional[LatLon]
    search_radius_m: int
    message: Optional[str] = None
    skipped_ineligible: List[int] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size) if self.page_size else 0

    def as_dict(self) -> dict:
        data = {
            "orders": self.orders,
            "pagination": {
                "current_page": self.page,
                "total_pages": self.total_pages,
                "total_items": self.total_items,
                "items_in_page": len(self.orders),
            },
            "driver_location": (
                {"lat": self.driver_location[0], "lng": self.driver_location[1]}
                if self.driver_location else None
            ),
            "search_radius_km": f"{self.search_radius_m / 1000:.2f}",
        }
        if self.message:
            data["message"] = self.message
        return data


def _recency_key(candidate: GeofenceCandidate):
    # distance ascending, then newest first
    return (candidate.distance_m, -candidate.item.created_at.timestamp())


class NearbyOrderFinder:

    def __init__(self, routing: RoutingProvider, eligibility: BatchEligibilityChecker,
                 policy: Optional[DriverPolicy] = None):
        self.routing = routing
        self.eligibility = eligibility
        self.policy = policy or default_driver_policy()

    def _clamp_paging(self, radius, page, page_size):
        radius_m = int(radius) if radius else self.policy.default_search_radius_m
        radius_m = min(max(radius_m, 1), self.policy.max_search_radius_m)
        page = max(int(page or 1), 1)
        page_size = int(page_size) if page_size else self.policy.default_page_size
        page_size = min(max(page_size, 1), self.policy.max_page_size)
        return radius_m, page, page_size

    def find(self, driver_id: int, *,
             radius: Optional[int] = None,
             statuses: Optional[Sequence[str]] = None,
             min_fee: Optional[float] = None,
             max_distance: Optional[float] = None,
             page: int = 1,
             page_size: Optional[int] = None) -> NearbyOrdersPage:
        radius_m, page, page_size = self._clamp_paging(radius, page, page_size)

        driver = Driver.objects.filter(pk=driver_id).first()
        if driver is None:
            raise NotFound(f"Driver {driver_id} not found")
        if not driver.is_verified:
            raise ValidationFailure("Driver account is not verified")

        location = driver.get_current_coordinates()
        if location is None:
            raise ValidationFailure("Driver location not available. Please enable GPS.")

        active_count = driver.active_orders_count()
        capacity = self.eligibility.capacity_of(driver)
        if active_count >= capacity:
            return NearbyOrdersPage(
                orders=[], page=page, page_size=page_size, total_items=0,
                driver_location=location, search_radius_m=radius_m,
                message=f"You have reached maximum capacity ({active_count}/{capacity} orders)",
            )

        statuses = [OrderStatus(status).value for status in (statuses or DEFAULT_STATUSES)]
        candidates = self._search(location, radius_m, statuses, min_fee)

        total_items = len(candidates)
        start = (page - 1) * page_size
        window = candidates[start:start + page_size]

        orders, skipped = [], []
        for candidate in window:
            order = candidate.item
            if max_distance is not None and candidate.distance_m > float(max_distance):
                continue

            verdict = self.eligibility.check(driver, order)
            if not verdict.can_accept:
                skipped.append(order.pk)
                continue

            orders.append(self._format(order, candidate.distance_m, location))

        if skipped:
            logger.debug("Driver %s: %d nearby orders failed the batch check", driver.pk, len(skipped))

        return NearbyOrdersPage(
            orders=orders, page=page, page_size=page_size, total_items=total_items,
            driver_location=location, search_radius_m=radius_m, skipped_ineligible=skipped,
        )

    def _search(self, location: LatLon, radius_m: int, statuses: List[str],
                min_fee: Optional[float]) -> List[GeofenceCandidate]:
        min_lat, max_lat, min_lng, max_lng = bounding_box(location, radius_m)

        queryset = Order.objects.select_related("restaurant", "client").filter(
            order_type=OrderType.DELIVERY.value,
            driver__isnull=True,
            status__in=statuses,
            delivery_lat__range=(min_lat, max_lat),
            delivery_lng__range=(min_lng, max_lng),
        )
        if min_fee is not None:
            queryset = queryset.filter(delivery_fee__gte=min_fee)

        return geofence_candidates(
            location,
            queryset,
            lambda order: order.get_delivery_coordinates(),
            radius_m=radius_m,
            sort_key=_recency_key,
        )

    def _leg(self, origin: Optional[LatLon], destination: Optional[LatLon]) -> Optional[dict]:
        if origin is None or destination is None:
            return None
        try:
            return self.routing.route(origin, destination, self.policy.motor_speed_kmh).as_dict()
        except RoutingError as exc:
            logger.warning("Leg %s -> %s unavailable: %s", origin, destination, exc)
            return None

    def _format(self, order: Order, distance_m: float, driver_location: LatLon) -> Dict[str, Any]:
        restaurant = order.restaurant
        restaurant_location = restaurant.get_coordinates()
        delivery_location = order.get_delivery_coordinates()
        client = order.client

        return {
            "id": order.pk,
            "order_number": order.order_number,
            "status": order.status,
            "total_amount": float(order.total_amount),
            "delivery_fee": float(order.delivery_fee),
            "delivery_address": order.delivery_address,
            "delivery_location": {"lat": order.delivery_lat, "lng": order.delivery_lng},
            "distance_meters": round(distance_m),
            "distance_km": f"{distance_m / 1000:.2f}",
            "restaurant": {
                "id": restaurant.pk,
                "name": restaurant.name,
                "address": restaurant.address,
                "location": {"lat": restaurant.lat, "lng": restaurant.lng},
            },
            "client": {
                "name": client.get_full_name(),
                "phone": str(client.phone_number) if client.phone_number else None,
            } if client else None,
            "route_to_restaurant": self._leg(driver_location, restaurant_location),
            "route_to_client": self._leg(restaurant_location, delivery_location),
            "estimated_delivery_time": order.estimated_delivery_time,
            "created_at": order.created_at,
        }
