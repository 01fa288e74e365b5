"""
Purpose: Offer an order to available drivers around its restaurant.
"""

import logging
from typing import Any, Dict, Iterable, List, Tuple

from drivers.models import DriverStatus
from drivers.selection import drivers_within_radius
from routing.geo import bounding_box
from users.models import Driver

from .notifications import NotificationGateway

logger = logging.getLogger(__name__)


def offer_payload(order, **extra) -> Dict[str, Any]:
    restaurant = order.restaurant
    payload = {
        "orderId": order.pk,
        "orderNumber": order.order_number,
        "restaurant": restaurant.name,
        "restaurantAddress": restaurant.address,
        "deliveryAddress": order.delivery_address,
        "fee": float(order.delivery_fee or 0),
        "estimatedTime": order.estimated_delivery_time,
        "totalAmount": float(order.total_amount or 0),
    }
    payload.update(extra)
    return payload


def notify_nearby_drivers(gateway: NotificationGateway, order, radius_km: float, *,
                          exclude: Iterable[int] = (), **extra) -> List[Tuple[int, float]]:
    """
    Send a `new_delivery` event to every available driver within radius_km of the
    order's restaurant, except the ids in `exclude`. Returns [(driver_id, distance_km)]
    closest first.
    """
    center = order.restaurant.get_coordinates()
    min_lat, max_lat, min_lng, max_lng = bounding_box(center, radius_km * 1000.0)

    pool = Driver.objects.filter(
        status=DriverStatus.AVAILABLE.value,
        is_active=True,
        current_lat__range=(min_lat, max_lat),
        current_lng__range=(min_lng, max_lng),
    ).exclude(pk__in=list(exclude))

    notified = []
    for candidate in drivers_within_radius(center, pool, radius_km):
        driver = candidate.item
        gateway.notify_driver(
            driver.pk,
            offer_payload(order, distance=round(candidate.distance_km, 1), **extra),
            event_type="new_delivery",
        )
        notified.append((driver.pk, candidate.distance_km))

    if not notified:
        logger.warning("No drivers notified for order %s within %s km", order.pk, radius_km)
    else:
        logger.info("Notified %d available drivers within %s km for order %s", len(notified), radius_km, order.pk)
    return notified
