"""
Purpose: Driver-initiated cancellation of an order they carry.
What it does:
1. Validates ownership and status (assigned or delivering).
2. In one transaction: bumps the driver's cancellation count, drops the order from their
   batch and hands the order back to the kitchen queue (preparing, no driver).
3. After commit: tells the client, re-broadcasts orders that were already on the road
   with a wider urgent radius, and alerts admins once the driver reaches the abuse threshold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from drivers.policy import DriverPolicy, default_driver_policy
from logistics.models import AdminNotification, Order
from orders.models import OrderStatus
from users.models import Driver

from .admin_alerts import create_driver_cancellation_notification
from .broadcast import notify_nearby_drivers
from .config import SystemConfigReader
from .exceptions import DispatchInternalError, Forbidden, InvalidTransition, NotFound
from .history import record_status_change
from .notifications import NotificationGateway
from .state_machines import remove_active_order, transition_order

logger = logging.getLogger(__name__)

CANCELLABLE_BY_DRIVER = (OrderStatus.ASSIGNED.value, OrderStatus.DELIVERING.value)
CANCELLATION_MARKER = "[DRIVER CANCELLED]"


@dataclass(frozen=True)
class CancellationResult:
    order: Order
    driver: Driver
    previous_status: str
    rebroadcast_to: list
    alert: Optional[AdminNotification] = None

    def as_dict(self) -> dict:
        return {
            "order_id": self.order.pk,
            "status": self.order.status,
            "driver": {
                "id": self.driver.pk,
                "name": self.driver.get_full_name(),
                "cancellation_count": self.driver.cancellation_count,
                "active_orders_count": self.driver.active_orders_count(),
            },
        }


class CancellationHandler:

    def __init__(self, gateway: NotificationGateway, config: SystemConfigReader,
                 driver_policy: Optional[DriverPolicy] = None):
        self.gateway = gateway
        self.config = config
        self.driver_policy = driver_policy or default_driver_policy()

    def driver_cancel(self, order_id: int, driver_id: int, reason: Optional[str] = None,
                      now: Optional[datetime] = None) -> CancellationResult:
        now = now or timezone.now()

        order = Order.objects.select_related("restaurant", "client").filter(pk=order_id).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        if order.driver_id != driver_id:
            raise Forbidden("You are not assigned to this order")
        if order.status not in CANCELLABLE_BY_DRIVER:
            raise InvalidTransition(order.status, OrderStatus.PREPARING.value,
                                    f"Cannot cancel order in {order.status} status")
        if not Driver.objects.filter(pk=driver_id).exists():
            raise NotFound(f"Driver {driver_id} not found")

        previous_status = order.status
        try:
            with transaction.atomic():
                locked = Order.objects.select_for_update().get(pk=order_id)
                driver = Driver.objects.select_for_update().get(pk=driver_id)

                # re-check under the lock
                if locked.driver_id != driver_id:
                    raise Forbidden("You are not assigned to this order")
                if locked.status not in CANCELLABLE_BY_DRIVER:
                    raise InvalidTransition(locked.status, OrderStatus.PREPARING.value,
                                            f"Cannot cancel order in {locked.status} status")
                previous_status = locked.status

                driver.cancellation_count += 1
                remove_active_order(driver, order_id)

                change = transition_order(locked, OrderStatus.PREPARING, now=now,
                                          changed_by=f"driver:{driver_id}", note=reason)
                locked.driver = None
                locked.decline_reason = f"{CANCELLATION_MARKER} {reason or ''}".strip()

                driver.save(update_fields=["cancellation_count", "active_orders", "status", "updated_at"])
                locked.save()
                record_status_change(locked.pk, change)
        except DatabaseError as exc:
            logger.exception("Driver cancellation of order %s by driver %s rolled back", order_id, driver_id)
            raise DispatchInternalError("Cancellation failed, nothing was changed") from exc

        # carry the joined restaurant/client over to the committed row
        locked.restaurant = order.restaurant
        locked.client = order.client
        order = locked

        self.gateway.notify_client(order.client_id, {
            "type": "delivery_cancelled",
            "orderId": order.pk,
            "orderNumber": order.order_number,
            "message": "Your driver has cancelled the delivery. We're finding a new driver...",
            "reason": reason,
        })

        rebroadcast_to = []
        if previous_status == OrderStatus.DELIVERING.value:
            rebroadcast_to = notify_nearby_drivers(
                self.gateway, order, self.driver_policy.urgent_broadcast_radius_km,
                exclude=[driver.pk], urgent=True,
            )

        alert = None
        threshold = self.config.max_driver_cancellations()
        if driver.cancellation_count >= threshold:
            alert = create_driver_cancellation_notification(self.gateway, driver, driver.cancellation_count, order)

        logger.info("Driver %s cancelled order %s (%s), %d cancellations",
                    driver.pk, order.pk, previous_status, driver.cancellation_count)
        return CancellationResult(order=order, driver=driver, previous_status=previous_status,
                                  rebroadcast_to=rebroadcast_to, alert=alert)
