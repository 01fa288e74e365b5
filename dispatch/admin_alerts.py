"""
Purpose: Back-office escalations.
Each alert is stored as an AdminNotification and pushed to the admin channel.
"""

import logging
from typing import Optional

from logistics.models import AdminNotification, Order
from orders.models import OrderStatus
from users.models import Driver

from .notifications import NotificationGateway

logger = logging.getLogger(__name__)


def _order_details(order) -> dict:
    client = order.client
    return {
        "order_number": order.order_number,
        "order_type": order.order_type,
        "status": order.status,
        "total_amount": float(order.total_amount or 0),
        "delivery_address": order.delivery_address,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "client": {
            "name": client.get_full_name(),
            "phone": str(client.phone_number) if client.phone_number else None,
        } if client else None,
    }


def _restaurant_info(restaurant) -> dict:
    return {
        "id": restaurant.pk,
        "name": restaurant.name,
        "address": restaurant.address,
        "phone": restaurant.phone or None,
    }


def _emit(gateway: NotificationGateway, notification: AdminNotification, event_type: str, **extra) -> None:
    gateway.notify_admins(event_type, {
        "id": notification.pk,
        "type": notification.type,
        "message": notification.message,
        "order_id": notification.order_id,
        "created_at": notification.created_at.isoformat(),
        **extra,
    })


def create_pending_order_notification(gateway: NotificationGateway, order: Order,
                                      timeout_minutes: int) -> Optional[AdminNotification]:
    """
    The restaurant has not answered an order for `timeout_minutes`.
    Returns None when the order has moved on in the meantime.
    """
    if order.status != OrderStatus.PENDING.value:
        logger.info("Order %s no longer pending, skipping admin notification", order.pk)
        return None

    restaurant = order.restaurant
    details = _order_details(order)
    message = (
        f"Order #{order.order_number or order.pk} has had no answer for {timeout_minutes} minutes.\n"
        f"Restaurant: {restaurant.name}\n"
        f"Amount: {details['total_amount']}\n"
        f"Restaurant contact: {restaurant.phone or 'not provided'}"
    )

    notification = AdminNotification.objects.create(
        type=AdminNotification.Type.PENDING_ORDER_TIMEOUT,
        order=order,
        restaurant=restaurant,
        message=message,
        details={"order": details, "restaurant": _restaurant_info(restaurant)},
    )
    logger.info("Admin notification %s created for pending order %s", notification.pk, order.pk)

    _emit(gateway, notification, "new_notification", restaurant=_restaurant_info(restaurant))
    return notification


def create_driver_assignment_notification(gateway: NotificationGateway, order: Order,
                                          waited_seconds: int) -> Optional[AdminNotification]:
    """
    The kitchen is preparing a delivery order but no driver has been bound.
    """
    if order.status != OrderStatus.PREPARING.value or order.driver_id is not None:
        logger.info("Order %s has a driver or left preparing, skipping admin notification", order.pk)
        return None

    restaurant = order.restaurant
    message = (
        f"Order #{order.order_number or order.pk} is being prepared but no driver took it "
        f"after {waited_seconds // 60} minutes.\n"
        f"Restaurant: {restaurant.name}"
    )

    notification = AdminNotification.objects.create(
        type=AdminNotification.Type.DRIVER_ASSIGNMENT_TIMEOUT,
        order=order,
        restaurant=restaurant,
        message=message,
        details={"order": _order_details(order), "restaurant": _restaurant_info(restaurant)},
    )
    logger.info("Admin notification %s created for unassigned order %s", notification.pk, order.pk)

    _emit(gateway, notification, "new_notification", restaurant=_restaurant_info(restaurant))
    return notification


def create_driver_cancellation_notification(gateway: NotificationGateway, driver: Driver,
                                            cancellation_count: int,
                                            order: Optional[Order] = None) -> AdminNotification:
    driver_info = {
        "id": driver.pk,
        "driver_code": driver.driver_code,
        "name": driver.get_full_name(),
        "phone": str(driver.phone) if driver.phone else None,
        "email": driver.email,
        "cancellation_count": cancellation_count,
        "total_deliveries": driver.total_deliveries,
        "status": driver.status,
    }
    message = (
        f"ALERT: driver {driver.get_full_name()} ({driver.driver_code}) has cancelled "
        f"{cancellation_count} orders.\n"
        f"Contact: {driver_info['phone'] or 'not provided'}\n"
        f"Action required: review the driver's behaviour."
    )

    notification = AdminNotification.objects.create(
        type=AdminNotification.Type.DRIVER_EXCESSIVE_CANCELLATIONS,
        order=order,
        restaurant=order.restaurant if order else None,
        driver=driver,
        message=message,
        details={"driver_info": driver_info, "cancellation_count": cancellation_count},
    )
    logger.warning("Driver %s reached %d cancellations, admin notified", driver.pk, cancellation_count)

    _emit(gateway, notification, "driver_alert", driver=driver_info, cancellation_count=cancellation_count)
    return notification
