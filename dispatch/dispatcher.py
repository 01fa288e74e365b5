"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Drives an order through accept -> prepare -> assign -> deliver -> complete,
binds and releases drivers, broadcasts new deliveries to nearby drivers and arms the
escalation timers.

Concurrency rules:
- Single-entity transitions are conditional updates (`WHERE status = <expected>`), so a
  racing request loses with InvalidTransition instead of overwriting.
- Anything that touches an order and a driver runs in one transaction with both rows
  locked. A database failure there rolls back and surfaces as DispatchInternalError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from drivers.policy import DriverPolicy, default_driver_policy
from logistics.models import Order
from orders.models import STATUS_TIMESTAMP_FIELDS, OrderStatus
from routing.geo import LatLon
from routing.provider import RouteEstimate, RoutingError, RoutingProvider
from users.models import Driver

from .broadcast import notify_nearby_drivers
from .config import SystemConfigReader
from .eligibility import BatchEligibilityChecker
from .exceptions import BusinessRejection, DispatchInternalError, InvalidTransition, NotFound, ValidationFailure
from .history import direct_change, record_status_change
from .notifications import NotificationGateway
from .scheduler import EscalationScheduler, TaskType
from .state_machines import add_active_order, ensure_transition, remove_active_order, transition_order

logger = logging.getLogger(__name__)

# travel minutes assumed when the restaurant->client leg cannot be routed
DEFAULT_TRAVEL_MINUTES = 20


@dataclass(frozen=True)
class AssignmentResult:
    order: Order
    route_to_restaurant: Optional[RouteEstimate] = None


@dataclass(frozen=True)
class ArrivalResult:
    order: Order
    route: Optional[RouteEstimate] = None


class Dispatcher:
    """
    Coordinates the lifecycle of an Order and the batch of the Driver carrying it.
    Collaborators are injected once; see dispatch/services.py for the wiring.
    """

    def __init__(self, routing: RoutingProvider, gateway: NotificationGateway,
                 config: SystemConfigReader, scheduler: EscalationScheduler,
                 eligibility: BatchEligibilityChecker,
                 driver_policy: Optional[DriverPolicy] = None):
        self.routing = routing
        self.gateway = gateway
        self.config = config
        self.scheduler = scheduler
        self.eligibility = eligibility
        self.driver_policy = driver_policy or default_driver_policy()

        self.scheduler.register(TaskType.AUTO_START_PREPARING, self._auto_start_preparing)

    # ---- Internal helpers ----

    def _load_order(self, order_id: int, *, for_update: bool = False) -> Order:
        if for_update:
            # no joins: FOR UPDATE cannot cover the nullable side of an outer join
            queryset = Order.objects.select_for_update()
        else:
            queryset = Order.objects.select_related("restaurant", "client")
        order = queryset.filter(pk=order_id).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def _route(self, origin: Optional[LatLon], destination: Optional[LatLon]) -> Optional[RouteEstimate]:
        if origin is None or destination is None:
            return None
        try:
            return self.routing.route(origin, destination, self.driver_policy.motor_speed_kmh)
        except RoutingError as exc:
            logger.warning("Route %s -> %s unavailable: %s", origin, destination, exc)
            return None

    def _apply(self, order: Order, target: OrderStatus, *, now: datetime,
               changed_by: Optional[str] = None, note: Optional[str] = None,
               message: Optional[str] = None, **fields) -> Order:
        """
        Single-entity transition written as a conditional update on the status we read.
        """
        old_status = order.status
        change = transition_order(order, target, now=now, changed_by=changed_by, note=note, message=message)

        for name, value in fields.items():
            setattr(order, name, value)

        values = {name: getattr(order, name) for name in fields}
        values["status"] = order.status
        for stamp in STATUS_TIMESTAMP_FIELDS.values():
            values[stamp] = getattr(order, stamp)
        values["updated_at"] = now

        updated = Order.objects.filter(pk=order.pk, status=old_status).update(**values)
        if not updated:
            current = Order.objects.filter(pk=order.pk).values_list("status", flat=True).first()
            raise InvalidTransition(current, OrderStatus(target).value)

        record_status_change(order.pk, change)
        return order

    # ---- Creation hook ----

    def register_new_order(self, order_id: int, changed_by: Optional[str] = None,
                           now: Optional[datetime] = None) -> Order:
        """
        Called by the order-creation workflow once an order exists in `pending`.
        Writes the first history row and arms the pending timeout.
        """
        now = now or timezone.now()
        order = self._load_order(order_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransition(order.status, OrderStatus.PENDING.value,
                                    f"Order {order_id} is {order.status}, only pending orders can be registered")

        if not order.status_history.exists():
            record_status_change(order.pk, direct_change(None, OrderStatus.PENDING, changed_by, now))
        self.scheduler.arm_pending_timeout(order.pk, now=now)
        return order

    # ---- Restaurant side ----

    def accept(self, order_id: int, changed_by: Optional[str] = None,
               preparation_time=None, now: Optional[datetime] = None) -> Order:
        now = now or timezone.now()
        order = self._load_order(order_id)
        ensure_transition(order, OrderStatus.ACCEPTED)

        preparation_minutes = self.config.preparation_minutes(preparation_time)
        travel_minutes = 0
        delivery_distance = order.delivery_distance

        if order.is_delivery:
            route = self._route(order.restaurant.get_coordinates(), order.get_delivery_coordinates())
            if route is None:
                logger.warning("No restaurant->client route for order %s, assuming %d min",
                               order.pk, DEFAULT_TRAVEL_MINUTES)
                travel_minutes = DEFAULT_TRAVEL_MINUTES
            else:
                travel_minutes = route.time_max
                delivery_distance = route.distance_km

        total_minutes = preparation_minutes + travel_minutes
        self._apply(
            order, OrderStatus.ACCEPTED, now=now, changed_by=changed_by,
            preparation_time=preparation_minutes,
            estimated_delivery_time=now + timedelta(minutes=total_minutes),
            delivery_distance=delivery_distance,
        )

        message = f"{order.restaurant.name} accepted your order."
        if order.is_delivery:
            message += (f" Estimated delivery time: {total_minutes} min "
                        f"({preparation_minutes} min preparation + {travel_minutes} min delivery)")
        else:
            message += f" Estimated preparation time: {preparation_minutes} min"

        payload = {
            "type": "order_accepted",
            "orderId": order.pk,
            "orderNumber": order.order_number,
            "restaurant": order.restaurant.name,
            "message": message,
            "preparation_time": preparation_minutes,
        }
        if order.is_delivery:
            payload.update({
                "delivery_time": travel_minutes,
                "total_delivery_time": total_minutes,
                "estimated_delivery_time": order.estimated_delivery_time,
            })
        self.gateway.notify_client(order.client_id, payload)

        if order.is_delivery:
            notify_nearby_drivers(self.gateway, order, self.driver_policy.broadcast_radius_km)

        self.scheduler.arm_auto_start_preparing(order.pk, now=now)
        if order.is_delivery:
            self.scheduler.arm_preparing_without_driver(order.pk, now=now)
        self.scheduler.arm_preparation_grace(order.pk, preparation_minutes, now=now)

        logger.info("Order %s accepted, preparation %d min", order.pk, preparation_minutes)
        return order

    def start_preparing(self, order_id: int, changed_by: Optional[str] = None,
                        now: Optional[datetime] = None) -> bool:
        """
        accepted -> preparing. Anything else is a no-op (returns False), so the
        restaurant button and the 60 s auto-start can race safely.
        """
        now = now or timezone.now()
        order = self._load_order(order_id)
        if order.status != OrderStatus.ACCEPTED.value:
            return False

        updated = Order.objects.filter(pk=order.pk, status=OrderStatus.ACCEPTED.value).update(
            status=OrderStatus.PREPARING.value, preparing_started_at=now, updated_at=now,
        )
        if not updated:
            return False

        record_status_change(order.pk, direct_change(OrderStatus.ACCEPTED, OrderStatus.PREPARING, changed_by, now))
        self.gateway.notify_client(order.client_id, {
            "type": "order_preparing",
            "orderId": order.pk,
            "message": "Your order is being prepared",
        })
        return True

    def _auto_start_preparing(self, task, now: datetime) -> bool:
        return self.start_preparing(task.order_id, changed_by="system", now=now)

    def decline(self, order_id: int, reason: Optional[str] = None, changed_by: Optional[str] = None,
                now: Optional[datetime] = None) -> Order:
        now = now or timezone.now()
        order = self._load_order(order_id)
        self._apply(order, OrderStatus.DECLINED, now=now, changed_by=changed_by, note=reason,
                    decline_reason=reason)

        self.gateway.notify_client(order.client_id, {
            "type": "order_declined",
            "orderId": order.pk,
            "reason": reason,
        })
        return order

    # ---- Driver binding ----

    def assign_driver_or_complete(self, order_id: int, driver_id: Optional[int] = None,
                                  changed_by: Optional[str] = None,
                                  now: Optional[datetime] = None) -> AssignmentResult:
        """
        Pickup orders: preparing -> delivered, no driver involved.
        Delivery orders: preparing -> assigned, after the batch eligibility check.
        """
        now = now or timezone.now()
        order = self._load_order(order_id)

        if not order.is_delivery:
            self._apply(order, OrderStatus.DELIVERED, now=now, changed_by=changed_by, note="picked up", driver=None)
            self.gateway.notify_client(order.client_id, {
                "type": "order_ready",
                "orderId": order.pk,
                "message": "Order ready for pickup!",
            })
            return AssignmentResult(order=order)

        if order.driver_id is not None:
            raise BusinessRejection("Order already assigned")
        if driver_id is None:
            raise ValidationFailure("A driver is required to assign a delivery order")

        driver = Driver.objects.filter(pk=driver_id).first()
        if driver is None:
            raise NotFound(f"Driver {driver_id} not found")
        if not driver.is_verified:
            raise ValidationFailure("Driver account is not verified")

        ensure_transition(order, OrderStatus.ASSIGNED)
        verdict = self.eligibility.check(driver, order)
        if not verdict.can_accept:
            raise BusinessRejection(verdict.reason or "Driver cannot accept this order")

        route = self._route(driver.get_current_coordinates(), order.restaurant.get_coordinates())

        try:
            with transaction.atomic():
                order = self._load_order(order_id, for_update=True)
                driver = Driver.objects.select_for_update().get(pk=driver_id)

                if order.driver_id is not None:
                    raise BusinessRejection("Order already assigned")
                # the batch may have grown since the unlocked check
                verdict = self.eligibility.check(driver, order)
                if not verdict.can_accept:
                    raise BusinessRejection(verdict.reason or "Driver cannot accept this order")

                change = transition_order(order, OrderStatus.ASSIGNED, now=now, changed_by=changed_by,
                                          note=f"driver {driver.driver_code}")
                add_active_order(driver, order.pk)
                order.driver = driver

                order.save()
                driver.save(update_fields=["active_orders", "status", "updated_at"])
                record_status_change(order.pk, change)
        except DatabaseError as exc:
            logger.exception("Assignment of order %s to driver %s rolled back", order_id, driver_id)
            raise DispatchInternalError("Assignment failed, nothing was changed") from exc

        driver_payload = {
            "name": driver.get_full_name(),
            "phone": str(driver.phone) if driver.phone else None,
            "vehicle": driver.vehicle_type,
        }
        if route:
            driver_payload.update({
                "distance_to_restaurant_km": route.distance_km,
                "estimated_arrival_min": route.time_min,
            })
        self.gateway.notify_client(order.client_id, {
            "type": "driver_assigned",
            "orderId": order.pk,
            "driver": driver_payload,
        })

        driver_event = {
            "type": "order_assigned",
            "orderId": order.pk,
            "orderNumber": order.order_number,
            "restaurant": order.restaurant.name,
            "deliveryAddress": order.delivery_address,
            "active_orders_count": driver.active_orders_count(),
        }
        if route:
            driver_event["route_to_restaurant"] = {
                "distance_km": route.distance_km,
                "estimated_time_min": route.time_min,
            }
        self.gateway.notify_driver(driver.pk, driver_event)

        logger.info("Order %s assigned to driver %s (%d active)", order.pk, driver.pk, driver.active_orders_count())
        return AssignmentResult(order=order, route_to_restaurant=route)

    def start_delivering(self, order_id: int, changed_by: Optional[str] = None,
                         now: Optional[datetime] = None) -> Order:
        now = now or timezone.now()
        order = self._load_order(order_id)
        self._apply(order, OrderStatus.DELIVERING, now=now, changed_by=changed_by,
                    message=f"Cannot start delivery from {order.status} status")

        self.gateway.notify_client(order.client_id, {
            "type": "delivery_started",
            "orderId": order.pk,
            "message": "Your order is on the way!",
        })
        return order

    def driver_arrived(self, order_id: int, changed_by: Optional[str] = None,
                       now: Optional[datetime] = None) -> ArrivalResult:
        now = now or timezone.now()
        order = self._load_order(order_id)
        self._apply(order, OrderStatus.ARRIVED, now=now, changed_by=changed_by,
                    message=f"Cannot mark arrived from {order.status} status")

        route = self._route(order.restaurant.get_coordinates(), order.get_delivery_coordinates())
        self.gateway.notify_client(order.client_id, {
            "type": "driver_arrived",
            "orderId": order.pk,
            "message": "Your driver has arrived",
        })
        return ArrivalResult(order=order, route=route)

    def complete_delivery(self, order_id: int, changed_by: Optional[str] = None,
                          now: Optional[datetime] = None) -> Order:
        """
        Marks the order delivered and releases it from the driver's batch.
        A pickup order (never bound to a driver) is simply marked delivered.
        """
        now = now or timezone.now()
        order = self._load_order(order_id)

        if order.is_delivery and order.status == OrderStatus.PREPARING.value:
            raise InvalidTransition(order.status, OrderStatus.DELIVERED.value,
                                    "A delivery order needs a driver before it can be completed")
        ensure_transition(order, OrderStatus.DELIVERED, f"Cannot complete from {order.status} status")

        if order.driver_id is None:
            self._apply(order, OrderStatus.DELIVERED, now=now, changed_by=changed_by)
            driver = None
        else:
            try:
                with transaction.atomic():
                    order = self._load_order(order_id, for_update=True)
                    change = transition_order(order, OrderStatus.DELIVERED, now=now, changed_by=changed_by)
                    driver = Driver.objects.select_for_update().get(pk=order.driver_id)

                    order.driver = None
                    remove_active_order(driver, order.pk)
                    driver.total_deliveries += 1

                    order.save()
                    driver.save(update_fields=["active_orders", "status", "total_deliveries", "updated_at"])
                    record_status_change(order.pk, change)
            except DatabaseError as exc:
                logger.exception("Completion of order %s rolled back", order_id)
                raise DispatchInternalError("Completion failed, nothing was changed") from exc

        if driver is not None:
            remaining = driver.active_orders_count()
            self.gateway.notify_driver(driver.pk, {
                "type": "delivery_complete",
                "orderId": order.pk,
                "active_orders_count": remaining,
                "message": (
                    f"Delivery completed! {remaining} order(s) remaining" if remaining
                    else "All deliveries completed! You are now available"
                ),
            })

        self.gateway.notify_client(order.client_id, {
            "type": "order_delivered",
            "orderId": order.pk,
            "message": "Order delivered!",
        })
        return order

    # ---- Admin / client side branch ----

    def cancel_order(self, order_id: int, changed_by: Optional[str] = None, reason: Optional[str] = None,
                     refunded: bool = False, now: Optional[datetime] = None) -> Order:
        """
        Moves an order to cancelled (or refunded) and releases any bound driver.
        """
        now = now or timezone.now()
        target = OrderStatus.REFUNDED if refunded else OrderStatus.CANCELLED
        order = self._load_order(order_id)
        ensure_transition(order, target)

        released_driver = None
        if order.driver_id is None:
            self._apply(order, target, now=now, changed_by=changed_by, note=reason)
        else:
            try:
                with transaction.atomic():
                    order = self._load_order(order_id, for_update=True)
                    change = transition_order(order, target, now=now, changed_by=changed_by, note=reason)
                    released_driver = Driver.objects.select_for_update().get(pk=order.driver_id)

                    order.driver = None
                    remove_active_order(released_driver, order.pk)

                    order.save()
                    released_driver.save(update_fields=["active_orders", "status", "updated_at"])
                    record_status_change(order.pk, change)
            except DatabaseError as exc:
                logger.exception("Cancellation of order %s rolled back", order_id)
                raise DispatchInternalError("Cancellation failed, nothing was changed") from exc

        if released_driver is not None:
            self.gateway.notify_driver(released_driver.pk, {
                "type": "order_cancelled",
                "orderId": order.pk,
                "reason": reason,
            })
        self.gateway.notify_client(order.client_id, {
            "type": f"order_{target.value}",
            "orderId": order.pk,
            "reason": reason,
        })
        return order

