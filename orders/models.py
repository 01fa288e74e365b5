"""
Purpose: Domain vocabulary for the Orders capability.
What it does:
- Defines enums/constants:
- OrderStatus = pending | accepted | preparing | assigned | delivering | arrived | delivered
                | declined | cancelled | refunded
- OrderType = delivery | pickup
- The transition table the order state machine guards with.

Rule: No ORM, no routing calls. Vocabulary only.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional


class OrderStatus(str, Enum):
    PENDING = "pending"          # client validated, waiting for the restaurant
    ACCEPTED = "accepted"        # restaurant accepted
    PREPARING = "preparing"      # kitchen working on it
    ASSIGNED = "assigned"        # driver bound (delivery only)
    DELIVERING = "delivering"    # driver en route to the client
    ARRIVED = "arrived"          # driver at the door
    DELIVERED = "delivered"
    DECLINED = "declined"        # restaurant declined
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def choices(cls):
        return [(status.value, status.value.capitalize()) for status in cls]


class OrderType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"

    @classmethod
    def choices(cls):
        return [(order_type.value, order_type.value.capitalize()) for order_type in cls]


# target status <- allowed source statuses
ALLOWED_SOURCES: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PENDING}),
    OrderStatus.PREPARING: frozenset({
        OrderStatus.ACCEPTED,
        # driver cancellation hands the order back to the kitchen queue
        OrderStatus.ASSIGNED,
        OrderStatus.DELIVERING,
    }),
    OrderStatus.ASSIGNED: frozenset({OrderStatus.PREPARING}),
    OrderStatus.DELIVERING: frozenset({OrderStatus.ASSIGNED}),
    OrderStatus.ARRIVED: frozenset({OrderStatus.ASSIGNED, OrderStatus.DELIVERING}),
    OrderStatus.DELIVERED: frozenset({
        OrderStatus.PREPARING,   # pickup orders
        OrderStatus.DELIVERING,
        OrderStatus.ARRIVED,
    }),
    OrderStatus.DECLINED: frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED}),
    OrderStatus.CANCELLED: frozenset({
        OrderStatus.PENDING,
        OrderStatus.ACCEPTED,
        OrderStatus.PREPARING,
        OrderStatus.ASSIGNED,
        OrderStatus.DELIVERING,
        OrderStatus.ARRIVED,
    }),
    OrderStatus.REFUNDED: frozenset({
        OrderStatus.PENDING,
        OrderStatus.ACCEPTED,
        OrderStatus.PREPARING,
        OrderStatus.ASSIGNED,
        OrderStatus.DELIVERING,
        OrderStatus.ARRIVED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
}

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.DECLINED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
})

# A delivery order carries a driver binding only while in one of these.
DRIVER_BOUND_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.ASSIGNED,
    OrderStatus.DELIVERING,
    OrderStatus.ARRIVED,
})

# Timestamp field stamped the first time an order reaches a status.
STATUS_TIMESTAMP_FIELDS: Dict[OrderStatus, str] = {
    OrderStatus.ACCEPTED: "accepted_at",
    OrderStatus.PREPARING: "preparing_started_at",
    OrderStatus.ASSIGNED: "assigned_at",
    OrderStatus.DELIVERING: "delivering_started_at",
    OrderStatus.ARRIVED: "arrived_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def can_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    current = OrderStatus(current)
    target = OrderStatus(target)
    return current in ALLOWED_SOURCES.get(target, frozenset())


def timestamp_field_for(status: OrderStatus | str) -> Optional[str]:
    return STATUS_TIMESTAMP_FIELDS.get(OrderStatus(status))
