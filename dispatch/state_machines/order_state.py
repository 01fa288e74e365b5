from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from orders.models import OrderStatus, can_transition, timestamp_field_for

from ..exceptions import InvalidTransition


@dataclass(frozen=True)
class StatusChange:
    """
    One applied transition, ready to be written to the status history.
    """
    old_status: Optional[str]
    new_status: str
    changed_by: Optional[str]
    note: Optional[str]
    timestamp: datetime


def ensure_transition(order, target: OrderStatus, message: Optional[str] = None) -> None:
    """
    Guard: raise InvalidTransition unless `target` is reachable from the order's current status.
    """
    if not can_transition(order.status, target):
        raise InvalidTransition(order.status, OrderStatus(target).value, message)


def transition_order(order, target: OrderStatus, *, now: datetime,
                     changed_by: Optional[str] = None,
                     note: Optional[str] = None,
                     message: Optional[str] = None) -> StatusChange:
    """
    Guarded in-memory transition.
    Sets the new status and stamps the matching timestamp the first time the status is reached.
    The caller persists the order and the returned StatusChange.
    """
    target = OrderStatus(target)
    ensure_transition(order, target, message)

    old_status = order.status
    order.status = target.value

    stamp_field = timestamp_field_for(target)
    if stamp_field and getattr(order, stamp_field, None) is None:
        setattr(order, stamp_field, now)

    return StatusChange(
        old_status=old_status,
        new_status=target.value,
        changed_by=changed_by,
        note=note,
        timestamp=now,
    )
