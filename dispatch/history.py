from datetime import datetime
from typing import Optional

from logistics.models import OrderStatusHistory
from orders.models import OrderStatus

from .state_machines import StatusChange


def direct_change(old_status: Optional[OrderStatus], new_status: OrderStatus,
                  changed_by: Optional[str], now: datetime, note: Optional[str] = None) -> StatusChange:
    """History entry for a transition applied straight in SQL rather than through transition_order()."""
    return StatusChange(
        old_status=OrderStatus(old_status).value if old_status else None,
        new_status=OrderStatus(new_status).value,
        changed_by=changed_by,
        note=note,
        timestamp=now,
    )


def record_status_change(order_id: int, change: StatusChange) -> OrderStatusHistory:
    """Append one row to the order's audit trail."""
    return OrderStatusHistory.objects.create(
        order_id=order_id,
        old_status=change.old_status,
        new_status=change.new_status,
        changed_by=change.changed_by,
        note=change.note,
        created_at=change.timestamp,
    )
