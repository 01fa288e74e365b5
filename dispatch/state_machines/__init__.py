from .order_state import StatusChange, ensure_transition, transition_order
from .driver_state import (
    add_active_order,
    can_accept_more_orders,
    remove_active_order,
)

__all__ = [
    "StatusChange",
    "ensure_transition",
    "transition_order",
    "add_active_order",
    "can_accept_more_orders",
    "remove_active_order",
]
