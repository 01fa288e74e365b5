"""
Orders domain package.

Public API:
- Vocabulary: OrderStatus, OrderType, can_transition
- Batching math: BatchingPolicy, build_batch_waypoints, detour_ratio
"""
from .models import (
    ALLOWED_SOURCES,
    DRIVER_BOUND_STATUSES,
    TERMINAL_STATUSES,
    OrderStatus,
    OrderType,
    can_transition,
    timestamp_field_for,
)
from .batching import BatchingPolicy, default_policy, build_batch_waypoints, detour_ratio

__all__ = ["OrderStatus",
           "OrderType",
             "ALLOWED_SOURCES",
               "DRIVER_BOUND_STATUSES",
               "TERMINAL_STATUSES",
               "can_transition",
               "timestamp_field_for",
               "BatchingPolicy",
               "default_policy",
               "build_batch_waypoints",
               "detour_ratio",
               ]
