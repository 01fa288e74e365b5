"""
Purpose: Central configuration for multi-delivery batching (single source of truth).
What it does:

Stores the static thresholds the eligibility checker applies:

MAX_DETOUR_RATIO = 1.5

ROUTING_TIMEOUT_SEC = 5

The restaurant distance threshold and per-driver capacity are live SystemConfig
values (see dispatch/config.py), not policy constants.

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BatchingPolicy:
    """
    Central configuration for adding an order to a driver's batch.

    Notes:
    - 'detour cap' implements the "same route" rule:
        detour_ratio = optimized_trip_distance / sum(direct distance between consecutive waypoints)
      Lower cap = stricter batching (fewer multi-deliveries).
    """

    # --- Detour cap (direction/efficiency constraint) ---
    max_detour_ratio: float = 1.5

    # --- Routing provider budget for the trip call ---
    routing_timeout_sec: float = 5.0

    def validate(self) -> None:
        """
        Basic sanity checks. Call once at startup.
        """
        if self.max_detour_ratio < 1.0:
            raise ValueError("max_detour_ratio must be >= 1.0")

        if not 3.0 <= self.routing_timeout_sec <= 5.0:
            raise ValueError("routing_timeout_sec must be between 3 and 5 seconds")


def default_policy() -> BatchingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = BatchingPolicy()
    p.validate()
    return p
