"""
Purpose: Central configuration for escalation timers.
What it does:

Stores the fixed delays the escalation scheduler arms with:

AUTO_START_PREPARING = 60 s after acceptance
PREPARING_WITHOUT_DRIVER = 120 s after acceptance
PREPARATION_GRACE = 7 min, applied once

The pending-order timeout is a live SystemConfig value (see dispatch/config.py).

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EscalationPolicy:

    # --- Deferred transitions / alerts armed on accept ---
    auto_start_preparing_sec: int = 60
    preparing_without_driver_sec: int = 120

    # --- One-shot extension when the kitchen overruns its quote ---
    preparation_grace_min: int = 7

    # --- Sweeper ---
    sweep_interval_sec: float = 5.0
    sweep_batch_size: int = 100

    def validate(self) -> None:
        if self.auto_start_preparing_sec < 0 or self.preparing_without_driver_sec < 0:
            raise ValueError("timer delays must be >= 0")

        if self.preparation_grace_min <= 0:
            raise ValueError("preparation_grace_min must be > 0")

        if self.sweep_interval_sec <= 0:
            raise ValueError("sweep_interval_sec must be > 0")

        if self.sweep_batch_size < 1:
            raise ValueError("sweep_batch_size must be >= 1")


def default_escalation_policy() -> EscalationPolicy:
    p = EscalationPolicy()
    p.validate()
    return p
