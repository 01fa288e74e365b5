#Purpose: ETA estimation policy.
#Converts a routed distance into the optimistic / pessimistic travel window
#shown to clients and drivers ("arrives in X-Y min").

import math
from typing import Tuple

OPTIMISTIC_FACTOR = 0.9
DELAY_FACTOR = 1.2


def travel_window_minutes(distance_km: float, speed_kmh: float) -> Tuple[int, int]:
    """
    Returns (time_min, time_max) in whole minutes for covering distance_km at speed_kmh.
    time_min is rounded down, time_max rounded up to absorb delays.
    """
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be > 0")

    minutes = (distance_km / speed_kmh) * 60
    return math.floor(minutes * OPTIMISTIC_FACTOR), math.ceil(minutes * DELAY_FACTOR)
