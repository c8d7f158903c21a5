from __future__ import annotations

import math
from datetime import datetime

from balloontrails.utils.time import floor_to_hour

# Upper altitude bound (km, exclusive) for each level below the top one.
_LEVEL_BREAKPOINTS_KM = ((3.0, 850), (6.0, 700), (9.0, 500), (12.0, 300), (15.0, 250))


def nearest_pressure_level(alt_km: float) -> int:
    for upper_km, level in _LEVEL_BREAKPOINTS_KM:
        if alt_km < upper_km:
            return level
    return 200


def round_hour_utc(timestamp: datetime) -> datetime:
    return floor_to_hour(timestamp)


def grid_bucket(value: float, step_deg: float = 0.25) -> float:
    """Snap to the grid, halves rounding up (so -0.125 -> 0.0 and 0.125 -> 0.25)."""

    return math.floor(value / step_deg + 0.5) * step_deg
