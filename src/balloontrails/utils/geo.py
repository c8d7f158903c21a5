"""Great-circle helpers shared by linking, neighbor resolution and forecast comparison.

Points are anything with `lat`/`lon` attributes (e.g. `Sample`) or plain `(lat, lon)` tuples.
"""

from __future__ import annotations

import math
from typing import Any, Union

EARTH_RADIUS_KM = 6371.0

LatLon = Union[tuple[float, float], Any]


def _coords(point: LatLon) -> tuple[float, float]:
    if isinstance(point, tuple):
        return float(point[0]), float(point[1])
    return float(point.lat), float(point.lon)


def distance_km(a: LatLon, b: LatLon) -> float:
    """Haversine distance in kilometres."""

    lat1, lon1 = _coords(a)
    lat2, lon2 = _coords(b)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_deg(a: LatLon, b: LatLon) -> float:
    """Initial bearing from `a` to `b` in degrees clockwise from north, in [0, 360).

    Coincident points give an arbitrary (but finite) value.
    """

    lat1, lon1 = _coords(a)
    lat2, lon2 = _coords(b)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lon = math.radians(lon2 - lon1)
    y = math.sin(d_lon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def smallest_angle_diff(a: float, b: float) -> float:
    """Signed shortest-arc difference `a - b`, in (-180, 180]."""

    diff = (a - b) % 360.0
    if diff > 180.0:
        diff -= 360.0
    return diff


def wind_to_uv(speed: float, direction_from_deg: float) -> tuple[float, float]:
    # Meteorological direction is where the wind blows from, hence the negation.
    rad = math.radians(direction_from_deg)
    return -speed * math.sin(rad), -speed * math.cos(rad)


def uv_to_speed_heading(u: float, v: float) -> tuple[float, float]:
    """Return (speed, heading the air moves toward) for wind components."""

    speed = math.hypot(u, v)
    heading = (math.degrees(math.atan2(u, v)) + 360.0) % 360.0
    return speed, heading
