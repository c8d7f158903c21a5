from __future__ import annotations

import pytest

from balloontrails.utils.geo import (
    bearing_deg,
    distance_km,
    smallest_angle_diff,
    uv_to_speed_heading,
    wind_to_uv,
)

POINTS = [(0.0, 0.0), (51.5, -0.12), (-33.9, 151.2), (89.0, 179.0), (10.0, -170.0)]


def test_distance_is_symmetric_and_zero_on_self() -> None:
    for a in POINTS:
        assert distance_km(a, a) == 0.0
        for b in POINTS:
            assert distance_km(a, b) == pytest.approx(distance_km(b, a))


def test_one_degree_of_longitude_on_equator() -> None:
    assert distance_km((0.0, 0.0), (0.0, 1.0)) == pytest.approx(111.195, abs=0.01)


def test_bearing_range_and_reverse_is_roughly_opposite() -> None:
    for a in POINTS:
        for b in POINTS:
            if a == b:
                continue
            forward = bearing_deg(a, b)
            assert 0.0 <= forward < 360.0
    # Along the equator the reverse bearing is exactly opposite.
    diff = (bearing_deg((0.0, 0.0), (0.0, 5.0)) - bearing_deg((0.0, 5.0), (0.0, 0.0))) % 360
    assert diff == pytest.approx(180.0)
    # Short hops elsewhere are close to opposite.
    diff = (bearing_deg((45.0, 10.0), (45.1, 10.1)) - bearing_deg((45.1, 10.1), (45.0, 10.0))) % 360
    assert diff == pytest.approx(180.0, abs=0.2)


def test_cardinal_bearings() -> None:
    assert bearing_deg((0.0, 0.0), (1.0, 0.0)) == pytest.approx(0.0)
    assert bearing_deg((0.0, 0.0), (0.0, 1.0)) == pytest.approx(90.0)
    assert bearing_deg((0.0, 0.0), (-1.0, 0.0)) == pytest.approx(180.0)
    assert bearing_deg((0.0, 0.0), (0.0, -1.0)) == pytest.approx(270.0)


def test_smallest_angle_diff_wraps() -> None:
    assert smallest_angle_diff(350, 10) == pytest.approx(-20)
    assert smallest_angle_diff(10, 350) == pytest.approx(20)
    assert smallest_angle_diff(180, 0) == pytest.approx(180)
    assert smallest_angle_diff(0, 180) == pytest.approx(180)
    assert smallest_angle_diff(90, 90) == 0


def test_wind_from_west_moves_east() -> None:
    u, v = wind_to_uv(10.0, 270.0)
    speed, heading = uv_to_speed_heading(u, v)
    assert u == pytest.approx(10.0)
    assert v == pytest.approx(0.0, abs=1e-9)
    assert speed == pytest.approx(10.0)
    assert heading == pytest.approx(90.0)
