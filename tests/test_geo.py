from datetime import timedelta

import pytest

from roadwatch.utils.geo import bounding_box, distance_meters, time_delta_ms

from conftest import BASE_LAT, BASE_LON, METER_DEG, T0


def test_distance_zero_for_same_point():
    assert distance_meters(BASE_LAT, BASE_LON, BASE_LAT, BASE_LON) == 0


def test_distance_is_symmetric():
    points = [
        (BASE_LAT, BASE_LON, BASE_LAT + 0.0007, BASE_LON - 0.0004),
        (51.5007, -0.1246, 40.6892, -74.0445),
        (-33.8568, 151.2153, 35.6586, 139.7454),
    ]
    for lat1, lon1, lat2, lon2 in points:
        assert distance_meters(lat1, lon1, lat2, lon2) == pytest.approx(
            distance_meters(lat2, lon2, lat1, lon1)
        )


def test_distance_along_meridian():
    assert distance_meters(BASE_LAT, BASE_LON, BASE_LAT + 49 * METER_DEG, BASE_LON) == pytest.approx(49, abs=0.01)


def test_distance_london_to_paris():
    # ~343.5 km great-circle
    assert distance_meters(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343_500, rel=0.005)


def test_time_delta_is_absolute_milliseconds():
    later = T0 + timedelta(minutes=4, seconds=30)
    assert time_delta_ms(T0, later) == 270_000
    assert time_delta_ms(later, T0) == 270_000
    assert time_delta_ms(T0, T0) == 0


def test_bounding_box_inclusive():
    box = bounding_box(BASE_LAT, BASE_LON, 0.001)
    assert box.contains(BASE_LAT, BASE_LON)
    assert box.contains(BASE_LAT + 0.0009, BASE_LON - 0.0009)
    assert not box.contains(BASE_LAT + 0.0011, BASE_LON)
    assert not box.contains(BASE_LAT, BASE_LON - 0.0011)
