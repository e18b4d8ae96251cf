from __future__ import annotations

from types import SimpleNamespace

import pytest

from fortifymis.apps.logistics import distance

ONE_DEGREE_KM = 111.19492664455873


def test_one_degree_along_the_equator():
    assert distance.haversine_km((0.0, 0.0), (0.0, 1.0)) == pytest.approx(ONE_DEGREE_KM)


def test_haversine_is_symmetric_and_zero_for_same_point():
    nairobi = (-1.2921, 36.8219)
    mombasa = (-4.0435, 39.6682)

    assert distance.haversine_km(nairobi, mombasa) == pytest.approx(distance.haversine_km(mombasa, nairobi))
    assert distance.haversine_km(nairobi, nairobi) == 0.0
    assert 430 < distance.haversine_km(nairobi, mombasa) < 450


def test_trail_distance_sums_legs():
    trail = [(0.0, 0.0), (0.0, 1.0), (0.0, 2.0)]

    assert distance.trail_distance_km(trail) == pytest.approx(2 * ONE_DEGREE_KM)
    assert distance.trail_distance_km(trail[:1]) == 0.0
    assert distance.trail_distance_km([]) == 0.0


def test_average_speed_guards_zero_duration():
    assert distance.average_speed_kmh(100, 2) == 50
    assert distance.average_speed_kmh(100, 0) == 0.0


def test_as_coordinates_reads_row_attributes():
    rows = [SimpleNamespace(latitude=1.5, longitude=2.5), SimpleNamespace(latitude=-3.0, longitude=4.0)]

    assert distance.as_coordinates(rows) == [(1.5, 2.5), (-3.0, 4.0)]
