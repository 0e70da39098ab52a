import math

import pytest

from topoglobe.coord_utils import GeoCoordinate
from topoglobe.errors import ValidationError
from topoglobe.great_circle import (adaptive_resample, bearing, compass_direction, distance,
                                    interpolate_path)

LONDON = GeoCoordinate(-0.1276, 51.5072)
NEW_YORK = GeoCoordinate(-74.0060, 40.7128)


def test_distance_london_new_york():
    assert distance(LONDON, NEW_YORK) == pytest.approx(5570, abs=10)


def test_distance_symmetric_and_zero():
    assert distance(LONDON, NEW_YORK) == pytest.approx(distance(NEW_YORK, LONDON))
    assert distance(LONDON, LONDON) == 0.0


def test_distance_antipodal():
    d = distance(GeoCoordinate(0.0, 0.0), GeoCoordinate(180.0, 0.0))
    assert d == pytest.approx(math.pi * 6371.0)


def test_bearing_cardinal_directions():
    origin = GeoCoordinate(0.0, 0.0)
    assert bearing(origin, GeoCoordinate(0.0, 10.0)) == pytest.approx(0.0)
    assert bearing(origin, GeoCoordinate(10.0, 0.0)) == pytest.approx(90.0)
    assert bearing(origin, GeoCoordinate(0.0, -10.0)) == pytest.approx(180.0)
    assert bearing(origin, GeoCoordinate(-10.0, 0.0)) == pytest.approx(270.0)


def test_bearing_range():
    for b in (bearing(LONDON, NEW_YORK), bearing(NEW_YORK, LONDON)):
        assert 0.0 <= b < 360.0


def test_compass_direction():
    assert compass_direction(0.0) == "North"
    assert compass_direction(359.0) == "North"
    assert compass_direction(90.0) == "East"
    assert compass_direction(200.0) == "South-Southwest"


def test_interpolate_endpoints_exact():
    path = interpolate_path(LONDON, NEW_YORK, 10)
    assert len(path) == 11
    assert path[0] is LONDON
    assert path[-1] is NEW_YORK


def test_interpolate_equal_steps():
    path = interpolate_path(LONDON, NEW_YORK, 8)
    total = distance(LONDON, NEW_YORK)
    for p, q in zip(path[:-1], path[1:]):
        assert distance(p, q) == pytest.approx(total / 8, rel=1e-6)


def test_interpolate_few_segments():
    assert interpolate_path(LONDON, NEW_YORK, 1) == [LONDON, NEW_YORK]
    assert interpolate_path(LONDON, NEW_YORK, 0) == [LONDON, NEW_YORK]


def test_interpolate_coincident_points():
    path = interpolate_path(LONDON, LONDON, 4)
    assert path == [LONDON] * 5


def test_interpolate_antipodal_is_finite():
    a = GeoCoordinate(0.0, 0.0)
    b = GeoCoordinate(180.0, 0.0)
    path = interpolate_path(a, b, 4)
    assert len(path) == 5
    for p, q in zip(path[:-1], path[1:]):
        assert distance(p, q) == pytest.approx(math.pi * 6371.0 / 4, rel=1e-6)


def test_adaptive_resample_limits_step():
    ring = [LONDON, NEW_YORK, GeoCoordinate(-74.0, 41.0)]
    out = adaptive_resample(ring, 500.0)
    assert out[0] == LONDON
    assert out[-1] == ring[-1]
    assert NEW_YORK in out
    for p, q in zip(out[:-1], out[1:]):
        assert distance(p, q) <= 500.0 + 1e-6
    # short final leg left alone
    assert out[-2] == NEW_YORK


def test_adaptive_resample_rejects_bad_limit():
    with pytest.raises(ValidationError):
        adaptive_resample([LONDON, NEW_YORK], 0)


def test_distance_quarter_meridian():
    d = distance(GeoCoordinate(0.0, 0.0), GeoCoordinate(0.0, 90.0))
    assert d == pytest.approx(10007.5, abs=0.5)
