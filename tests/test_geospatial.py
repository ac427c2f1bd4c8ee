import pytest

from gtfs_synth.errors import InvalidInput
from gtfs_synth.models.domain import Coordinate
from gtfs_synth.services.geospatial import great_circle_distance, haversine_km, path_overlay, round_half_up

MADRID = Coordinate(40.4168, -3.7038)
BARCELONA = Coordinate(41.3874, 2.1686)
VALENCIA = Coordinate(39.4699, -0.3763)


@pytest.mark.parametrize("point", [MADRID, Coordinate(0.0, 0.0), Coordinate(-89.9, 179.9)])
def test_distance_to_self_is_zero(point: Coordinate):
    assert great_circle_distance(point, point) == 0.0


def test_distance_is_symmetric():
    assert great_circle_distance(MADRID, VALENCIA) == pytest.approx(great_circle_distance(VALENCIA, MADRID))
    assert great_circle_distance(BARCELONA, VALENCIA, "meters") == pytest.approx(
        great_circle_distance(VALENCIA, BARCELONA, "meters")
    )


def test_madrid_barcelona_distance():
    assert great_circle_distance(MADRID, BARCELONA) == pytest.approx(505, abs=10)
    assert great_circle_distance(MADRID, BARCELONA, "meters") == pytest.approx(
        haversine_km(MADRID.latitude, MADRID.longitude, BARCELONA.latitude, BARCELONA.longitude) * 1000
    )


def test_unknown_unit_is_rejected():
    with pytest.raises(InvalidInput):
        great_circle_distance(MADRID, BARCELONA, "furlongs")


def test_coordinate_rejects_out_of_range_values():
    with pytest.raises(InvalidInput):
        Coordinate(91.0, 0.0)
    with pytest.raises(InvalidInput):
        Coordinate(0.0, -180.5)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.4) == 0
    assert round_half_up(110.5) == 111


def test_path_overlay_reports_line_and_bounds():
    overlay = path_overlay([MADRID, VALENCIA, BARCELONA])

    assert overlay["geometry"]["type"] == "LineString"
    assert overlay["point_count"] == 3
    bounds = overlay["bounds"]
    assert bounds["min_lat"] == pytest.approx(VALENCIA.latitude)
    assert bounds["max_lat"] == pytest.approx(BARCELONA.latitude)
    assert bounds["min_lon"] == pytest.approx(MADRID.longitude)
    assert path_overlay([]) == {}
