"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from shapely.geometry import LineString, Point, mapping

from ..errors import InvalidInput
from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0

_UNIT_FACTORS = {
    "kilometers": 1.0,
    "meters": 1000.0,
    "miles": 0.621371192237334,
}


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def great_circle_distance(a: Coordinate, b: Coordinate, unit: str = "kilometers") -> float:
    """Haversine distance between two coordinates in the requested unit."""

    factor = _UNIT_FACTORS.get(unit)
    if factor is None:
        raise InvalidInput(f"Unsupported distance unit '{unit}'. Expected one of {sorted(_UNIT_FACTORS)}.")
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude) * factor


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded towards +infinity."""

    return int(math.floor(value + 0.5))


def path_overlay(coordinates: Sequence[Coordinate]) -> dict:
    """Build a GeoJSON geometry plus bounds for drawing a path on a map."""

    if not coordinates:
        return {}
    # GeoJSON uses lon,lat order (x,y)
    points = [(coord.longitude, coord.latitude) for coord in coordinates]
    geometry = Point(points[0]) if len(points) == 1 else LineString(points)
    min_lon, min_lat, max_lon, max_lat = geometry.bounds
    return {
        "geometry": mapping(geometry),
        "bounds": {
            "min_lat": min_lat,
            "min_lon": min_lon,
            "max_lat": max_lat,
            "max_lon": max_lon,
        },
        "point_count": len(points),
    }
