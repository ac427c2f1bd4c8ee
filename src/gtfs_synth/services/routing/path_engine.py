"""Road paths, GTFS shapes and travel time estimates."""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Sequence, TypeVar

from ...config import Settings, settings as default_settings
from ...errors import (
    EmptyInput,
    InsufficientWaypoints,
    InvalidInput,
    UpstreamError,
    WaypointLimitExceeded,
)
from ...models.domain import Coordinate, PathResult, ShapePoint
from ..geospatial import great_circle_distance, round_half_up
from .osrm_client import OSRMClient, decode_polyline

# Average commercial speeds (km/h) used when the router gives no duration
AVERAGE_SPEEDS_KMH = {
    "bus": 25.0,
    "subway": 35.0,
    "tram": 20.0,
    "ferry": 15.0,
    "walking": 5.0,
}
DEFAULT_SPEED_KMH = 25.0
FALLBACK_TRAVEL_MINUTES = 30

# OSRM has no transit profiles; only walking gets a non-motorized one
MODE_PROFILES = {
    "walking": "foot",
}

T = TypeVar("T")

logger = logging.getLogger(__name__)


class PathEngine:
    """Computes drivable paths across waypoints and derives shapes from them."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        client: OSRMClient | None = None,
        max_waypoints: int | None = None,
    ) -> None:
        config = config or default_settings
        self.client = client or OSRMClient(config)
        self.default_profile = config.osrm_profile
        self.max_waypoints = max_waypoints if max_waypoints is not None else config.max_waypoints

    def profile_for_mode(self, mode: str | None) -> str:
        return MODE_PROFILES.get((mode or "").lower(), self.default_profile)

    def compute_path(
        self,
        waypoints: Sequence[Coordinate],
        profile: str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PathResult:
        """Route through the waypoints in order and decode the resulting geometry."""
        if len(waypoints) < 2:
            raise InsufficientWaypoints(f"At least 2 waypoints are required, got {len(waypoints)}.")
        if len(waypoints) > self.max_waypoints:
            raise WaypointLimitExceeded(
                f"At most {self.max_waypoints} waypoints are allowed, got {len(waypoints)}."
            )

        profile = profile or self.default_profile
        logger.info(f"Routing: {len(waypoints)} waypoints, profile: {profile}")
        data = self.client.route(
            [point.as_lat_lon() for point in waypoints], profile=profile, cancel_event=cancel_event
        )

        route = data["routes"][0]
        geometry = route.get("geometry")
        coordinates: tuple[Coordinate, ...] = ()
        if isinstance(geometry, str) and geometry:
            try:
                coordinates = tuple(
                    Coordinate(lat, lon) for lat, lon in decode_polyline(geometry, self.client.precision)
                )
            except (IndexError, InvalidInput) as e:
                raise UpstreamError(f"OSRM returned an undecodable geometry: {e}") from e

        duration = route.get("duration")
        result = PathResult(
            distance_meters=float(route.get("distance") or 0.0),
            duration_seconds=float(duration) if duration is not None else None,
            coordinates=coordinates,
            legs=tuple(route.get("legs") or ()),
            geometry=geometry if isinstance(geometry, str) else None,
            snapped_waypoints=tuple(data.get("waypoints") or ()),
        )
        logger.info(
            f"Routing succeeded: {result.distance_meters:.0f}m, {result.duration_seconds}s, "
            f"{len(result.coordinates)} geometry points"
        )
        return result

    @staticmethod
    def great_circle_distance(a: Coordinate, b: Coordinate, unit: str = "kilometers") -> float:
        return great_circle_distance(a, b, unit)

    def build_shape(self, coordinates: Sequence[Coordinate], shape_id: str) -> list[ShapePoint]:
        """Turn a path into GTFS shape points with cumulative distance in meters."""
        if not coordinates:
            raise EmptyInput("Coordinates are required to build a shape.")

        shape: list[ShapePoint] = []
        travelled = 0.0
        previous: Coordinate | None = None
        for index, point in enumerate(coordinates):
            if previous is not None:
                travelled += great_circle_distance(previous, point, "meters")
            shape.append(
                ShapePoint(
                    shape_id=shape_id,
                    latitude=point.latitude,
                    longitude=point.longitude,
                    sequence=index + 1,
                    cumulative_distance_meters=round_half_up(travelled),
                )
            )
            previous = point

        logger.info(f"Shape built: {len(shape)} points for {shape_id}")
        return shape

    def estimate_travel_time_minutes(self, path: PathResult, mode: str = "bus") -> int:
        """Travel time in minutes, preferring the router's duration."""
        duration = path.duration_seconds
        if duration is not None and math.isfinite(duration) and duration > 0:
            return max(1, round_half_up(duration / 60))

        distance_km = (path.distance_meters or 0.0) / 1000
        if not math.isfinite(distance_km) or distance_km <= 0:
            return FALLBACK_TRAVEL_MINUTES

        speed = AVERAGE_SPEEDS_KMH.get((mode or "").lower(), DEFAULT_SPEED_KMH)
        return max(1, round_half_up(distance_km / speed * 60))

    def order_waypoints_by_distance(
        self,
        origin: Coordinate,
        waypoints: Sequence[T],
        *,
        position: Callable[[T], Coordinate] | None = None,
    ) -> list[T]:
        """Sort intermediate waypoints by straight-line distance from the origin."""
        if len(waypoints) <= 1:
            return list(waypoints)
        position = position or (lambda item: item)
        return sorted(waypoints, key=lambda item: great_circle_distance(origin, position(item)))
