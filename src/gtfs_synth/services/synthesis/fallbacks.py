"""Deterministic substitutes used when the advisor has nothing to offer."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import GeocodeCandidate, PathResult, RouteRequest, TransitStop
from ...schemas.advice import ScheduleAnalysis
from ..geospatial import round_half_up

SERVICE_DAY_MINUTES = 16 * 60
PEAK_WINDOW_MINUTES = 4 * 60
PEAK_HEADWAY_MINUTES = 5
OFF_PEAK_WINDOW_MINUTES = 12 * 60
MIN_DAILY_TRIPS = 10


def fallback_schedule(path: PathResult, request: RouteRequest, travel_minutes: int) -> ScheduleAnalysis:
    frequency = request.frequency_minutes
    distance_km = path.distance_meters / 1000
    return ScheduleAnalysis.model_validate(
        {
            "optimalTrips": {
                "totalTrips": max(MIN_DAILY_TRIPS, round_half_up(SERVICE_DAY_MINUTES / frequency)),
                "peakHourTrips": round_half_up(PEAK_WINDOW_MINUTES / PEAK_HEADWAY_MINUTES),
                "offPeakTrips": round_half_up(OFF_PEAK_WINDOW_MINUTES / frequency),
                "justification": "Estimated from the real route distance and travel time.",
            },
            "schedule": {
                "peakHours": {"start": "07:00", "end": "09:00", "frequency": PEAK_HEADWAY_MINUTES},
                "offPeakHours": {"start": "09:00", "end": "22:00", "frequency": frequency},
            },
            "recommendations": [
                f"Route of {distance_km:.1f} km with a travel time of {travel_minutes} minutes.",
                "Adjust the frequency to the observed demand.",
            ],
        }
    )


def fallback_stops(waypoints: Sequence[GeocodeCandidate]) -> list[TransitStop]:
    """One stop per waypoint, in waypoint order."""
    return [
        TransitStop(
            stop_id=f"stop_{position}",
            stop_name=waypoint.display_name or f"Stop {position}",
            stop_lat=waypoint.latitude,
            stop_lon=waypoint.longitude,
            stop_sequence=position,
            justification="Stop placed on a geocoded waypoint.",
        )
        for position, waypoint in enumerate(waypoints, start=1)
    ]
