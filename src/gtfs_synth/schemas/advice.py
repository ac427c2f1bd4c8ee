"""Schemas for structured advice returned by the text generation service."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _AdviceModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OptimalTrips(_AdviceModel):
    total_trips: int = Field(..., alias="totalTrips", ge=0)
    peak_hour_trips: int = Field(..., alias="peakHourTrips", ge=0)
    off_peak_trips: int = Field(..., alias="offPeakTrips", ge=0)
    justification: str = ""


class ServiceWindow(_AdviceModel):
    start: str
    end: str
    frequency: float = Field(..., gt=0)


class ScheduleWindows(_AdviceModel):
    peak_hours: ServiceWindow = Field(..., alias="peakHours")
    off_peak_hours: ServiceWindow = Field(..., alias="offPeakHours")


class ScheduleAnalysis(_AdviceModel):
    """Trip counts and headways recommended for a route."""

    optimal_trips: OptimalTrips = Field(..., alias="optimalTrips")
    schedule: ScheduleWindows
    recommendations: List[str] = Field(default_factory=list)


class StopSuggestion(_AdviceModel):
    stop_id: str
    stop_name: str
    stop_lat: float = Field(..., ge=-90, le=90)
    stop_lon: float = Field(..., ge=-180, le=180)
    stop_sequence: int = Field(..., ge=1)
    justification: str = ""


class RouteSegment(_AdviceModel):
    from_stop: str
    to_stop: str
    distance_km: Optional[float] = None
    estimated_time_min: Optional[float] = None
    demand_level: Optional[Literal["high", "medium", "low"]] = None


class StopPlacement(_AdviceModel):
    """Stops and segments recommended for a route."""

    optimized_stops: List[StopSuggestion] = Field(..., alias="optimizedStops", min_length=2)
    route_segments: List[RouteSegment] = Field(default_factory=list, alias="routeSegments")
    recommendations: List[str] = Field(default_factory=list)
