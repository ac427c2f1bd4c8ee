"""Route synthesis request/response schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.domain import ExistingRoute, ExistingStop, RouteRequest, ServiceHours

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"
_HEX_COLOR = r"^[0-9A-Fa-f]{6}$"


class ServiceHoursModel(BaseModel):
    start: str = Field("06:00", pattern=_HHMM)
    end: str = Field("22:00", pattern=_HHMM)


class RealisticRouteRequest(BaseModel):
    origin: str = Field(..., min_length=1, description="Free-text origin address.")
    destination: str = Field(..., min_length=1, description="Free-text destination address.")
    intermediate_stops: List[str] = Field(default_factory=list, description="Ordered intermediate stop addresses.")
    frequency: int = Field(30, ge=1, le=1440, description="Target headway in minutes.")
    service_hours: ServiceHoursModel = Field(default_factory=ServiceHoursModel)
    transport_type: str = "bus"
    route_id: Optional[str] = None
    route_short_name: Optional[str] = None
    route_long_name: Optional[str] = None
    route_desc: Optional[str] = None
    route_color: str = Field("FF0000", pattern=_HEX_COLOR)
    route_text_color: str = Field("FFFFFF", pattern=_HEX_COLOR)
    capacity: int = Field(50, ge=1)
    zone_type: str = "mixed"
    population_density: str = "medium"
    points_of_interest: List[str] = Field(default_factory=list)
    shape_id: Optional[str] = None
    optimize_waypoint_order: bool = Field(
        default=False,
        description="Sort intermediate stops by distance from the origin instead of keeping the given order.",
    )

    def to_domain(self) -> RouteRequest:
        return RouteRequest(
            origin=self.origin,
            destination=self.destination,
            intermediate_stops=list(self.intermediate_stops),
            frequency_minutes=self.frequency,
            service_hours=ServiceHours(start=self.service_hours.start, end=self.service_hours.end),
            transport_mode=self.transport_type,
            route_id=self.route_id,
            route_short_name=self.route_short_name,
            route_long_name=self.route_long_name,
            route_desc=self.route_desc,
            route_color=self.route_color.upper(),
            route_text_color=self.route_text_color.upper(),
            capacity=self.capacity,
            zone_type=self.zone_type,
            population_density=self.population_density,
            points_of_interest=list(self.points_of_interest),
            shape_id=self.shape_id,
            optimize_waypoint_order=self.optimize_waypoint_order,
        )


class ExistingStopModel(BaseModel):
    stop_id: str
    stop_name: str = ""
    stop_lat: float = Field(..., ge=-90, le=90)
    stop_lon: float = Field(..., ge=-180, le=180)


class ExistingRouteModel(BaseModel):
    route_id: Optional[str] = None
    route_type: int = 3
    transport_type: Optional[str] = None
    route_short_name: Optional[str] = None
    route_long_name: Optional[str] = None
    route_desc: Optional[str] = None
    route_color: str = Field("FF0000", pattern=_HEX_COLOR)
    route_text_color: str = Field("FFFFFF", pattern=_HEX_COLOR)
    shape_id: Optional[str] = None
    stops: List[ExistingStopModel] = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_domain(self, route_id: str | None = None) -> ExistingRoute:
        return ExistingRoute(
            route_id=route_id or self.route_id or "route",
            route_type=self.route_type,
            transport_mode=self.transport_type,
            route_short_name=self.route_short_name,
            route_long_name=self.route_long_name,
            route_desc=self.route_desc,
            route_color=self.route_color.upper(),
            route_text_color=self.route_text_color.upper(),
            shape_id=self.shape_id,
            stops=[
                ExistingStop(
                    stop_id=stop.stop_id,
                    stop_name=stop.stop_name or stop.stop_id,
                    stop_lat=stop.stop_lat,
                    stop_lon=stop.stop_lon,
                )
                for stop in self.stops
            ],
            metadata=dict(self.metadata),
        )


class CoordinateModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class PathRequest(BaseModel):
    coordinates: List[CoordinateModel] = Field(..., min_length=2)
    profile: Optional[Literal["driving", "foot", "bike"]] = None


class AdvancedSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(20, ge=1, le=50)
    country_codes: Optional[List[str]] = None
    viewbox: Optional[str] = Field(default=None, description="min_lon,min_lat,max_lon,max_lat")
    bounded: bool = False


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    message: str = ""
