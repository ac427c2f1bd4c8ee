"""Domain models for geocoded places, paths, shapes and synthesized routes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..errors import InvalidInput


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Immutable WGS84 point."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidInput(f"Latitude {self.latitude} is outside [-90, 90].")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidInput(f"Longitude {self.longitude} is outside [-180, 180].")

    def as_lat_lon(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(slots=True)
class GeocodeCandidate:
    """A place returned by the place search service, scored locally."""

    coordinate: Coordinate
    display_name: str
    place_class: Optional[str] = None
    place_type: Optional[str] = None
    importance: float = 0.0
    confidence: float = 0.0
    rank: int = 1
    address: dict[str, str] = field(default_factory=dict)
    bounding_box: list[float] = field(default_factory=list)
    place_id: Optional[int] = None
    osm_type: Optional[str] = None
    osm_id: Optional[int] = None

    @property
    def latitude(self) -> float:
        return self.coordinate.latitude

    @property
    def longitude(self) -> float:
        return self.coordinate.longitude


@dataclass(slots=True)
class NearbyPlace:
    coordinate: Coordinate
    name: str
    place_class: Optional[str]
    place_type: Optional[str]
    distance_meters: float


@dataclass(frozen=True, slots=True)
class PathResult:
    """Road path across an ordered list of waypoints."""

    distance_meters: float
    duration_seconds: Optional[float]
    coordinates: tuple[Coordinate, ...]
    legs: tuple[dict, ...] = ()
    geometry: Optional[str] = None
    snapped_waypoints: tuple[dict, ...] = ()


@dataclass(slots=True)
class ShapePoint:
    """One row of GTFS shapes.txt."""

    shape_id: str
    latitude: float
    longitude: float
    sequence: int
    cumulative_distance_meters: int


@dataclass(slots=True)
class ServiceHours:
    start: str = "06:00"
    end: str = "22:00"


@dataclass(slots=True)
class RouteRequest:
    """Caller-owned description of the route to synthesize."""

    origin: str
    destination: str
    intermediate_stops: list[str] = field(default_factory=list)
    frequency_minutes: int = 30
    service_hours: ServiceHours = field(default_factory=ServiceHours)
    transport_mode: str = "bus"
    route_id: Optional[str] = None
    route_short_name: Optional[str] = None
    route_long_name: Optional[str] = None
    route_desc: Optional[str] = None
    route_color: str = "FF0000"
    route_text_color: str = "FFFFFF"
    capacity: int = 50
    zone_type: str = "mixed"
    population_density: str = "medium"
    points_of_interest: list[str] = field(default_factory=list)
    shape_id: Optional[str] = None
    optimize_waypoint_order: bool = False

    def __post_init__(self) -> None:
        if self.frequency_minutes < 1:
            raise InvalidInput(f"Frequency must be at least 1 minute, got {self.frequency_minutes}.")


@dataclass(slots=True)
class RouteMetadata:
    """One row of GTFS routes.txt."""

    route_id: str
    route_short_name: str
    route_long_name: str
    route_desc: str
    route_type: int
    route_color: str
    route_text_color: str


@dataclass(slots=True)
class TransitStop:
    stop_id: str
    stop_name: str
    stop_lat: float
    stop_lon: float
    stop_sequence: int
    justification: str = ""


@dataclass(slots=True)
class Provenance:
    """Records which pipeline stages ran live and which fell back."""

    generated_at: datetime
    stages: dict[str, str] = field(default_factory=dict)
    fallback_reasons: dict[str, str] = field(default_factory=dict)
    route_segments: list[dict[str, Any]] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    map_overlays: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)

    def used_fallback(self, stage: str) -> bool:
        return self.stages.get(stage) == "fallback"


@dataclass(slots=True)
class RouteArtifact:
    """Finished, schedule-ready route produced by the synthesizer."""

    route: RouteMetadata
    stops: list[TransitStop]
    shapes: list[ShapePoint]
    path: PathResult
    provenance: Provenance
    waypoints: list[GeocodeCandidate] = field(default_factory=list)
    analysis: Optional[dict[str, Any]] = None


@dataclass(slots=True)
class ExistingStop:
    stop_id: str
    stop_name: str
    stop_lat: float
    stop_lon: float


@dataclass(slots=True)
class ExistingRoute:
    """A previously generated route whose geometry should be recomputed."""

    route_id: str
    stops: list[ExistingStop]
    route_type: int = 3
    transport_mode: Optional[str] = None
    route_short_name: Optional[str] = None
    route_long_name: Optional[str] = None
    route_desc: Optional[str] = None
    route_color: str = "FF0000"
    route_text_color: str = "FFFFFF"
    shape_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    message: str
    distance: float = 0.0
    duration: float = 0.0
    coordinates: list[Coordinate] = field(default_factory=list)
