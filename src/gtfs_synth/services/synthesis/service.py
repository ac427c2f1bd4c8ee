"""Route synthesis orchestration.

Geocodes the request, computes the street path, asks the advisor for schedule
and stop placement advice and emits GTFS shapes. Geocoding, routing and shape
generation are fatal stages; advice is always recoverable and falls back to
deterministic local estimates recorded in the artifact provenance.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, Sequence

from ...config import Settings, settings as default_settings
from ...errors import (
    AdviceUnavailableError,
    Cancelled,
    GeocodingFailed,
    PathComputationFailed,
    RouteSynthesisError,
    ShapeGenerationFailed,
)
from ...models.domain import (
    Coordinate,
    ExistingRoute,
    GeocodeCandidate,
    PathResult,
    Provenance,
    RouteArtifact,
    RouteMetadata,
    RouteRequest,
    ShapePoint,
    TransitStop,
    ValidationResult,
)
from ...schemas.advice import ScheduleAnalysis, StopPlacement
from ..advisor import Advice, AdviceOk, AdviceUnavailable, NarrativeAdvisor, PromptKind
from ..geocoding.nominatim_client import NominatimGeocoder
from ..geospatial import path_overlay
from ..routing.path_engine import PathEngine
from .fallbacks import fallback_schedule, fallback_stops

# GTFS route_type codes
ROUTE_TYPES = {
    "tram": 0,
    "subway": 1,
    "bus": 3,
    "ferry": 4,
    "cable_tram": 5,
    "aerial_lift": 6,
    "funicular": 7,
    "trolleybus": 11,
    "monorail": 12,
}
DEFAULT_ROUTE_TYPE = ROUTE_TYPES["bus"]

STAGE_OK = "ok"
STAGE_LIVE = "live"
STAGE_FALLBACK = "fallback"
STAGE_SKIPPED = "skipped"

logger = logging.getLogger(__name__)


def route_type_for_mode(mode: str | None) -> int:
    return ROUTE_TYPES.get((mode or "").lower(), DEFAULT_ROUTE_TYPE)


def mode_for_route_type(route_type: int) -> str:
    for mode, code in ROUTE_TYPES.items():
        if code == route_type:
            return mode
    return "bus"


class Geocoder(Protocol):
    def resolve(self, address: str, *, cancel_event: threading.Event | None = None) -> GeocodeCandidate: ...


class Advisor(Protocol):
    def advise(self, context: dict, kind: PromptKind) -> Advice: ...


@dataclass(slots=True)
class _ResolvedWaypoints:
    origin: GeocodeCandidate
    intermediates: list[GeocodeCandidate]
    destination: GeocodeCandidate

    def ordered(self) -> list[GeocodeCandidate]:
        return [self.origin, *self.intermediates, self.destination]


def _ensure_not_cancelled(cancel_event: threading.Event | None, stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info(f"Synthesis cancelled before {stage}")
        raise Cancelled(f"Route synthesis was cancelled before {stage}.")


def _cancelled_during(
    cancel_event: threading.Event | None, stage: str, error: RouteSynthesisError
) -> Cancelled | None:
    """The Cancelled error to raise instead of ``error`` when the caller gave up mid-stage."""
    if isinstance(error, Cancelled) or (cancel_event is not None and cancel_event.is_set()):
        logger.info(f"Synthesis cancelled during {stage}: {error}")
        return Cancelled(f"Route synthesis was cancelled during {stage}.")
    return None


class RouteSynthesizer:
    def __init__(
        self,
        config: Settings | None = None,
        *,
        geocoder: Geocoder | None = None,
        path_engine: PathEngine | None = None,
        advisor: Advisor | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        self.config = config or default_settings
        self.geocoder = geocoder or NominatimGeocoder(self.config)
        self.path_engine = path_engine or PathEngine(self.config)
        self.advisor = advisor or NarrativeAdvisor(self.config)
        self.poll_interval = poll_interval

    def synthesize(
        self, request: RouteRequest, *, cancel_event: threading.Event | None = None
    ) -> RouteArtifact:
        generated_at = datetime.now(timezone.utc)
        route_id = request.route_id or f"route_{int(generated_at.timestamp() * 1000)}"
        logger.info(f"Synthesizing route {route_id}: {request.origin} -> {request.destination}")

        resolved = self._geocode(request, cancel_event)
        if request.optimize_waypoint_order:
            resolved.intermediates = self.path_engine.order_waypoints_by_distance(
                resolved.origin.coordinate,
                resolved.intermediates,
                position=lambda candidate: candidate.coordinate,
            )
        waypoints = resolved.ordered()

        profile = self.path_engine.profile_for_mode(request.transport_mode)
        path = self._compute_path([waypoint.coordinate for waypoint in waypoints], profile, route_id, cancel_event)
        travel_minutes = self.path_engine.estimate_travel_time_minutes(path, request.transport_mode)

        provenance = Provenance(generated_at=generated_at)
        provenance.stages["geocoding"] = STAGE_OK
        provenance.stages["routing"] = STAGE_OK

        advice = self._collect_advice(
            {
                PromptKind.SCHEDULE_ANALYSIS: self._schedule_context(request, path, waypoints, travel_minutes),
                PromptKind.STOP_OPTIMIZATION: self._stop_context(request, path, resolved, travel_minutes),
            },
            cancel_event,
        )
        analysis = self._resolve_schedule(advice[PromptKind.SCHEDULE_ANALYSIS], path, request, travel_minutes, provenance)
        stops = self._resolve_stops(advice[PromptKind.STOP_OPTIMIZATION], waypoints, provenance)

        shape_id = request.shape_id or f"shape_{route_id}"
        shapes = self._build_shapes(path, shape_id)
        provenance.stages["shapes"] = STAGE_OK
        _ensure_not_cancelled(cancel_event, "assembly")

        provenance.recommendations.extend(analysis.recommendations)
        provenance.map_overlays = {
            "routes": [{"route_id": route_id, "shape_id": shape_id, **path_overlay(path.coordinates)}]
        }
        provenance.extras.update(
            {
                "osm_data_used": True,
                "transport_mode": request.transport_mode,
                "routing_profile": profile,
                "travel_time_minutes": travel_minutes,
                "waypoint_count": len(waypoints),
            }
        )

        route = RouteMetadata(
            route_id=route_id,
            route_short_name=request.route_short_name or "R1",
            route_long_name=request.route_long_name or f"{request.origin} → {request.destination}",
            route_desc=request.route_desc
            or f"{request.transport_mode} route between {request.origin} and {request.destination}",
            route_type=route_type_for_mode(request.transport_mode),
            route_color=request.route_color,
            route_text_color=request.route_text_color,
        )
        logger.info(
            f"Route {route_id} synthesized: {len(stops)} stops, {len(shapes)} shape points, "
            f"schedule={provenance.stages['schedule_analysis']}, stops={provenance.stages['stop_optimization']}"
        )
        return RouteArtifact(
            route=route,
            stops=stops,
            shapes=shapes,
            path=path,
            provenance=provenance,
            waypoints=waypoints,
            analysis=analysis.model_dump(by_alias=True),
        )

    def improve_existing_route(
        self, route: ExistingRoute, *, cancel_event: threading.Event | None = None
    ) -> RouteArtifact:
        """Recompute the street path through an existing route's stops and rebuild its shape."""
        logger.info(f"Improving existing route: {route.route_id}")
        mode = route.transport_mode or mode_for_route_type(route.route_type)
        profile = self.path_engine.profile_for_mode(mode)
        path = self._compute_path(_stop_coordinates(route, route.route_id), profile, route.route_id, cancel_event)

        shape_id = route.shape_id or f"shape_{route.route_id}"
        shapes = self._build_shapes(path, shape_id)
        _ensure_not_cancelled(cancel_event, "assembly")

        improved_at = datetime.now(timezone.utc)
        provenance = Provenance(
            generated_at=improved_at,
            stages={
                "geocoding": STAGE_SKIPPED,
                "routing": STAGE_OK,
                "schedule_analysis": STAGE_SKIPPED,
                "stop_optimization": STAGE_SKIPPED,
                "shapes": STAGE_OK,
            },
            map_overlays={
                "routes": [{"route_id": route.route_id, "shape_id": shape_id, **path_overlay(path.coordinates)}]
            },
        )
        provenance.extras.update(route.metadata)
        provenance.extras.update(
            {
                "improved_with_osm": True,
                "improved_at": improved_at.isoformat(),
                "routing_profile": profile,
                "travel_time_minutes": self.path_engine.estimate_travel_time_minutes(path, mode),
            }
        )
        stops = [
            TransitStop(
                stop_id=stop.stop_id,
                stop_name=stop.stop_name,
                stop_lat=stop.stop_lat,
                stop_lon=stop.stop_lon,
                stop_sequence=position,
            )
            for position, stop in enumerate(route.stops, start=1)
        ]
        metadata = RouteMetadata(
            route_id=route.route_id,
            route_short_name=route.route_short_name or route.route_id,
            route_long_name=route.route_long_name or f"{stops[0].stop_name} → {stops[-1].stop_name}",
            route_desc=route.route_desc or f"{mode} route improved with OpenStreetMap data",
            route_type=route.route_type,
            route_color=route.route_color,
            route_text_color=route.route_text_color,
        )
        return RouteArtifact(route=metadata, stops=stops, shapes=shapes, path=path, provenance=provenance)

    def validate_route(self, route: ExistingRoute) -> ValidationResult:
        """Check that a drivable path connects the route's stops. Never raises."""
        try:
            mode = route.transport_mode or mode_for_route_type(route.route_type)
            coordinates = [Coordinate(stop.stop_lat, stop.stop_lon) for stop in route.stops]
            path = self.path_engine.compute_path(coordinates, profile=self.path_engine.profile_for_mode(mode))
        except Exception as e:
            logger.warning(f"Route {route.route_id} failed validation: {e}")
            return ValidationResult(is_valid=False, message=f"Route is not valid: {e}")
        return ValidationResult(
            is_valid=True,
            message="Route is valid and drivable.",
            distance=path.distance_meters,
            duration=path.duration_seconds or 0.0,
            coordinates=list(path.coordinates),
        )

    def _geocode(self, request: RouteRequest, cancel_event: threading.Event | None) -> _ResolvedWaypoints:
        targets: list[tuple[str, str]] = [("origin", request.origin), ("destination", request.destination)]
        targets.extend(
            (f"intermediate stop {position}", address)
            for position, address in enumerate(request.intermediate_stops, start=1)
        )

        resolved: list[GeocodeCandidate] = []
        for role, address in targets:
            _ensure_not_cancelled(cancel_event, f"geocoding the {role}")
            try:
                resolved.append(self.geocoder.resolve(address, cancel_event=cancel_event))
            except RouteSynthesisError as e:
                cancelled = _cancelled_during(cancel_event, f"geocoding the {role}", e)
                if cancelled is not None:
                    raise cancelled from e
                logger.error(f"Geocoding failed for {role} '{address}': {e}")
                raise GeocodingFailed(address, str(e), role=role) from e

        return _ResolvedWaypoints(origin=resolved[0], destination=resolved[1], intermediates=resolved[2:])

    def _compute_path(
        self,
        coordinates: Sequence[Coordinate],
        profile: str,
        route_id: str,
        cancel_event: threading.Event | None,
    ) -> PathResult:
        _ensure_not_cancelled(cancel_event, "routing")
        try:
            path = self.path_engine.compute_path(coordinates, profile=profile, cancel_event=cancel_event)
        except RouteSynthesisError as e:
            cancelled = _cancelled_during(cancel_event, "routing", e)
            if cancelled is not None:
                raise cancelled from e
            logger.error(f"Path computation failed for route {route_id}: {e}")
            raise PathComputationFailed(f"Path computation failed for route {route_id}: {e}", identifier=route_id) from e
        _ensure_not_cancelled(cancel_event, "advice")
        return path

    def _build_shapes(self, path: PathResult, shape_id: str) -> list[ShapePoint]:
        try:
            return self.path_engine.build_shape(path.coordinates, shape_id)
        except RouteSynthesisError as e:
            logger.error(f"Shape generation failed for {shape_id}: {e}")
            raise ShapeGenerationFailed(f"Shape generation failed for {shape_id}: {e}", identifier=shape_id) from e

    def _collect_advice(
        self, contexts: dict[PromptKind, dict], cancel_event: threading.Event | None
    ) -> dict[PromptKind, Advice]:
        """Run the advisory calls concurrently; each result is independent."""
        executor = ThreadPoolExecutor(max_workers=len(contexts), thread_name_prefix="advisor")
        try:
            futures: dict[Future, PromptKind] = {
                executor.submit(self.advisor.advise, context, kind): kind for kind, context in contexts.items()
            }
            pending = set(futures)
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    for future in pending:
                        future.cancel()
                    raise Cancelled("Route synthesis was cancelled while waiting for advice.")
                _, pending = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        results: dict[PromptKind, Advice] = {}
        for future, kind in futures.items():
            try:
                results[kind] = future.result()
            except AdviceUnavailableError as e:
                results[kind] = AdviceUnavailable(str(e))
            except Exception as e:
                logger.error(f"Advisor raised unexpectedly for '{kind.value}': {e}")
                results[kind] = AdviceUnavailable(f"Advisor error: {e}")
        return results

    def _resolve_schedule(
        self,
        advice: Advice,
        path: PathResult,
        request: RouteRequest,
        travel_minutes: int,
        provenance: Provenance,
    ) -> ScheduleAnalysis:
        match advice:
            case AdviceOk(payload=ScheduleAnalysis() as analysis):
                provenance.stages["schedule_analysis"] = STAGE_LIVE
                return analysis
            case AdviceUnavailable(reason=reason):
                pass
            case _:
                reason = f"Unexpected schedule advice: {advice!r}"
        logger.warning(f"Schedule analysis falling back to local estimate: {reason}")
        provenance.stages["schedule_analysis"] = STAGE_FALLBACK
        provenance.fallback_reasons["schedule_analysis"] = reason
        return fallback_schedule(path, request, travel_minutes)

    def _resolve_stops(
        self,
        advice: Advice,
        waypoints: Sequence[GeocodeCandidate],
        provenance: Provenance,
    ) -> list[TransitStop]:
        match advice:
            case AdviceOk(payload=StopPlacement() as placement):
                provenance.stages["stop_optimization"] = STAGE_LIVE
                provenance.route_segments = [
                    segment.model_dump(exclude_none=True) for segment in placement.route_segments
                ]
                provenance.recommendations.extend(placement.recommendations)
                suggestions = sorted(placement.optimized_stops, key=lambda stop: stop.stop_sequence)
                return [
                    TransitStop(
                        stop_id=stop.stop_id,
                        stop_name=stop.stop_name,
                        stop_lat=stop.stop_lat,
                        stop_lon=stop.stop_lon,
                        stop_sequence=stop.stop_sequence,
                        justification=stop.justification,
                    )
                    for stop in suggestions
                ]
            case AdviceUnavailable(reason=reason):
                pass
            case _:
                reason = f"Unexpected stop advice: {advice!r}"
        logger.warning(f"Stop optimization falling back to waypoint stops: {reason}")
        provenance.stages["stop_optimization"] = STAGE_FALLBACK
        provenance.fallback_reasons["stop_optimization"] = reason
        return fallback_stops(waypoints)

    @staticmethod
    def _schedule_context(
        request: RouteRequest,
        path: PathResult,
        waypoints: Sequence[GeocodeCandidate],
        travel_minutes: int,
    ) -> dict:
        return {
            "distance_km": f"{path.distance_meters / 1000:.2f}",
            "duration_min": travel_minutes,
            "stop_count": len(waypoints),
            "stops": [
                waypoint.display_name or f"{waypoint.latitude}, {waypoint.longitude}" for waypoint in waypoints
            ],
            "frequency": request.frequency_minutes,
            "capacity": request.capacity,
            "start_time": request.service_hours.start,
            "end_time": request.service_hours.end,
            "transport_mode": request.transport_mode,
        }

    @staticmethod
    def _stop_context(
        request: RouteRequest,
        path: PathResult,
        resolved: _ResolvedWaypoints,
        travel_minutes: int,
    ) -> dict:
        return {
            "origin": resolved.origin.display_name,
            "destination": resolved.destination.display_name,
            "intermediate_stops": [stop.display_name for stop in resolved.intermediates],
            "total_distance_km": f"{path.distance_meters / 1000:.2f}",
            "total_time_min": travel_minutes,
            "zone_type": request.zone_type,
            "population_density": request.population_density,
            "points_of_interest": list(request.points_of_interest),
        }


def _stop_coordinates(route: ExistingRoute, route_id: str) -> list[Coordinate]:
    try:
        return [Coordinate(stop.stop_lat, stop.stop_lon) for stop in route.stops]
    except RouteSynthesisError as e:
        raise PathComputationFailed(f"Route {route_id} has an invalid stop coordinate: {e}", identifier=route_id) from e
