"""Route synthesis and OpenStreetMap lookup endpoints."""

from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import (
    Cancelled,
    GeocodingFailed,
    InvalidInput,
    NoRouteFound,
    NotFound,
    PathComputationFailed,
    RouteSynthesisError,
    UpstreamError,
)
from ...models.domain import Coordinate
from ...schemas.routing import (
    AdvancedSearchRequest,
    ApiResponse,
    ExistingRouteModel,
    PathRequest,
    RealisticRouteRequest,
)
from ...services.geocoding.nominatim_client import NominatimGeocoder
from ...services.outputs.artifact_formatter import (
    artifact_to_json,
    candidate_to_json,
    nearby_place_to_json,
    path_to_json,
    validation_result_to_json,
)
from ...services.routing.path_engine import PathEngine
from ...services.synthesis import RouteSynthesizer
from ..dependencies import get_geocoder, get_path_engine, get_synthesizer

router = APIRouter(prefix="/osm", tags=["osm"])

logger = logging.getLogger(__name__)


def _raise_http(exc: Exception, action: str) -> NoReturn:
    """Translate a synthesis error into an HTTP error."""
    if isinstance(exc, InvalidInput):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, (NotFound, GeocodingFailed)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (UpstreamError, NoRouteFound, PathComputationFailed)):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(exc, Cancelled):
        code = status.HTTP_409_CONFLICT
    else:
        logger.exception(f"Error {action}: {exc}")
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    raise HTTPException(status_code=code, detail=f"Error {action}: {exc}") from exc


@router.post("/generate-realistic-route", response_model=ApiResponse)
def generate_realistic_route(
    payload: RealisticRouteRequest,
    synthesizer: RouteSynthesizer = Depends(get_synthesizer),
) -> ApiResponse:
    logger.info(f"Generating realistic route: {payload.origin} -> {payload.destination}")
    try:
        artifact = synthesizer.synthesize(payload.to_domain())
    except RouteSynthesisError as exc:
        _raise_http(exc, "generating realistic route")
    return ApiResponse(data=artifact_to_json(artifact), message="Realistic route generated.")


@router.post("/improve-route/{route_id}", response_model=ApiResponse)
def improve_route(
    route_id: str,
    payload: ExistingRouteModel,
    synthesizer: RouteSynthesizer = Depends(get_synthesizer),
) -> ApiResponse:
    try:
        artifact = synthesizer.improve_existing_route(payload.to_domain(route_id))
    except RouteSynthesisError as exc:
        _raise_http(exc, "improving route")
    return ApiResponse(data=artifact_to_json(artifact), message="Route improved with OpenStreetMap data.")


@router.post("/validate-route", response_model=ApiResponse)
def validate_route(
    payload: ExistingRouteModel,
    synthesizer: RouteSynthesizer = Depends(get_synthesizer),
) -> ApiResponse:
    result = synthesizer.validate_route(payload.to_domain())
    return ApiResponse(
        data=validation_result_to_json(result),
        message="Route is valid." if result.is_valid else "Route is not valid.",
    )


@router.get("/geocode", response_model=ApiResponse)
def geocode(
    address: str = Query(..., min_length=1),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> ApiResponse:
    try:
        candidate = geocoder.resolve(address)
    except RouteSynthesisError as exc:
        _raise_http(exc, "geocoding address")
    return ApiResponse(data=candidate_to_json(candidate), message="Geocoding succeeded.")


@router.get("/reverse-geocode", response_model=ApiResponse)
def reverse_geocode(
    lat: float = Query(...),
    lon: float = Query(...),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> ApiResponse:
    try:
        candidate = geocoder.resolve_reverse(lat, lon)
    except RouteSynthesisError as exc:
        _raise_http(exc, "reverse geocoding")
    return ApiResponse(data=candidate_to_json(candidate), message="Reverse geocoding succeeded.")


@router.get("/geocode-candidates", response_model=ApiResponse)
def geocode_candidates(
    address: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> ApiResponse:
    try:
        candidates = geocoder.resolve_candidates(address, limit=limit)
    except RouteSynthesisError as exc:
        _raise_http(exc, "fetching geocoding candidates")
    serialized = [candidate_to_json(candidate) for candidate in candidates]
    return ApiResponse(
        data={
            "query": address,
            "candidates": serialized,
            "total": len(serialized),
            "best_match": serialized[0] if serialized else None,
        },
        message=f"{len(serialized)} candidates found for '{address}'.",
    )


@router.post("/advanced-search", response_model=ApiResponse)
def advanced_search(
    payload: AdvancedSearchRequest,
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> ApiResponse:
    try:
        results = geocoder.advanced_search(
            payload.query,
            limit=payload.limit,
            country_codes=payload.country_codes,
            viewbox=payload.viewbox,
            bounded=payload.bounded,
        )
    except RouteSynthesisError as exc:
        _raise_http(exc, "running advanced search")
    return ApiResponse(
        data={
            "query": payload.query,
            "results": [candidate_to_json(result) for result in results],
            "total": len(results),
        },
        message=f"{len(results)} results found.",
    )


@router.post("/route", response_model=ApiResponse)
def calculate_route(
    payload: PathRequest,
    path_engine: PathEngine = Depends(get_path_engine),
) -> ApiResponse:
    try:
        waypoints = [Coordinate(point.lat, point.lon) for point in payload.coordinates]
        path = path_engine.compute_path(waypoints, profile=payload.profile)
    except RouteSynthesisError as exc:
        _raise_http(exc, "calculating route")
    return ApiResponse(data=path_to_json(path), message="Route calculated.")


@router.get("/nearby-poi", response_model=ApiResponse)
def nearby_poi(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    amenity: str = Query("bus_station"),
    radius: int = Query(1000, ge=1),
    geocoder: NominatimGeocoder = Depends(get_geocoder),
) -> ApiResponse:
    try:
        places = geocoder.search_nearby(Coordinate(lat, lon), amenity, radius)
    except RouteSynthesisError as exc:
        _raise_http(exc, "searching points of interest")
    return ApiResponse(
        data=[nearby_place_to_json(place) for place in places],
        message=f"{len(places)} points of interest found.",
    )
