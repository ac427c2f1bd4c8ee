"""Serializers for synthesis outputs."""

from __future__ import annotations

from dataclasses import asdict
from typing import Sequence

from ...models.domain import (
    Coordinate,
    GeocodeCandidate,
    NearbyPlace,
    PathResult,
    RouteArtifact,
    ShapePoint,
    ValidationResult,
)


def coordinates_to_json(coordinates: Sequence[Coordinate]) -> list[dict]:
    return [{"lat": coord.latitude, "lon": coord.longitude} for coord in coordinates]


def shape_points_to_json(shapes: Sequence[ShapePoint]) -> list[dict]:
    return [
        {
            "shape_id": point.shape_id,
            "shape_pt_lat": point.latitude,
            "shape_pt_lon": point.longitude,
            "shape_pt_sequence": point.sequence,
            "shape_dist_traveled": point.cumulative_distance_meters,
        }
        for point in shapes
    ]


def path_to_json(path: PathResult) -> dict:
    return {
        "distance": path.distance_meters,
        "duration": path.duration_seconds,
        "geometry": path.geometry,
        "coordinates": coordinates_to_json(path.coordinates),
        "legs": list(path.legs),
        "waypoints": list(path.snapped_waypoints),
    }


def candidate_to_json(candidate: GeocodeCandidate) -> dict:
    return {
        "rank": candidate.rank,
        "lat": candidate.latitude,
        "lon": candidate.longitude,
        "display_name": candidate.display_name,
        "importance": candidate.importance,
        "confidence": candidate.confidence,
        "class": candidate.place_class,
        "type": candidate.place_type,
        "address": candidate.address,
        "boundingbox": candidate.bounding_box,
        "place_id": candidate.place_id,
        "osm_type": candidate.osm_type,
        "osm_id": candidate.osm_id,
    }


def nearby_place_to_json(place: NearbyPlace) -> dict:
    return {
        "lat": place.coordinate.latitude,
        "lon": place.coordinate.longitude,
        "name": place.name,
        "class": place.place_class,
        "type": place.place_type,
        "distance": place.distance_meters,
    }


def validation_result_to_json(result: ValidationResult) -> dict:
    return {
        "isValid": result.is_valid,
        "distance": result.distance,
        "duration": result.duration,
        "coordinates": coordinates_to_json(result.coordinates),
        "message": result.message,
    }


def artifact_to_json(artifact: RouteArtifact) -> dict:
    provenance = artifact.provenance
    return {
        "route": asdict(artifact.route),
        "stops": [asdict(stop) for stop in artifact.stops],
        "shapes": shape_points_to_json(artifact.shapes),
        "routeData": path_to_json(artifact.path),
        "waypoints": [candidate_to_json(waypoint) for waypoint in artifact.waypoints],
        "aiAnalysis": artifact.analysis,
        "metadata": {
            **provenance.extras,
            "generatedAt": provenance.generated_at.isoformat(),
            "stages": dict(provenance.stages),
            "fallbackReasons": dict(provenance.fallback_reasons),
            "routeSegments": list(provenance.route_segments),
            "recommendations": list(provenance.recommendations),
            "map_overlays": provenance.map_overlays,
        },
    }
