"""HTTP client for the Nominatim place search service."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Sequence

import httpx

from ...config import Settings, settings as default_settings
from ...errors import Cancelled, InvalidInput, NotFound, UpstreamError
from ...models.domain import Coordinate, GeocodeCandidate, NearbyPlace
from ..geospatial import great_circle_distance

MAX_CANDIDATES = 50

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConfidenceWeights:
    """Heuristic constants used to score and rank geocoding candidates."""

    base: float = 0.5
    token_bonus: float = 0.1
    importance_weight: float = 0.3
    class_bonus: float = 0.1
    boundary_penalty: float = 0.1
    preferred_classes: tuple[str, ...] = ("administrative", "amenity", "building", "highway")
    ranking_importance: float = 0.7
    ranking_confidence: float = 0.3

    @classmethod
    def from_settings(cls, config: Settings) -> "ConfidenceWeights":
        return cls(
            base=config.confidence_base,
            token_bonus=config.confidence_token_bonus,
            importance_weight=config.confidence_importance_weight,
            class_bonus=config.confidence_class_bonus,
            boundary_penalty=config.confidence_boundary_penalty,
            preferred_classes=tuple(config.confidence_preferred_classes),
            ranking_importance=config.ranking_importance_weight,
            ranking_confidence=config.ranking_confidence_weight,
        )


def calculate_confidence(result: dict, query: str, weights: ConfidenceWeights | None = None) -> float:
    """Score how well a raw Nominatim result matches the query, in [0, 1]."""
    weights = weights or ConfidenceWeights()
    confidence = weights.base

    display_name = str(result.get("display_name") or "").lower()
    for token in query.lower().split():
        if token in display_name:
            confidence += weights.token_bonus

    importance = _as_float(result.get("importance"))
    if importance:
        confidence += importance * weights.importance_weight

    if result.get("class") in weights.preferred_classes:
        confidence += weights.class_bonus

    # Administrative boundaries are usually too generic to be a stop
    if result.get("class") == "boundary" and result.get("type") == "administrative":
        confidence -= weights.boundary_penalty

    return min(1.0, max(0.0, confidence))


def blended_score(candidate: GeocodeCandidate, weights: ConfidenceWeights | None = None) -> float:
    weights = weights or ConfidenceWeights()
    return candidate.importance * weights.ranking_importance + candidate.confidence * weights.ranking_confidence


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _wait_before_retry(seconds: float, cancel_event: threading.Event | None) -> None:
    """Sleep before the next attempt; a set cancel event ends the wait and the call."""
    if cancel_event is None:
        time.sleep(seconds)
    elif cancel_event.wait(seconds):
        raise Cancelled("Geocoding request cancelled while waiting to retry.")


class NominatimGeocoder:
    """Geocoding, reverse geocoding and nearby search against Nominatim."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        weights: ConfidenceWeights | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        config = config or default_settings
        self.base_url = (base_url or config.nominatim_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Nominatim base URL is not configured.")
        self.user_agent = config.user_agent
        self.health_check_address = config.health_check_address
        self.timeout = timeout if timeout is not None else config.request_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else config.geo_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else config.geo_backoff_seconds
        self.weights = weights or ConfidenceWeights.from_settings(config)
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    def _get_json(
        self, path: str, params: dict[str, Any], cancel_event: threading.Event | None = None
    ) -> Any:
        """GET a Nominatim endpoint, retrying transient failures."""
        url = f"{self.base_url}/{path}"
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    if status_code < 500 and status_code != 429:
                        raise UpstreamError(f"Nominatim rejected the request ({status_code}): {e}") from e
                    attempt += 1
                    if attempt > self.max_retries:
                        raise UpstreamError(f"Nominatim returned {status_code} after {attempt} attempts.") from e
                    _wait_before_retry(self.backoff_seconds * attempt, cancel_event)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Nominatim request timed out after {self.max_retries} retries: {e}")
                        raise UpstreamError(f"Nominatim request timed out: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Nominatim timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    _wait_before_retry(wait_time, cancel_event)
                except (httpx.TransportError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise UpstreamError(f"Failed to connect to Nominatim at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Nominatim network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    _wait_before_retry(wait_time, cancel_event)
                except ValueError as e:
                    # JSON decoding failure
                    raise UpstreamError(f"Nominatim returned a malformed response: {e}") from e
        finally:
            client.close()

    def _search(
        self,
        address: str,
        limit: int,
        cancel_event: threading.Event | None = None,
        **extra: Any,
    ) -> list[dict]:
        if not address or not address.strip():
            raise InvalidInput("An address is required for geocoding.")
        params = {
            "q": address,
            "format": "json",
            "limit": limit,
            "addressdetails": 1,
            "extratags": 1,
            "namedetails": 1,
            **extra,
        }
        data = self._get_json("search", params, cancel_event)
        if not data:
            raise NotFound(f"No results found for '{address}'.")
        if not isinstance(data, list):
            raise UpstreamError(f"Unexpected Nominatim search payload for '{address}'.")
        return data

    def _to_candidate(self, result: dict, query: str, rank: int) -> GeocodeCandidate:
        try:
            coordinate = Coordinate(float(result["lat"]), float(result["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Nominatim result without usable coordinates: {result!r}") from e
        return GeocodeCandidate(
            coordinate=coordinate,
            display_name=str(result.get("display_name") or ""),
            place_class=result.get("class"),
            place_type=result.get("type"),
            importance=min(1.0, max(0.0, _as_float(result.get("importance")))),
            confidence=calculate_confidence(result, query, self.weights) if query else 0.0,
            rank=rank,
            address=dict(result.get("address") or {}),
            bounding_box=[_as_float(value) for value in result.get("boundingbox") or []],
            place_id=_as_int(result.get("place_id")),
            osm_type=result.get("osm_type"),
            osm_id=_as_int(result.get("osm_id")),
        )

    def resolve(self, address: str, *, cancel_event: threading.Event | None = None) -> GeocodeCandidate:
        """Return the best match for an address, by the service's own ordering."""
        logger.info(f"Geocoding: {address}")
        results = self._search(address, limit=1, cancel_event=cancel_event)
        candidate = self._to_candidate(results[0], address, rank=1)
        logger.info(f"Geocoded '{address}' to {candidate.latitude}, {candidate.longitude}")
        return candidate

    def resolve_candidates(self, address: str, limit: int = 10) -> list[GeocodeCandidate]:
        """Return up to ``limit`` interpretations ranked by blended importance/confidence."""
        if not 1 <= limit <= MAX_CANDIDATES:
            raise InvalidInput(f"Candidate limit must be between 1 and {MAX_CANDIDATES}, got {limit}.")
        logger.info(f"Geocoding candidates: {address} (limit: {limit})")
        results = self._search(address, limit=limit)
        candidates = [
            self._to_candidate(result, address, rank=index + 1) for index, result in enumerate(results[:limit])
        ]
        # sorted() is stable, so equal scores keep the upstream order
        candidates = sorted(candidates, key=lambda c: blended_score(c, self.weights), reverse=True)
        logger.info(f"Geocoding candidates for '{address}': {len(candidates)} results")
        return candidates

    def resolve_reverse(self, lat: float, lon: float) -> GeocodeCandidate:
        """Return the place found at a coordinate."""
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
            raise InvalidInput(f"Coordinate ({lat}, {lon}) is out of range.")
        logger.info(f"Reverse geocoding: {lat}, {lon}")
        params = {
            "lat": lat,
            "lon": lon,
            "format": "json",
            "addressdetails": 1,
            "extratags": 1,
        }
        data = self._get_json("reverse", params)
        if not data or not isinstance(data, dict) or "error" in data:
            raise NotFound(f"No place found for coordinates {lat}, {lon}.")
        return self._to_candidate(data, "", rank=1)

    def search_nearby(
        self,
        center: Coordinate,
        category: str,
        radius_meters: float = 1000,
        *,
        limit: int = 10,
    ) -> list[NearbyPlace]:
        """Find places of a category around a point, keeping the upstream order."""
        logger.info(f"Searching '{category}' within {radius_meters}m of {center.latitude}, {center.longitude}")
        params = {
            "lat": center.latitude,
            "lon": center.longitude,
            "amenity": category,
            "format": "json",
            "limit": limit,
            "radius": radius_meters / 1000,
        }
        data = self._get_json("search", params) or []
        places: list[NearbyPlace] = []
        for poi in data:
            try:
                coordinate = Coordinate(float(poi["lat"]), float(poi["lon"]))
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping nearby result without coordinates: {poi!r}")
                continue
            places.append(
                NearbyPlace(
                    coordinate=coordinate,
                    name=str(poi.get("display_name") or ""),
                    place_class=poi.get("class"),
                    place_type=poi.get("type"),
                    distance_meters=great_circle_distance(center, coordinate, "meters"),
                )
            )
        return places

    def advanced_search(
        self,
        query: str,
        *,
        limit: int = 20,
        country_codes: Sequence[str] | None = None,
        viewbox: str | None = None,
        bounded: bool = False,
    ) -> list[GeocodeCandidate]:
        """Filtered search; candidates carry confidence but keep upstream order."""
        if not 1 <= limit <= MAX_CANDIDATES:
            raise InvalidInput(f"Search limit must be between 1 and {MAX_CANDIDATES}, got {limit}.")
        extra: dict[str, Any] = {}
        if country_codes:
            extra["countrycodes"] = ",".join(code.strip().lower() for code in country_codes if code.strip())
        if viewbox:
            extra["viewbox"] = viewbox
        if bounded:
            extra["bounded"] = 1
        logger.info(f"Advanced search: {query} {extra}")
        try:
            results = self._search(query, limit=limit, **extra)
        except NotFound:
            return []
        return [self._to_candidate(result, query, rank=index + 1) for index, result in enumerate(results)]

    def check_health(self, address: str | None = None) -> bool:
        """Run one cheap geocoding round trip."""
        try:
            self.resolve(address or self.health_check_address)
            return True
        except (NotFound, UpstreamError, InvalidInput) as e:
            logger.warning(f"Nominatim health check failed: {e}")
            return False
