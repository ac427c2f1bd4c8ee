"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
import threading
import time
from typing import Sequence

import httpx

from ...config import Settings, settings as default_settings
from ...errors import Cancelled, NoRouteFound, UpstreamError

# OSRM answers these codes when the waypoints cannot be connected by road
NO_ROUTE_CODES = frozenset({"NoRoute", "NoSegment"})

GEOMETRY_PRECISION = {"polyline": 5, "polyline6": 6}

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        config: Settings | None = None,
        *,
        base_url: str | None = None,
        profile: str | None = None,
        geometries: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        config = config or default_settings
        self.base_url = (base_url or config.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or config.osrm_profile
        self.geometries = geometries or config.osrm_geometries
        if self.geometries not in GEOMETRY_PRECISION:
            raise ValueError(f"Unsupported OSRM geometry encoding '{self.geometries}'.")
        self.user_agent = config.user_agent
        self.timeout = timeout if timeout is not None else config.request_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else config.geo_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else config.geo_backoff_seconds
        self._transport = transport

    @property
    def precision(self) -> int:
        return GEOMETRY_PRECISION[self.geometries]

    def _get_client(self) -> httpx.Client:
        """Create a short-lived HTTP client for one request."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    def route(
        self,
        coordinates: Sequence[tuple[float, float]],
        profile: str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> dict:
        """Get route geometry between coordinates using OSRM route endpoint.

        Returns the route path that follows streets, including geometry as polyline.

        Args:
            coordinates: Sequence of (lat, lon) tuples for the route waypoints
            profile: OSRM profile overriding the configured one
            cancel_event: Set by the caller to abandon retries

        Returns:
            The raw OSRM response whose ``code`` is ``Ok``

        Raises:
            NoRouteFound: OSRM could not connect the waypoints
            UpstreamError: network failure, timeout or an unusable answer
            Cancelled: cancel_event was set while waiting to retry
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        # OSRM route endpoint expects coordinates as "lon,lat;lon,lat;..."
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)

        params = {
            "overview": "full",  # Get full geometry
            "geometries": self.geometries,
            "steps": "false",  # Don't need step-by-step instructions
            "alternatives": "false",
        }
        url = f"{self.base_url}/route/v1/{profile or self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    if response.status_code >= 500 or response.status_code == 429:
                        response.raise_for_status()
                    # OSRM reports NoRoute and InvalidQuery as 400 with a JSON body
                    data = response.json()
                    break
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise UpstreamError(
                            f"OSRM returned {e.response.status_code} after {attempt} attempts."
                        ) from e
                    _wait_before_retry(self.backoff_seconds * attempt, cancel_event)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {self.max_retries} retries: {e}")
                        raise UpstreamError(f"OSRM route request timed out: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    _wait_before_retry(wait_time, cancel_event)
                except (httpx.TransportError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise UpstreamError(f"Failed to connect to OSRM service at {self.base_url}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    _wait_before_retry(wait_time, cancel_event)
                except ValueError as e:
                    raise UpstreamError(f"OSRM returned a malformed response: {e}") from e
        finally:
            client.close()

        return _check_route_payload(data, response.status_code)


def _wait_before_retry(seconds: float, cancel_event: threading.Event | None) -> None:
    if cancel_event is None:
        time.sleep(seconds)
    elif cancel_event.wait(seconds):
        raise Cancelled("OSRM request cancelled while waiting to retry.")


def _check_route_payload(data: dict, status_code: int) -> dict:
    if not isinstance(data, dict):
        raise UpstreamError("OSRM returned an unexpected payload.")
    code = data.get("code")
    if code in NO_ROUTE_CODES:
        raise NoRouteFound(data.get("message") or f"OSRM found no route ({code}).")
    if code != "Ok":
        error_msg = data.get("message", "Unknown OSRM route error")
        raise UpstreamError(f"OSRM route request failed ({status_code}, {code}): {error_msg}")
    if not data.get("routes"):
        raise NoRouteFound("OSRM returned no routes.")
    return data


def decode_polyline(polyline: str, precision: int = 5) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format for route geometry; ``polyline6``
    is the same format with six decimal digits of precision.

    Args:
        polyline: Encoded polyline string
        precision: Number of decimal digits encoded (5 or 6)

    Returns:
        List of (latitude, longitude) tuples
    """
    factor = 10 ** precision
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        # Decode latitude
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlat = ~(result >> 1) if (result & 1) else (result >> 1)
        lat += dlat

        # Decode longitude
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        dlon = ~(result >> 1) if (result & 1) else (result >> 1)
        lon += dlon

        coordinates.append((lat / factor, lon / factor))

    return coordinates


def check_health(base_url: str | None = None, config: Settings | None = None) -> bool:
    """Check OSRM service health by requesting a short route.

    Public OSRM endpoints may not have a /health endpoint, so we test
    connectivity with a minimal two-point route request.
    """
    config = config or default_settings
    base = (base_url or config.osrm_base_url or "").rstrip("/")
    if not base:
        return False
    try:
        # Two points in central Madrid
        test_coords = "-3.703790,40.416775;-3.692127,40.418889"
        url = f"{base}/route/v1/{config.osrm_profile}/{test_coords}"
        params = {"overview": "false"}

        response = httpx.get(url, params=params, timeout=5.0, headers={"User-Agent": config.user_agent})
        response.raise_for_status()
        data = response.json()
        return data.get("code") == "Ok"
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"OSRM health check failed: {e}")
        return False
