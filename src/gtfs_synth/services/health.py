"""Reachability checks for the external services."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..config import Settings, settings as default_settings
from .geocoding.nominatim_client import NominatimGeocoder
from .routing.osrm_client import check_health as osrm_health_check

logger = logging.getLogger(__name__)


def check_services(
    config: Settings | None = None,
    *,
    geocoder: NominatimGeocoder | None = None,
) -> dict:
    """Geocode one address and request one short route; report each service."""
    config = config or default_settings
    geocoder = geocoder or NominatimGeocoder(config, max_retries=0)

    nominatim_ok = geocoder.check_health(config.health_check_address)
    osrm_ok = osrm_health_check(config=config)
    healthy = nominatim_ok and osrm_ok
    if not healthy:
        logger.warning(f"OSM services degraded: nominatim={nominatim_ok}, osrm={osrm_ok}")
    return {
        "status": "healthy" if healthy else "unhealthy",
        "services": {
            "nominatim": "operational" if nominatim_ok else "error",
            "osrm": "operational" if osrm_ok else "error",
        },
        "test_address": config.health_check_address,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
