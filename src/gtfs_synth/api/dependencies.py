"""Service factories injected into the API routes."""

from __future__ import annotations

from ..config import settings
from ..services.geocoding.nominatim_client import NominatimGeocoder
from ..services.routing.path_engine import PathEngine
from ..services.synthesis import RouteSynthesizer


def get_geocoder() -> NominatimGeocoder:
    return NominatimGeocoder(settings)


def get_health_geocoder() -> NominatimGeocoder:
    # Health checks make a single attempt
    return NominatimGeocoder(settings, max_retries=0)


def get_path_engine() -> PathEngine:
    return PathEngine(settings)


def get_synthesizer() -> RouteSynthesizer:
    return RouteSynthesizer(settings, geocoder=get_geocoder(), path_engine=get_path_engine())
