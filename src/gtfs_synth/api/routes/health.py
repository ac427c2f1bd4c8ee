"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...services.geocoding.nominatim_client import NominatimGeocoder
from ...services.health import check_services
from ..dependencies import get_health_geocoder

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/osm")
def health_osm(geocoder: NominatimGeocoder = Depends(get_health_geocoder)) -> JSONResponse:
    """Geocode a test address and route a short path; 503 when either fails."""
    report = check_services(geocoder=geocoder)
    status_code = status.HTTP_200_OK if report["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=report)
