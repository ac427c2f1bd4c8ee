"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="GTFS_SYNTH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "GTFS Route Synthesis API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level for the service.")

    nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Base URL for the Nominatim place search service.",
    )
    osrm_base_url: Optional[str] = Field(
        default="http://router.project-osrm.org",
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    user_agent: str = Field(
        default="gtfs-synth/1.0",
        description="Identifying User-Agent header sent to the OpenStreetMap services.",
    )
    osrm_profile: Literal["driving", "foot", "bike"] = Field(
        default="driving",
        description="OSRM profile used for motorized transport modes.",
    )
    osrm_geometries: Literal["polyline", "polyline6"] = Field(
        default="polyline6",
        description="Geometry encoding requested from OSRM.",
    )
    max_waypoints: int = Field(default=25, ge=2)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    geo_max_retries: int = Field(default=2, ge=0)
    geo_backoff_seconds: float = Field(default=1.0, ge=0.0)

    # Text generation (Ollama-compatible) advisor
    ollama_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the Ollama text generation service (e.g., http://localhost:11434).",
    )
    ollama_model: str = Field(default="llama3.1:8b")
    ollama_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    advisor_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # Geocoding confidence heuristics
    confidence_base: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence_token_bonus: float = Field(default=0.1, ge=0.0)
    confidence_importance_weight: float = Field(default=0.3, ge=0.0)
    confidence_class_bonus: float = Field(default=0.1, ge=0.0)
    confidence_boundary_penalty: float = Field(default=0.1, ge=0.0)
    confidence_preferred_classes: tuple[str, ...] = Field(
        default=("administrative", "amenity", "building", "highway"),
    )
    ranking_importance_weight: float = Field(default=0.7, ge=0.0)
    ranking_confidence_weight: float = Field(default=0.3, ge=0.0)

    health_check_address: str = Field(
        default="Madrid, España",
        description="Address geocoded by the health check round trip.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("nominatim_base_url", "osrm_base_url", "ollama_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip().rstrip("/")
        return stripped or None

    @field_validator("frontend_allowed_origins", "confidence_preferred_classes", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            # Try comma-separated
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            # Single value
            if value.strip():
                return (value.strip(),)
        # Return empty tuple if value is None or empty
        return tuple()


settings = Settings()
