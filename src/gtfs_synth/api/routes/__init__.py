"""Route group exports."""

from . import health, osm

__all__ = ["health", "osm"]
