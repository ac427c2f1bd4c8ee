"""Route synthesis exports."""

from .service import RouteSynthesizer, mode_for_route_type, route_type_for_mode

__all__ = ["RouteSynthesizer", "mode_for_route_type", "route_type_for_mode"]
