"""Error taxonomy shared by the geocoding, routing and synthesis services."""

from __future__ import annotations


class RouteSynthesisError(Exception):
    """Base class for every error raised by the route synthesis core."""


class InvalidInput(RouteSynthesisError, ValueError):
    """Malformed caller data such as out-of-range coordinates."""


class InsufficientWaypoints(InvalidInput):
    pass


class WaypointLimitExceeded(InvalidInput):
    pass


class EmptyInput(InvalidInput):
    pass


class NotFound(RouteSynthesisError, LookupError):
    """The upstream service answered but had no result."""


class UpstreamError(RouteSynthesisError, ConnectionError):
    """Network failure, timeout or 5xx answer from an external service."""


class NoRouteFound(RouteSynthesisError):
    """The routing service explicitly found no path between the waypoints."""


class AdviceUnavailableError(RouteSynthesisError):
    """Advisory text was missing, unparseable or the text service failed."""


class Cancelled(RouteSynthesisError):
    """The caller cancelled the synthesis before it completed."""


class StageFailed(RouteSynthesisError):
    """A fatal pipeline stage failed; the synthesis was aborted."""

    stage = "synthesis"

    def __init__(self, message: str, *, identifier: str | None = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class GeocodingFailed(StageFailed):
    stage = "geocoding"

    def __init__(self, address: str, reason: str, *, role: str | None = None) -> None:
        label = f"{role} '{address}'" if role else f"'{address}'"
        super().__init__(f"Geocoding failed for {label}: {reason}", identifier=address)
        self.address = address
        self.role = role


class PathComputationFailed(StageFailed):
    stage = "routing"


class ShapeGenerationFailed(StageFailed):
    stage = "shapes"
