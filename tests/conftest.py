"""Shared fakes for the synthesis and API tests."""

from __future__ import annotations

import threading

import pytest

from gtfs_synth.config import Settings
from gtfs_synth.errors import AdviceUnavailableError, NotFound
from gtfs_synth.models.domain import Coordinate, GeocodeCandidate, PathResult
from gtfs_synth.services.advisor import AdviceUnavailable, PromptKind
from gtfs_synth.services.routing.path_engine import PathEngine

PLACES = {
    "Valencia, España": (39.4699, -0.3763),
    "Gandía, España": (38.9680, -0.1840),
    "Sueca, España": (39.2026, -0.3110),
    "Cullera, España": (39.1650, -0.2530),
    "Madrid, España": (40.4168, -3.7038),
}


class FakeGeocoder:
    def __init__(self, places: dict[str, tuple[float, float]] | None = None):
        self.places = PLACES if places is None else places
        self.calls: list[str] = []

    def resolve(self, address: str, *, cancel_event=None) -> GeocodeCandidate:
        self.calls.append(address)
        if address not in self.places:
            raise NotFound(f"No results found for '{address}'.")
        lat, lon = self.places[address]
        return GeocodeCandidate(
            coordinate=Coordinate(lat, lon),
            display_name=address.split(",")[0],
            importance=0.7,
            confidence=0.8,
        )

    def check_health(self, address: str | None = None) -> bool:
        return True


class StubPathEngine(PathEngine):
    """Straight-line router: inserts the midpoint of every leg."""

    def __init__(self, error: Exception | None = None, **kwargs):
        super().__init__(Settings(), client=object(), **kwargs)
        self.error = error
        self.calls: list[tuple[list[Coordinate], str | None]] = []

    def compute_path(self, waypoints, profile=None, *, cancel_event=None) -> PathResult:
        self.calls.append((list(waypoints), profile))
        if self.error is not None:
            raise self.error
        if len(waypoints) < 2:
            return super().compute_path(waypoints, profile)
        coordinates = [waypoints[0]]
        distance = 0.0
        for start, end in zip(waypoints, waypoints[1:]):
            middle = Coordinate((start.latitude + end.latitude) / 2, (start.longitude + end.longitude) / 2)
            coordinates.extend([middle, end])
            distance += self.great_circle_distance(start, end, "meters")
        return PathResult(
            distance_meters=distance,
            duration_seconds=None,
            coordinates=tuple(coordinates),
            legs=tuple({"distance": 0.0} for _ in waypoints[1:]),
        )


class FakeAdvisor:
    """Returns canned advice per prompt kind; a missing entry is unavailable."""

    def __init__(self, responses: dict | None = None, *, error: Exception | None = None, block: threading.Event | None = None):
        self.responses = responses or {}
        self.error = error
        self.block = block
        self.calls: list[tuple[PromptKind, dict]] = []
        self._lock = threading.Lock()

    def advise(self, context: dict, kind: PromptKind):
        with self._lock:
            self.calls.append((kind, context))
        if self.block is not None:
            self.block.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.responses.get(kind, AdviceUnavailable("Text generation service is not configured."))


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def path_engine() -> StubPathEngine:
    return StubPathEngine()


@pytest.fixture
def advisor() -> FakeAdvisor:
    return FakeAdvisor()


@pytest.fixture
def raising_advisor() -> FakeAdvisor:
    return FakeAdvisor(error=AdviceUnavailableError("connection refused"))
