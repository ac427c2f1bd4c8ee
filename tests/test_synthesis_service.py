import threading
import time

import httpx
import pytest

from conftest import FakeAdvisor, FakeGeocoder, StubPathEngine
from gtfs_synth.config import Settings
from gtfs_synth.errors import (
    Cancelled,
    GeocodingFailed,
    InvalidInput,
    NoRouteFound,
    PathComputationFailed,
    UpstreamError,
)
from gtfs_synth.models.domain import ExistingRoute, ExistingStop, RouteRequest
from gtfs_synth.schemas.advice import ScheduleAnalysis, StopPlacement
from gtfs_synth.services.advisor import AdviceOk, AdviceUnavailable, PromptKind
from gtfs_synth.services.geocoding.nominatim_client import NominatimGeocoder
from gtfs_synth.services.synthesis import RouteSynthesizer, mode_for_route_type, route_type_for_mode

LIVE_SCHEDULE = ScheduleAnalysis.model_validate(
    {
        "optimalTrips": {"totalTrips": 40, "peakHourTrips": 12, "offPeakTrips": 28},
        "schedule": {
            "peakHours": {"start": "07:00", "end": "09:00", "frequency": 10},
            "offPeakHours": {"start": "09:00", "end": "22:00", "frequency": 20},
        },
        "recommendations": ["Run short turns at rush hour"],
    }
)

LIVE_STOPS = StopPlacement.model_validate(
    {
        "optimizedStops": [
            {"stop_id": "gandia", "stop_name": "Gandía", "stop_lat": 38.968, "stop_lon": -0.184, "stop_sequence": 3},
            {"stop_id": "valencia", "stop_name": "València", "stop_lat": 39.4699, "stop_lon": -0.3763, "stop_sequence": 1},
            {"stop_id": "sueca", "stop_name": "Sueca", "stop_lat": 39.2026, "stop_lon": -0.311, "stop_sequence": 2},
        ],
        "routeSegments": [{"from_stop": "valencia", "to_stop": "sueca", "demand_level": "high"}],
        "recommendations": ["Add a stop at the hospital"],
    }
)


def _synthesizer(geocoder=None, path_engine=None, advisor=None) -> RouteSynthesizer:
    return RouteSynthesizer(
        Settings(),
        geocoder=geocoder or FakeGeocoder(),
        path_engine=path_engine or StubPathEngine(),
        advisor=advisor or FakeAdvisor(),
        poll_interval=0.01,
    )


def _request(**overrides) -> RouteRequest:
    values = {"origin": "Valencia, España", "destination": "Gandía, España"}
    values.update(overrides)
    return RouteRequest(**values)


def test_fallback_schedule_and_stops_when_advice_unavailable():
    artifact = _synthesizer().synthesize(_request(frequency_minutes=30, route_id="R-VLC"))

    trips = artifact.analysis["optimalTrips"]
    assert trips["totalTrips"] == 32
    assert trips["peakHourTrips"] == 48
    assert trips["offPeakTrips"] == 24
    assert artifact.analysis["schedule"]["offPeakHours"]["frequency"] == 30

    provenance = artifact.provenance
    assert provenance.used_fallback("schedule_analysis")
    assert provenance.used_fallback("stop_optimization")
    assert "not configured" in provenance.fallback_reasons["schedule_analysis"]
    assert [stop.stop_id for stop in artifact.stops] == ["stop_1", "stop_2"]
    assert [stop.stop_name for stop in artifact.stops] == ["Valencia", "Gandía"]
    assert artifact.shapes[0].shape_id == "shape_R-VLC"


def test_valencia_to_gandia_through_intermediate_stops():
    engine = StubPathEngine()
    request = _request(intermediate_stops=["Sueca, España", "Cullera, España"], transport_mode="bus")
    artifact = _synthesizer(path_engine=engine).synthesize(request)

    assert len(artifact.shapes) >= 4
    assert artifact.path.distance_meters > 0
    assert len(artifact.stops) == 4
    assert artifact.route.route_type == 3
    assert artifact.route.route_long_name == "Valencia, España → Gandía, España"
    assert artifact.route.route_id.startswith("route_")
    assert artifact.provenance.extras["waypoint_count"] == 4
    assert artifact.provenance.extras["osm_data_used"] is True
    assert artifact.provenance.map_overlays["routes"][0]["geometry"]["type"] == "LineString"

    distances = [point.cumulative_distance_meters for point in artifact.shapes]
    assert distances == sorted(distances)
    assert [point.sequence for point in artifact.shapes] == list(range(1, len(artifact.shapes) + 1))

    waypoints, profile = engine.calls[0]
    assert len(waypoints) == 4
    assert profile == "driving"


def test_destination_not_found_aborts_before_routing():
    geocoder = FakeGeocoder({"Valencia, España": (39.4699, -0.3763)})
    engine = StubPathEngine()

    with pytest.raises(GeocodingFailed) as excinfo:
        _synthesizer(geocoder=geocoder, path_engine=engine).synthesize(_request(destination="Atlantis"))

    assert excinfo.value.role == "destination"
    assert excinfo.value.address == "Atlantis"
    assert excinfo.value.stage == "geocoding"
    assert engine.calls == []


def test_unknown_intermediate_stop_names_its_position():
    request = _request(intermediate_stops=["Sueca, España", "Nowhere"])

    with pytest.raises(GeocodingFailed) as excinfo:
        _synthesizer().synthesize(request)

    assert excinfo.value.role == "intermediate stop 2"


def test_live_advice_is_used():
    advisor = FakeAdvisor(
        {
            PromptKind.SCHEDULE_ANALYSIS: AdviceOk(LIVE_SCHEDULE),
            PromptKind.STOP_OPTIMIZATION: AdviceOk(LIVE_STOPS),
        }
    )
    artifact = _synthesizer(advisor=advisor).synthesize(_request(intermediate_stops=["Sueca, España"]))

    assert artifact.provenance.stages["schedule_analysis"] == "live"
    assert artifact.provenance.stages["stop_optimization"] == "live"
    assert artifact.provenance.fallback_reasons == {}
    assert artifact.analysis["optimalTrips"]["totalTrips"] == 40
    assert [stop.stop_id for stop in artifact.stops] == ["valencia", "sueca", "gandia"]
    assert artifact.provenance.route_segments == [{"from_stop": "valencia", "to_stop": "sueca", "demand_level": "high"}]
    assert "Add a stop at the hospital" in artifact.provenance.recommendations
    assert "Run short turns at rush hour" in artifact.provenance.recommendations
    assert {kind for kind, _ in advisor.calls} == {PromptKind.SCHEDULE_ANALYSIS, PromptKind.STOP_OPTIMIZATION}


def test_one_advice_failing_does_not_affect_the_other():
    advisor = FakeAdvisor(
        {
            PromptKind.SCHEDULE_ANALYSIS: AdviceOk(LIVE_SCHEDULE),
            PromptKind.STOP_OPTIMIZATION: AdviceUnavailable("model returned prose"),
        }
    )
    artifact = _synthesizer(advisor=advisor).synthesize(_request())

    assert artifact.provenance.stages["schedule_analysis"] == "live"
    assert artifact.provenance.stages["stop_optimization"] == "fallback"
    assert artifact.provenance.fallback_reasons == {"stop_optimization": "model returned prose"}


def test_advisor_exception_falls_back(raising_advisor):
    artifact = _synthesizer(advisor=raising_advisor).synthesize(_request())

    assert artifact.provenance.used_fallback("schedule_analysis")
    assert artifact.provenance.used_fallback("stop_optimization")
    assert "connection refused" in artifact.provenance.fallback_reasons["schedule_analysis"]


def test_unexpected_advisor_error_falls_back():
    artifact = _synthesizer(advisor=FakeAdvisor(error=RuntimeError("boom"))).synthesize(_request())

    assert artifact.provenance.used_fallback("stop_optimization")
    assert len(artifact.stops) == 2


def test_no_route_is_path_computation_failure():
    engine = StubPathEngine(error=NoRouteFound("Impossible route"))

    with pytest.raises(PathComputationFailed) as excinfo:
        _synthesizer(path_engine=engine).synthesize(_request(route_id="R9"))

    assert isinstance(excinfo.value.__cause__, NoRouteFound)
    assert excinfo.value.identifier == "R9"
    assert excinfo.value.stage == "routing"


def test_routing_outage_is_path_computation_failure():
    engine = StubPathEngine(error=UpstreamError("connection refused"))

    with pytest.raises(PathComputationFailed):
        _synthesizer(path_engine=engine).synthesize(_request())


def test_cancelled_before_start_does_no_work():
    geocoder = FakeGeocoder()
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(Cancelled):
        _synthesizer(geocoder=geocoder).synthesize(_request(), cancel_event=cancel)

    assert geocoder.calls == []


def test_cancelled_while_waiting_for_advice():
    cancel = threading.Event()
    release = threading.Event()

    class CancellingAdvisor(FakeAdvisor):
        def advise(self, context, kind):
            cancel.set()
            release.wait(timeout=5)
            return AdviceUnavailable("too late")

    try:
        with pytest.raises(Cancelled):
            _synthesizer(advisor=CancellingAdvisor()).synthesize(_request(), cancel_event=cancel)
    finally:
        release.set()


def test_intermediate_stops_can_be_ordered_by_distance():
    engine = StubPathEngine()
    request = _request(intermediate_stops=["Cullera, España", "Sueca, España"], optimize_waypoint_order=True)
    artifact = _synthesizer(path_engine=engine).synthesize(request)

    assert [waypoint.display_name for waypoint in artifact.waypoints] == ["Valencia", "Sueca", "Cullera", "Gandía"]


def test_intermediate_stops_keep_given_order_by_default():
    request = _request(intermediate_stops=["Cullera, España", "Sueca, España"])
    artifact = _synthesizer().synthesize(request)

    assert [waypoint.display_name for waypoint in artifact.waypoints] == ["Valencia", "Cullera", "Sueca", "Gandía"]


def test_walking_routes_use_foot_profile():
    engine = StubPathEngine()
    artifact = _synthesizer(path_engine=engine).synthesize(_request(transport_mode="walking"))

    assert engine.calls[0][1] == "foot"
    assert artifact.provenance.extras["routing_profile"] == "foot"


@pytest.mark.parametrize(
    ("mode", "route_type"),
    [("bus", 3), ("tram", 0), ("subway", 1), ("ferry", 4), ("BUS", 3), ("hovercraft", 3), (None, 3)],
)
def test_route_type_for_mode(mode, route_type):
    assert route_type_for_mode(mode) == route_type


def test_mode_for_route_type():
    assert mode_for_route_type(0) == "tram"
    assert mode_for_route_type(99) == "bus"


def _existing_route(**overrides) -> ExistingRoute:
    values = {
        "route_id": "L1",
        "route_type": 0,
        "stops": [
            ExistingStop("a", "Alameda", 39.4740, -0.3610),
            ExistingStop("b", "Colón", 39.4700, -0.3720),
            ExistingStop("c", "Xàtiva", 39.4670, -0.3770),
        ],
        "metadata": {"agency": "Metrovalencia"},
    }
    values.update(overrides)
    return ExistingRoute(**values)


def test_improve_existing_route_rebuilds_shape():
    engine = StubPathEngine()
    advisor = FakeAdvisor()
    artifact = _synthesizer(path_engine=engine, advisor=advisor).improve_existing_route(_existing_route())

    assert [stop.stop_sequence for stop in artifact.stops] == [1, 2, 3]
    assert len(artifact.shapes) == 5
    assert artifact.shapes[0].shape_id == "shape_L1"
    assert artifact.route.route_type == 0
    assert artifact.route.route_long_name == "Alameda → Xàtiva"
    assert artifact.provenance.stages["routing"] == "ok"
    assert artifact.provenance.stages["schedule_analysis"] == "skipped"
    assert artifact.provenance.extras["improved_with_osm"] is True
    assert artifact.provenance.extras["agency"] == "Metrovalencia"
    assert advisor.calls == []


def test_improve_existing_route_needs_two_stops():
    route = _existing_route(stops=[ExistingStop("a", "Alameda", 39.4740, -0.3610)])

    with pytest.raises(PathComputationFailed):
        _synthesizer().improve_existing_route(route)


def test_validate_route_reports_drivable_route():
    result = _synthesizer().validate_route(_existing_route())

    assert result.is_valid is True
    assert result.distance > 0
    assert len(result.coordinates) == 5


def test_validate_route_never_raises():
    engine = StubPathEngine(error=UpstreamError("connection refused"))

    result = _synthesizer(path_engine=engine).validate_route(_existing_route())

    assert result.is_valid is False
    assert "connection refused" in result.message


def test_validate_route_with_bad_coordinates_is_invalid():
    route = _existing_route(stops=[ExistingStop("a", "Nowhere", 120.0, 0.0), ExistingStop("b", "Colón", 39.47, -0.372)])

    assert _synthesizer().validate_route(route).is_valid is False


@pytest.mark.parametrize("frequency", [0, -5])
def test_request_rejects_non_positive_frequency(frequency: int):
    with pytest.raises(InvalidInput):
        _request(frequency_minutes=frequency)


def test_geocoding_failure_after_cancellation_is_cancelled():
    cancel = threading.Event()

    class CancelledLookup(FakeGeocoder):
        def resolve(self, address, *, cancel_event=None):
            cancel.set()
            raise UpstreamError("connection reset")

    with pytest.raises(Cancelled) as excinfo:
        _synthesizer(geocoder=CancelledLookup()).synthesize(_request(), cancel_event=cancel)

    assert isinstance(excinfo.value.__cause__, UpstreamError)


def test_routing_failure_after_cancellation_is_cancelled():
    cancel = threading.Event()

    class CancelledRouter(StubPathEngine):
        def compute_path(self, waypoints, profile=None, *, cancel_event=None):
            cancel.set()
            raise UpstreamError("connection reset")

    with pytest.raises(Cancelled):
        _synthesizer(path_engine=CancelledRouter()).synthesize(_request(), cancel_event=cancel)


def test_cancellation_interrupts_geocoding_backoff():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    geocoder = NominatimGeocoder(
        Settings(nominatim_base_url="http://nominatim.test", geo_max_retries=2, geo_backoff_seconds=0.5),
        transport=httpx.MockTransport(handler),
    )
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(Cancelled):
            _synthesizer(geocoder=geocoder).synthesize(_request(), cancel_event=cancel)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 0.45
