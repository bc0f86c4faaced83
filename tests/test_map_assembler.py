import httpx
import pytest

from conftest import FakeGeocoder, FakeRouter, make_places
from cityguide.errors import DestinationUnresolvedError, UpstreamUnavailableError
from cityguide.models.trips import TravelMode
from cityguide.services.geocoding import GeocodingClient
from cityguide.services.map_assembler import MapAssembler

PARIS = (48.8566, 2.3522)
TABLE = {
    "Paris": PARIS,
    "Lyon": (45.764, 4.8357),
    "Louvre, Paris": (48.8606, 2.3376),
    "Orsay, Paris": (48.86, 2.3266),
}


def assembler(geocoder, router=None, concurrency=2):
    return MapAssembler(geocoder=geocoder, router=router or FakeRouter(), concurrency=concurrency)


async def test_unresolvable_destination_raises_without_other_lookups():
    geocoder = FakeGeocoder({})
    with pytest.raises(DestinationUnresolvedError):
        await assembler(geocoder).assemble("Atlantis", make_places("Temple"))
    assert geocoder.queries == ["Atlantis"]


async def test_destination_lookup_error_is_unresolved():
    geocoder = FakeGeocoder(TABLE, failing=("Paris",))
    with pytest.raises(DestinationUnresolvedError):
        await assembler(geocoder).assemble("Paris", make_places("Louvre"))


async def test_markers_keep_itinerary_order():
    router = FakeRouter()
    view = await assembler(FakeGeocoder(TABLE), router).assemble(
        "Paris",
        make_places("Louvre", "Orsay"),
        travel_mode=TravelMode.WALK,
        starting_point="Lyon",
    )

    assert [m.kind for m in view.markers] == ["starting_point", "destination", "place", "place"]
    assert view.markers[0].label == "Starting Point: Lyon"
    assert view.markers[1].label == "Destination: Paris"
    assert view.markers[2].label == "Louvre: About Louvre"
    assert view.center == TABLE["Lyon"]
    coordinates, profile = router.calls[0]
    assert coordinates == [TABLE["Lyon"], PARIS, TABLE["Louvre, Paris"], TABLE["Orsay, Paris"]]
    assert profile == "foot-walking"
    assert view.warnings == []


async def test_missing_place_is_skipped_with_warning():
    view = await assembler(FakeGeocoder(TABLE)).assemble("Paris", make_places("Louvre", "Secret Bar", "Orsay"))

    assert [m.label.split(":")[0] for m in view.markers] == ["Destination", "Louvre", "Orsay"]
    assert len(view.warnings) == 1
    assert '"Secret Bar, Paris"' in view.warnings[0]


async def test_place_lookup_error_is_a_warning():
    geocoder = FakeGeocoder(TABLE, failing=("Louvre, Paris",))
    view = await assembler(geocoder).assemble("Paris", make_places("Louvre", "Orsay"))
    assert len(view.markers) == 2
    assert len(view.warnings) == 1


async def test_routing_failure_keeps_markers():
    router = FakeRouter(error=UpstreamUnavailableError("openrouteservice", 502))
    view = await assembler(FakeGeocoder(TABLE), router).assemble("Paris", make_places("Louvre"))
    assert len(view.markers) == 2
    assert view.route == []
    assert view.warnings


async def test_single_point_skips_routing():
    router = FakeRouter()
    view = await assembler(FakeGeocoder(TABLE), router).assemble("Paris", [])
    assert len(view.markers) == 1
    assert view.route == []
    assert router.calls == []


async def test_unconfigured_router_warns():
    router = FakeRouter(configured=False)
    view = await assembler(FakeGeocoder(TABLE), router).assemble("Paris", make_places("Louvre"))
    assert view.route == []
    assert router.calls == []
    assert any("routing is not configured" in warning for warning in view.warnings)


async def test_unexpected_geocoder_payload_becomes_warning():
    def handler(request):
        if request.url.params["q"] == "Paris":
            return httpx.Response(200, json=[{"lat": "48.85", "lon": "2.35"}])
        return httpx.Response(200, json={"error": "Unable to geocode"})

    geocoder = GeocodingClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        base_url="https://nominatim.test",
    )
    view = await assembler(geocoder).assemble("Paris", make_places("Louvre"))

    assert [m.kind for m in view.markers] == ["destination"]
    assert len(view.warnings) == 1
