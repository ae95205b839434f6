"""Tests for route resolution, dispatch by mode and route caching."""

import httpx
import pytest

from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.route import (
    CarRoute,
    EstimateRoute,
    FailedSide,
    FailureKind,
    NoRoute,
    RouteFailure,
    TransitRoute,
)
from backend.app.routing.geo import haversine_km

STATION = Coordinate(lat=36.3324, lng=127.4343)
EXPO = Coordinate(lat=36.3765, lng=127.3868)


@pytest.mark.asyncio
async def test_car_route_is_cached(routes, vendor, metrics) -> None:
    first = await routes.resolve(STATION, EXPO, TransportMode.car)
    second = await routes.resolve(STATION, EXPO, TransportMode.car)

    assert isinstance(first, CarRoute)
    assert first == second
    assert vendor.count("directions") == 1
    assert metrics.cache_hits["route"] == 1


@pytest.mark.asyncio
async def test_near_duplicate_coordinates_share_cache_entry(routes, vendor) -> None:
    nudged = Coordinate(lat=STATION.lat + 0.0000001, lng=STATION.lng - 0.0000001)

    await routes.resolve(STATION, EXPO, TransportMode.car)
    await routes.resolve(nudged, EXPO, TransportMode.car)

    assert vendor.count("directions") == 1


@pytest.mark.asyncio
async def test_modes_are_cached_separately(routes, vendor) -> None:
    car = await routes.resolve(STATION, EXPO, TransportMode.car)
    taxi = await routes.resolve(STATION, EXPO, TransportMode.taxi)

    assert car.fare == 0
    assert taxi.fare == 11200
    assert vendor.count("directions") == 2


@pytest.mark.asyncio
async def test_direction_matters_for_cache(routes, vendor) -> None:
    await routes.resolve(STATION, EXPO, TransportMode.car)
    await routes.resolve(EXPO, STATION, TransportMode.car)

    assert vendor.count("directions") == 2


@pytest.mark.asyncio
async def test_bus_route_returns_all_options(routes, vendor) -> None:
    result = await routes.resolve(STATION, EXPO, TransportMode.bus)

    assert isinstance(result, TransitRoute)
    assert result.options[0].duration_min == 34
    assert len(result.options) == 2
    assert vendor.calls[0].url.params["SearchPathType"] == "2"


@pytest.mark.asyncio
async def test_zero_itineraries_is_no_route_and_cached(routes, vendor, route_cache) -> None:
    vendor.transit = {"result": {"path": []}}

    first = await routes.resolve(STATION, EXPO, TransportMode.subway)
    second = await routes.resolve(STATION, EXPO, TransportMode.subway)

    assert first == second == NoRoute(mode=TransportMode.subway)
    assert vendor.count("odsay") == 1
    assert len(route_cache) == 1


@pytest.mark.asyncio
async def test_no_route_error_code_is_no_route(routes, vendor) -> None:
    vendor.transit = {"error": [{"code": "-98", "message": "within 700m"}]}

    result = await routes.resolve(STATION, EXPO, TransportMode.bus)

    assert isinstance(result, NoRoute)
    assert result.mode == TransportMode.bus


@pytest.mark.asyncio
@pytest.mark.parametrize(("mode", "speed"), [(TransportMode.walk, 4.0), (TransportMode.bicycle, 15.0)])
async def test_estimated_modes_make_no_vendor_call(
    routes, vendor, route_cache, mode: TransportMode, speed: float
) -> None:
    result = await routes.resolve(STATION, EXPO, mode)

    distance = haversine_km(STATION, EXPO)
    assert isinstance(result, EstimateRoute)
    assert result.is_estimate
    assert result.distance_km == round(distance, 1)
    assert result.duration_min == round(distance / speed * 60)
    assert vendor.calls == []
    assert len(route_cache) == 1


@pytest.mark.asyncio
async def test_vendor_timeout_becomes_failure_and_is_not_cached(routes, vendor, route_cache) -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    vendor.overrides["directions"] = timeout

    result = await routes.resolve(STATION, EXPO, TransportMode.car)

    assert isinstance(result, RouteFailure)
    assert result.failure == FailureKind.vendor_timeout
    assert len(route_cache) == 0

    del vendor.overrides["directions"]
    retried = await routes.resolve(STATION, EXPO, TransportMode.car)
    assert isinstance(retried, CarRoute)


@pytest.mark.asyncio
async def test_vendor_error_code_becomes_failure(routes, vendor, route_cache) -> None:
    vendor.transit = {"error": [{"code": "500", "message": "internal"}]}

    result = await routes.resolve(STATION, EXPO, TransportMode.bus)

    assert isinstance(result, RouteFailure)
    assert result.failure == FailureKind.vendor_error
    assert len(route_cache) == 0


@pytest.mark.asyncio
async def test_resolve_addresses_geocodes_both_sides(routes, vendor) -> None:
    vendor.add_keyword("대전역", "대전역", STATION.lat, STATION.lng)
    vendor.add_keyword("엑스포과학공원", "엑스포과학공원", EXPO.lat, EXPO.lng)

    result = await routes.resolve_addresses("대전역", "엑스포과학공원", TransportMode.car)

    assert isinstance(result, CarRoute)
    assert vendor.calls[-1].url.params["origin"] == "127.4343,36.3324"


@pytest.mark.asyncio
async def test_known_coordinate_skips_geocoding(routes, vendor) -> None:
    vendor.add_keyword("엑스포과학공원", "엑스포과학공원", EXPO.lat, EXPO.lng)

    result = await routes.resolve_addresses(
        "ignored", "엑스포과학공원", TransportMode.walk, origin=STATION
    )

    assert isinstance(result, EstimateRoute)
    assert "ignored" not in vendor.queries("address.json")


@pytest.mark.asyncio
async def test_partial_failure_then_retry_only_failed_side(routes, vendor) -> None:
    vendor.add_keyword("대전역", "대전역", STATION.lat, STATION.lng)

    failure = await routes.resolve_addresses("대전역", "엑스포 공원 (구)", TransportMode.car)

    assert isinstance(failure, RouteFailure)
    assert failure.failure == FailureKind.partial_failure
    assert failure.failed_side == FailedSide.destination
    assert failure.resolved_coordinate == STATION

    vendor.add_keyword("엑스포과학공원", "엑스포과학공원", EXPO.lat, EXPO.lng)
    result = await routes.retry_partial(failure, "엑스포과학공원", TransportMode.car)

    assert isinstance(result, CarRoute)
    assert vendor.queries("keyword.json").count("대전역") == 1


@pytest.mark.asyncio
async def test_partial_failure_on_origin_side(routes, vendor) -> None:
    vendor.add_keyword("엑스포과학공원", "엑스포과학공원", EXPO.lat, EXPO.lng)

    failure = await routes.resolve_addresses("없는출발지", "엑스포과학공원", TransportMode.car)

    assert failure.failure == FailureKind.partial_failure
    assert failure.failed_side == FailedSide.origin
    assert failure.resolved_coordinate == EXPO


@pytest.mark.asyncio
async def test_both_sides_not_found(routes) -> None:
    result = await routes.resolve_addresses("없는곳1", "없는곳2", TransportMode.car)

    assert isinstance(result, RouteFailure)
    assert result.failure == FailureKind.not_found


@pytest.mark.asyncio
async def test_geocoding_vendor_error_is_not_partial(routes, vendor) -> None:
    vendor.add_keyword("대전역", "대전역", STATION.lat, STATION.lng)
    vendor.overrides["address.json"] = lambda request: (
        httpx.Response(503, json={})
        if request.url.params["query"] == "엑스포과학공원"
        else httpx.Response(200, json={"documents": []})
    )

    result = await routes.resolve_addresses("대전역", "엑스포과학공원", TransportMode.car)

    assert isinstance(result, RouteFailure)
    assert result.failure == FailureKind.vendor_error


@pytest.mark.asyncio
async def test_relocate_partial_rejects_other_failures(routes) -> None:
    with pytest.raises(ValueError):
        await routes.relocate_partial(
            RouteFailure(failure=FailureKind.vendor_error, message="x"), "대전역"
        )


@pytest.mark.asyncio
async def test_geocode_not_found(routes) -> None:
    result = await routes.geocode("없는장소")

    assert isinstance(result, RouteFailure)
    assert result.failure == FailureKind.not_found


@pytest.mark.asyncio
async def test_malformed_directions_path_becomes_failure(routes, vendor, route_cache) -> None:
    vendor.directions = {
        "routes": [
            {
                "result_code": 0,
                "summary": {"duration": 600, "distance": 4000, "fare": {"toll": 0}},
                "sections": [{"roads": [{"vertexes": [127.4, 936.3]}]}],
            }
        ]
    }

    result = await routes.resolve(STATION, EXPO, TransportMode.car)

    assert isinstance(result, RouteFailure)
    assert result.failure == FailureKind.vendor_error
    assert len(route_cache) == 0
