"""Tests for the coordinate resolver cascade and cache."""

import httpx
import pytest

from backend.app.adapters.gateway import VendorError, VendorTimeoutError
from backend.app.adapters.kakao import GeoDocument
from backend.app.models.common import Coordinate
from backend.app.routing.coordinates import ScoringWeights, score_document
from backend.app.routing.geo import Region

IN_REGION = Coordinate(lat=36.3277, lng=127.4273)
SEOUL = Coordinate(lat=37.5112, lng=127.0981)


@pytest.mark.asyncio
async def test_address_hit_is_cached(coordinates, vendor, metrics, coordinate_cache) -> None:
    vendor.add_address("대전 중구 대종로 480", "대전 중구 대종로 480", 36.3277, 127.4273)

    first = await coordinates.resolve("대전 중구 대종로 480")
    second = await coordinates.resolve("대전 중구 대종로 480")

    assert first == second == IN_REGION
    assert len(vendor.calls) == 1
    assert metrics.cache_hits["coordinate"] == 1
    assert await coordinate_cache.get("대전 중구 대종로 480") == IN_REGION


@pytest.mark.asyncio
async def test_query_is_normalized_before_lookup_and_caching(coordinates, vendor) -> None:
    vendor.add_address("대전 엑스포로 85", "대전 유성구 엑스포로 85", 36.3765, 127.3868)

    result = await coordinates.resolve("대전  엑스포로85")
    again = await coordinates.resolve("대전 엑스포로 85")

    assert result == again == Coordinate(lat=36.3765, lng=127.3868)
    assert vendor.queries("address.json") == ["대전 엑스포로 85"]


@pytest.mark.asyncio
async def test_out_of_region_address_falls_through_to_keyword(coordinates, vendor) -> None:
    vendor.add_address("중앙로 1", "서울 중앙로 1", 37.5112, 127.0981)
    vendor.add_keyword("중앙로 1", "대전 중구 중앙로 1", 36.3277, 127.4273)

    assert await coordinates.resolve("중앙로 1") == IN_REGION


@pytest.mark.asyncio
async def test_keyword_results_are_ranked(coordinates, vendor) -> None:
    vendor.add_keyword("성심당", "성심당 케익부띠끄 본점", 36.3280, 127.4280)
    vendor.add_keyword("성심당", "성심당", 36.3277, 127.4273)

    assert await coordinates.resolve("성심당") == IN_REGION


@pytest.mark.asyncio
async def test_parentheses_are_stripped_on_retry(coordinates, vendor) -> None:
    vendor.add_keyword("한밭수목원", "한밭수목원", 36.3671, 127.3885)

    result = await coordinates.resolve("한밭수목원 (동원)")

    assert result == Coordinate(lat=36.3671, lng=127.3885)
    assert vendor.queries("address.json") == ["한밭수목원 (동원)", "한밭수목원"]


@pytest.mark.asyncio
async def test_region_token_is_prepended_on_retry(coordinates, vendor) -> None:
    vendor.add_keyword("대전 으능정이거리", "으능정이 문화의거리", 36.3290, 127.4270)

    result = await coordinates.resolve("으능정이거리")

    assert result == Coordinate(lat=36.3290, lng=127.4270)
    assert vendor.queries("keyword.json") == ["으능정이거리", "대전 으능정이거리"]


def test_query_variants_order(coordinates) -> None:
    assert coordinates.query_variants("한밭수목원 (동원)") == [
        "한밭수목원 (동원)",
        "한밭수목원",
        "대전 한밭수목원",
    ]
    assert coordinates.query_variants("대전역") == ["대전역"]


@pytest.mark.asyncio
async def test_out_of_region_match_is_degraded_but_cached(coordinates, vendor) -> None:
    vendor.add_keyword("롯데월드", "롯데월드", 37.5112, 127.0981)
    vendor.add_keyword("대전 롯데월드", "롯데월드", 37.5112, 127.0981)

    first = await coordinates.resolve("롯데월드")
    calls_after_first = len(vendor.calls)
    second = await coordinates.resolve("롯데월드")

    assert first == second == SEOUL
    assert len(vendor.calls) == calls_after_first


@pytest.mark.asyncio
async def test_not_found_is_not_cached(coordinates, vendor, coordinate_cache) -> None:
    assert await coordinates.resolve("없는장소") is None
    assert len(vendor.calls) == 4  # address + keyword for two variants

    assert await coordinates.resolve("없는장소") is None
    assert len(vendor.calls) == 8
    assert len(coordinate_cache) == 0


@pytest.mark.asyncio
async def test_blank_query_resolves_to_none_without_calls(coordinates, vendor) -> None:
    assert await coordinates.resolve("   ") is None
    assert vendor.calls == []


@pytest.mark.asyncio
async def test_vendor_error_propagates_and_is_not_cached(
    coordinates, vendor, coordinate_cache
) -> None:
    vendor.overrides["keyword.json"] = lambda request: httpx.Response(500, json={})

    with pytest.raises(VendorError):
        await coordinates.resolve("성심당")

    assert len(coordinate_cache) == 0


@pytest.mark.asyncio
async def test_vendor_timeout_propagates(coordinates, vendor) -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    vendor.overrides["address.json"] = timeout

    with pytest.raises(VendorTimeoutError):
        await coordinates.resolve("성심당")


def test_score_document_prefers_exact_in_region_match() -> None:
    region = Region(min_lat=36.18, max_lat=36.50, min_lng=127.24, max_lng=127.56, token="대전")
    weights = ScoringWeights()

    def score(name: str, coordinate: Coordinate) -> float:
        return score_document(GeoDocument(name=name, coordinate=coordinate), "성심당", region, weights)

    exact = score("성심당", IN_REGION)
    prefix = score("성심당 케익부띠끄", IN_REGION)
    far_exact = score("성심당", SEOUL)
    unrelated = score("대전역", IN_REGION)

    assert exact > prefix > far_exact > unrelated
