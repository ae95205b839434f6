"""Vendor A adapter - Kakao local search (geocoding) and mobility directions."""

from dataclasses import dataclass
from typing import Any

from backend.app.adapters.gateway import VendorError, VendorGateway
from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.route import CarRoute

ADDRESS_PATH = "/api/kakao/v2/local/search/address.json"
KEYWORD_PATH = "/api/kakao/v2/local/search/keyword.json"
DIRECTIONS_PATH = "/api/kakao/v1/directions"

# Directions result_code for origin/destination within a few meters
_RESULT_TOO_CLOSE = 104


@dataclass(frozen=True)
class GeoDocument:
    """Single geocoding hit."""

    name: str
    coordinate: Coordinate


def _parse_documents(data: dict[str, Any]) -> list[GeoDocument]:
    # Documents carry x=longitude, y=latitude as strings
    documents: list[GeoDocument] = []
    for doc in data.get("documents") or []:
        try:
            lng = float(doc["x"])
            lat = float(doc["y"])
        except (KeyError, TypeError, ValueError):
            continue
        name = doc.get("place_name") or doc.get("address_name") or ""
        documents.append(GeoDocument(name=name, coordinate=Coordinate(lat=lat, lng=lng)))
    return documents


async def search_address(
    gateway: VendorGateway, query: str, path: str = ADDRESS_PATH
) -> list[GeoDocument]:
    """Structured address search."""
    data = await gateway.get_json("kakao.address_search", path, {"query": query})
    return _parse_documents(data)


async def search_keyword(
    gateway: VendorGateway, query: str, path: str = KEYWORD_PATH
) -> list[GeoDocument]:
    """Free-text keyword search."""
    data = await gateway.get_json("kakao.keyword_search", path, {"query": query})
    return _parse_documents(data)


def decode_path(route: dict[str, Any]) -> list[Coordinate]:
    """Flatten per-road ``vertexes`` arrays ([lng, lat, lng, lat, ...]) into coordinates.

    Raises:
        VendorError: A vertex is not a valid coordinate
    """
    path: list[Coordinate] = []
    try:
        for section in route.get("sections") or []:
            for road in section.get("roads") or []:
                vertexes = road.get("vertexes") or []
                for i in range(0, len(vertexes) - 1, 2):
                    path.append(Coordinate(lng=vertexes[i], lat=vertexes[i + 1]))
    except (AttributeError, TypeError, ValueError) as e:
        raise VendorError("kakao.directions", "malformed path") from e
    return path


async def fetch_directions(
    gateway: VendorGateway,
    origin: Coordinate,
    destination: Coordinate,
    mode: TransportMode = TransportMode.car,
    include_path: bool = True,
    path: str = DIRECTIONS_PATH,
) -> CarRoute:
    """Fetch driving directions.

    Args:
        gateway: Vendor gateway
        origin: Start coordinate
        destination: End coordinate
        mode: car or taxi (taxi adds the taxi fare estimate)
        include_path: Decode the road-following polyline
        path: Proxy path

    Returns:
        CarRoute with duration (min), distance (km), fare (KRW) and optional polyline

    Raises:
        VendorError: No routes or a vendor-side result code
    """
    params = {
        "origin": f"{origin.lng},{origin.lat}",
        "destination": f"{destination.lng},{destination.lat}",
        "priority": "RECOMMEND",
    }
    data = await gateway.get_json("kakao.directions", path, params)

    routes = data.get("routes") or []
    if not routes:
        raise VendorError("kakao.directions", "no routes in response")

    route = routes[0]
    result_code = route.get("result_code", 0)
    if result_code == _RESULT_TOO_CLOSE:
        return CarRoute(duration_min=0, distance_km=0.0)
    if result_code != 0:
        raise VendorError(
            "kakao.directions", f"result_code={result_code} {route.get('result_msg', '')}".strip()
        )

    try:
        summary = route["summary"]
        duration_sec = float(summary["duration"])
        distance_m = float(summary["distance"])
        fare_info = summary.get("fare") or {}
        fare = int(fare_info.get("toll") or 0)
        if mode == TransportMode.taxi:
            fare += int(fare_info.get("taxi") or 0)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise VendorError("kakao.directions", "malformed route summary") from e

    return CarRoute(
        duration_min=round(duration_sec / 60),
        distance_km=round(distance_m / 1000, 1),
        fare=fare,
        path=decode_path(route) if include_path else [],
    )
