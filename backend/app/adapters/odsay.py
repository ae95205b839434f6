"""Vendor B adapter - ODsay public transit itinerary search."""

from enum import IntEnum
from typing import Any

from backend.app.adapters.gateway import VendorError, VendorGateway
from backend.app.models.common import Coordinate
from backend.app.models.route import LegType, StopPoint, TransitItinerary, TransitLeg

TRANSIT_PATH = "/api/odsay/searchPubTransPathT"

# Error codes meaning "no itinerary for these endpoints" rather than a vendor fault:
# -98 endpoints within 700m, -99 no result, 3/4/5 no stop near origin/destination/both,
# 6 outside service area.
NO_ROUTE_ERROR_CODES = frozenset({"-98", "-99", "3", "4", "5", "6"})

_SUBWAY_DEFAULT_COLOR = "#1a5dc8"

_BUS_COLORS = {
    1: "#52c41a",  # regular
    2: "#1890ff",  # seated
    3: "#52c41a",  # village
    4: "#eb2f96",  # direct seated
    5: "#eb2f96",  # express
    6: "#52c41a",  # branch
    7: "#1890ff",  # trunk
}


class PathType(IntEnum):
    """SearchPathType filter."""

    all = 0
    subway = 1
    bus = 2


def bus_color(bus_type: int | None) -> str:
    """Display color for an ODsay bus type."""
    return _BUS_COLORS.get(bus_type or 0, "#52c41a")


def _error_code(error: Any) -> tuple[str, str]:
    # Envelope is either a list of {code, message} or a single {code, msg}
    if isinstance(error, list):
        first = error[0] if error else {}
        return str(first.get("code", "")), str(first.get("message", ""))
    if isinstance(error, dict):
        return str(error.get("code", "")), str(error.get("msg") or error.get("message") or "")
    return "", str(error)


def _coordinate(x: Any, y: Any) -> Coordinate | None:
    try:
        return Coordinate(lng=float(x), lat=float(y))
    except (TypeError, ValueError):
        return None


def _stops(sub: dict[str, Any]) -> list[StopPoint]:
    stations = (sub.get("passStopList") or {}).get("stations") or []
    stops: list[StopPoint] = []
    for station in stations:
        coordinate = _coordinate(station.get("x"), station.get("y"))
        if coordinate is not None:
            stops.append(StopPoint(name=station.get("stationName", ""), coordinate=coordinate))
    return stops


def parse_leg(sub: dict[str, Any]) -> TransitLeg | None:
    """Convert one ``subPath`` entry into a TransitLeg (None for unknown types)."""
    traffic_type = sub.get("trafficType")
    common: dict[str, Any] = {
        "duration_min": int(sub.get("sectionTime") or 0),
        "distance_m": int(sub.get("distance") or 0),
        "start": _coordinate(sub.get("startX"), sub.get("startY")),
        "end": _coordinate(sub.get("endX"), sub.get("endY")),
    }
    lane = (sub.get("lane") or [{}])[0]

    if traffic_type == 1:
        return TransitLeg(
            type=LegType.subway,
            line_name=lane.get("name") or "subway",
            line_color=lane.get("subwayColor") or _SUBWAY_DEFAULT_COLOR,
            start_name=sub.get("startName"),
            end_name=sub.get("endName"),
            stop_count=sub.get("stationCount"),
            stops=_stops(sub),
            **common,
        )
    if traffic_type == 2:
        bus_type = lane.get("type")
        return TransitLeg(
            type=LegType.bus,
            line_name=str(lane.get("busNo") or "bus"),
            line_color=bus_color(bus_type),
            bus_type=bus_type,
            start_name=sub.get("startName"),
            end_name=sub.get("endName"),
            stop_count=sub.get("stationCount"),
            stops=_stops(sub),
            **common,
        )
    if traffic_type == 3:
        return TransitLeg(type=LegType.walk, **common)
    return None


def parse_itinerary(path: dict[str, Any]) -> TransitItinerary:
    """Convert one ``result.path`` entry into a TransitItinerary."""
    info = path.get("info") or {}
    legs = [leg for leg in (parse_leg(sub) for sub in path.get("subPath") or []) if leg]
    return TransitItinerary(
        duration_min=int(info.get("totalTime") or 0),
        distance_km=round(float(info.get("totalDistance") or 0) / 1000, 1),
        fare=int(info.get("payment") or 0),
        bus_transit_count=int(info.get("busTransitCount") or 0),
        subway_transit_count=int(info.get("subwayTransitCount") or 0),
        legs=legs,
    )


async def search_transit(
    gateway: VendorGateway,
    origin: Coordinate,
    destination: Coordinate,
    path_type: PathType = PathType.all,
    path: str = TRANSIT_PATH,
) -> list[TransitItinerary]:
    """Search transit itineraries, vendor-ranked best first.

    Returns:
        Itinerary options; empty when the vendor has no itinerary for the endpoints

    Raises:
        VendorError: Error envelope with a code not meaning "no route", or malformed body
    """
    params = {
        "SX": origin.lng,
        "SY": origin.lat,
        "EX": destination.lng,
        "EY": destination.lat,
        "OPT": 0,
        "SearchType": 0,
        "SearchPathType": int(path_type),
        "output": "json",
    }
    data = await gateway.get_json("odsay.searchPubTransPathT", path, params)

    if "error" in data:
        code, message = _error_code(data["error"])
        if code in NO_ROUTE_ERROR_CODES:
            return []
        raise VendorError("odsay.searchPubTransPathT", f"code={code} {message}".strip())

    paths = (data.get("result") or {}).get("path") or []
    try:
        return [parse_itinerary(p) for p in paths]
    except (TypeError, ValueError) as e:
        raise VendorError("odsay.searchPubTransPathT", "malformed itinerary") from e
