"""Route resolver - travel legs between two coordinates for one transport mode.

Dispatch:
- car / taxi: vendor A directions (with road polyline)
- bus / subway: vendor B single-mode itinerary search; zero itineraries -> NoRoute
- walk / bicycle: haversine estimate at a fixed speed, no vendor call

Every outcome except RouteFailure is written to the route cache, including
NoRoute, so unreachable pairs are not re-queried. Vendor exceptions stop here
and become RouteFailure values.
"""

import asyncio
import logging

from backend.app.adapters import kakao, odsay
from backend.app.adapters.gateway import VendorError, VendorGateway, VendorTimeoutError
from backend.app.config import Settings, get_settings
from backend.app.db.repositories import RouteCacheStore
from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.route import (
    CarRoute,
    EstimateRoute,
    FailedSide,
    FailureKind,
    NoRoute,
    RouteCacheEntry,
    RouteFailure,
    RouteResult,
    TransitRoute,
)
from backend.app.routing.coordinates import CoordinateResolver
from backend.app.routing.geo import coordinate_key, haversine_km

logger = logging.getLogger(__name__)

_PATH_TYPES = {
    TransportMode.bus: odsay.PathType.bus,
    TransportMode.subway: odsay.PathType.subway,
}


def failure_from_exception(exc: Exception) -> RouteFailure:
    """Convert a vendor exception into a RouteFailure value."""
    if isinstance(exc, VendorTimeoutError):
        return RouteFailure(failure=FailureKind.vendor_timeout, message=str(exc))
    return RouteFailure(failure=FailureKind.vendor_error, message=str(exc))


class RouteResolver:
    """Resolves (origin, destination, mode) into a RouteResult with caching."""

    def __init__(
        self,
        gateway: VendorGateway,
        cache: RouteCacheStore,
        coordinates: CoordinateResolver,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._gateway = gateway
        self._cache = cache
        self._coordinates = coordinates
        self._precision = settings.route_cache_precision
        self._speeds = {
            TransportMode.walk: settings.walk_speed_kmh,
            TransportMode.bicycle: settings.bicycle_speed_kmh,
        }
        self._directions_path = settings.kakao_directions_path
        self._transit_path = settings.odsay_transit_path

    @property
    def coordinates(self) -> CoordinateResolver:
        return self._coordinates

    async def resolve(
        self, origin: Coordinate, destination: Coordinate, mode: TransportMode
    ) -> RouteResult:
        """Resolve a route between two coordinates.

        Returns:
            CarRoute | TransitRoute | EstimateRoute | NoRoute | RouteFailure
        """
        origin_key = coordinate_key(origin, self._precision)
        destination_key = coordinate_key(destination, self._precision)

        cached = await self._cache.get(origin_key, destination_key, mode)
        if cached is not None:
            self._gateway.record_cache_hit("route")
            return cached.result

        try:
            result = await self._dispatch(origin, destination, mode)
        except (VendorTimeoutError, VendorError) as e:
            logger.warning(
                "Route lookup failed",
                extra={"structured": {"mode": mode.value, "error": str(e)}},
            )
            return failure_from_exception(e)

        await self._cache.put(
            RouteCacheEntry(
                origin_key=origin_key,
                destination_key=destination_key,
                mode=mode,
                result=result,
            )
        )
        return result

    async def _dispatch(
        self, origin: Coordinate, destination: Coordinate, mode: TransportMode
    ) -> CarRoute | TransitRoute | EstimateRoute | NoRoute:
        if mode.is_estimated:
            return self.estimate(origin, destination, mode)

        if mode.is_transit:
            options = await odsay.search_transit(
                self._gateway, origin, destination, _PATH_TYPES[mode], path=self._transit_path
            )
            if not options:
                return NoRoute(mode=mode)
            return TransitRoute(options=options)

        # car and taxi
        return await kakao.fetch_directions(
            self._gateway, origin, destination, mode=mode, path=self._directions_path
        )

    def estimate(
        self, origin: Coordinate, destination: Coordinate, mode: TransportMode
    ) -> EstimateRoute:
        """Great-circle estimate for walk/bicycle."""
        distance_km = haversine_km(origin, destination)
        speed_kmh = self._speeds[mode]
        return EstimateRoute(
            duration_min=round(distance_km / speed_kmh * 60),
            distance_km=round(distance_km, 1),
        )

    async def geocode(self, query: str) -> Coordinate | RouteFailure:
        """Geocode one endpoint, converting failures into RouteFailure values."""
        try:
            coordinate = await self._coordinates.resolve(query)
        except (VendorTimeoutError, VendorError) as e:
            return failure_from_exception(e)
        if coordinate is None:
            return RouteFailure(failure=FailureKind.not_found, message=f"not found: {query}")
        return coordinate

    async def locate_pair(
        self,
        origin_query: str | None,
        destination_query: str | None,
        *,
        origin: Coordinate | None = None,
        destination: Coordinate | None = None,
    ) -> tuple[Coordinate, Coordinate] | RouteFailure:
        """Geocode whichever endpoints lack a coordinate.

        When exactly one side fails to geocode the result is a partial failure
        naming that side and carrying the other side's coordinate, so the caller
        can retry only the failed side (see ``relocate_partial``).
        """
        lookups = []
        if origin is None:
            lookups.append(self.geocode(origin_query or ""))
        if destination is None:
            lookups.append(self.geocode(destination_query or ""))
        results = list(await asyncio.gather(*lookups))

        origin_result = origin if origin is not None else results.pop(0)
        destination_result = destination if destination is not None else results.pop(0)

        for side in (origin_result, destination_result):
            if isinstance(side, RouteFailure) and side.failure != FailureKind.not_found:
                return side

        if isinstance(origin_result, RouteFailure):
            if isinstance(destination_result, RouteFailure):
                return RouteFailure(
                    failure=FailureKind.not_found,
                    message="neither endpoint could be geocoded",
                )
            return RouteFailure(
                failure=FailureKind.partial_failure,
                message=f"origin not found: {origin_query}",
                failed_side=FailedSide.origin,
                resolved_coordinate=destination_result,
            )
        if isinstance(destination_result, RouteFailure):
            return RouteFailure(
                failure=FailureKind.partial_failure,
                message=f"destination not found: {destination_query}",
                failed_side=FailedSide.destination,
                resolved_coordinate=origin_result,
            )

        return origin_result, destination_result

    async def relocate_partial(
        self, failure: RouteFailure, relaxed_query: str
    ) -> tuple[Coordinate, Coordinate] | RouteFailure:
        """Geocode only the failed side of a partial failure with a relaxed query."""
        if failure.failure != FailureKind.partial_failure or failure.resolved_coordinate is None:
            raise ValueError("relocate_partial requires a partial failure")

        if failure.failed_side == FailedSide.origin:
            return await self.locate_pair(
                relaxed_query, None, destination=failure.resolved_coordinate
            )
        return await self.locate_pair(None, relaxed_query, origin=failure.resolved_coordinate)

    async def resolve_addresses(
        self,
        origin_query: str | None,
        destination_query: str | None,
        mode: TransportMode,
        *,
        origin: Coordinate | None = None,
        destination: Coordinate | None = None,
    ) -> RouteResult:
        """Geocode missing endpoints, then resolve the route."""
        pair = await self.locate_pair(
            origin_query, destination_query, origin=origin, destination=destination
        )
        if isinstance(pair, RouteFailure):
            return pair
        return await self.resolve(pair[0], pair[1], mode)

    async def retry_partial(
        self, failure: RouteFailure, relaxed_query: str, mode: TransportMode
    ) -> RouteResult:
        """Retry a partial failure without re-resolving the side that succeeded."""
        pair = await self.relocate_partial(failure, relaxed_query)
        if isinstance(pair, RouteFailure):
            return pair
        return await self.resolve(pair[0], pair[1], mode)
