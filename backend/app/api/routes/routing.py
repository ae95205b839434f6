"""Geocoding and route lookup endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, TypeAdapter, model_validator

from backend.app.api.deps import get_route_resolver
from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.route import FailureKind, RouteFailure, RouteResult
from backend.app.routing.routes import RouteResolver

router = APIRouter(tags=["routing"])

_result_adapter: TypeAdapter[RouteResult] = TypeAdapter(RouteResult)


class GeocodeResponse(BaseModel):
    query: str
    coordinate: Coordinate


class RouteRequest(BaseModel):
    """Each endpoint is given as a coordinate, a query, or both (coordinate wins)."""

    mode: TransportMode
    origin: Coordinate | None = None
    destination: Coordinate | None = None
    origin_query: str | None = None
    destination_query: str | None = None

    @model_validator(mode="after")
    def endpoints_present(self) -> "RouteRequest":
        if self.origin is None and not self.origin_query:
            raise ValueError("origin or origin_query is required")
        if self.destination is None and not self.destination_query:
            raise ValueError("destination or destination_query is required")
        return self


class RetryRequest(BaseModel):
    """Retry the failed side of a partial failure with a relaxed query."""

    mode: TransportMode
    failure: RouteFailure
    relaxed_query: str


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode(
    query: Annotated[str, Query(min_length=1)],
    routes: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> GeocodeResponse:
    """Resolve an address or place name to a coordinate."""
    result = await routes.geocode(query)
    if isinstance(result, RouteFailure):
        if result.failure == FailureKind.not_found:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.message)
    return GeocodeResponse(query=query, coordinate=result)


@router.post("/routes")
async def resolve_route(
    request: RouteRequest,
    routes: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> dict:
    """Resolve a route. Failures are returned as a ``failure`` result, not an HTTP error."""
    result = await routes.resolve_addresses(
        request.origin_query,
        request.destination_query,
        request.mode,
        origin=request.origin,
        destination=request.destination,
    )
    return _result_adapter.dump_python(result, mode="json")


@router.post("/routes/retry")
async def retry_route(
    request: RetryRequest,
    routes: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> dict:
    """Re-resolve only the side that failed, keeping the resolved coordinate."""
    if request.failure.failure != FailureKind.partial_failure or (
        request.failure.resolved_coordinate is None
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="failure is not a partial failure"
        )
    result = await routes.retry_partial(request.failure, request.relaxed_query, request.mode)
    return _result_adapter.dump_python(result, mode="json")
