"""Edge recomputation - resolves dirty edges concurrently and applies results by identity.

Resolutions may finish in any order. Each result carries the edge key, the
endpoints and the mode it was computed for; ``apply_route_result`` re-derives
the edge from the current plan and discards anything stale.
"""

import asyncio
import logging
from dataclasses import dataclass

from backend.app.config import Settings, get_settings
from backend.app.itinerary.editor import (
    EdgeEndpoints,
    EdgeKey,
    ItineraryEditor,
    apply_route_result,
    edge_endpoints,
    edge_nodes,
    get_edge,
)
from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.itinerary import Lodging, Place, Plan
from backend.app.models.route import FailedSide, FailureKind, RouteFailure, RouteResult
from backend.app.routing.routes import RouteResolver

logger = logging.getLogger(__name__)

Node = Place | Lodging


def node_query(node: Node) -> str:
    """Primary geocoding query: the address when known, else the name."""
    return node.address.strip() or node.name


@dataclass
class _Job:
    key: EdgeKey
    endpoints: EdgeEndpoints
    mode: TransportMode
    origin: Node
    destination: Node
    # Location text at issue time; coordinates are only stored if unchanged
    origin_text: tuple[str, str]
    destination_text: tuple[str, str]


@dataclass(frozen=True)
class RecomputeReport:
    """Outcome counts of one recomputation pass."""

    requested: int
    applied: int
    discarded: int


class EdgeRecomputer:
    """Fills pending edges through the route resolver."""

    def __init__(self, routes: RouteResolver, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._routes = routes
        self._deadline_s = settings.edge_deadline_ms / 1000.0

    async def recompute(self, plan: Plan, keys: set[EdgeKey]) -> RecomputeReport:
        """Resolve ``keys`` concurrently and write results into ``plan``."""
        current = edge_endpoints(plan)
        jobs: list[_Job] = []
        for key in keys:
            endpoints = current.get(key)
            edge = get_edge(plan, key) if endpoints is not None else None
            if edge is None or edge.mode is None:
                continue
            origin, destination = edge_nodes(plan, key)
            jobs.append(
                _Job(
                    key=key,
                    endpoints=endpoints,
                    mode=edge.mode,
                    origin=origin,
                    destination=destination,
                    origin_text=(origin.name, origin.address),
                    destination_text=(destination.name, destination.address),
                )
            )

        if not jobs:
            return RecomputeReport(requested=len(keys), applied=0, discarded=0)

        results = await asyncio.gather(*(self._run(job) for job in jobs))

        applied = 0
        for job, result in zip(jobs, results):
            if apply_route_result(plan, job.key, job.endpoints, job.mode, result):
                applied += 1

        report = RecomputeReport(
            requested=len(keys), applied=applied, discarded=len(jobs) - applied
        )
        logger.info(
            "Edges recomputed",
            extra={
                "structured": {
                    "plan_id": str(plan.id),
                    "requested": report.requested,
                    "applied": report.applied,
                    "discarded": report.discarded,
                }
            },
        )
        return report

    async def refresh_failed(self, plan: Plan, editor: ItineraryEditor) -> RecomputeReport:
        """Lazy retry on read: re-resolve failed and leftover pending edges."""
        return await self.recompute(plan, editor.retry_candidates(plan))

    async def _run(self, job: _Job) -> RouteResult:
        try:
            return await asyncio.wait_for(self._resolve(job), timeout=self._deadline_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Edge resolution exceeded deadline",
                extra={"structured": {"edge": str(job.key), "deadline_s": self._deadline_s}},
            )
            return RouteFailure(
                failure=FailureKind.vendor_timeout,
                message=f"edge resolution exceeded {self._deadline_s}s",
            )

    async def _resolve(self, job: _Job) -> RouteResult:
        pair = await self._routes.locate_pair(
            node_query(job.origin),
            node_query(job.destination),
            origin=job.origin.coordinate,
            destination=job.destination.coordinate,
        )

        if isinstance(pair, RouteFailure) and pair.failure == FailureKind.partial_failure:
            failed = job.origin if pair.failed_side == FailedSide.origin else job.destination
            if failed.name and failed.name != node_query(failed):
                logger.info(
                    "Retrying failed side with place name",
                    extra={"structured": {"edge": str(job.key), "side": pair.failed_side.value}},
                )
                pair = await self._routes.relocate_partial(pair, failed.name)

        if isinstance(pair, RouteFailure):
            return pair

        origin_coord, destination_coord = pair
        self._store(job.origin, job.origin_text, origin_coord)
        self._store(job.destination, job.destination_text, destination_coord)
        return await self._routes.resolve(origin_coord, destination_coord, job.mode)

    @staticmethod
    def _store(node: Node, text: tuple[str, str], coordinate: Coordinate) -> None:
        if node.coordinate is None and (node.name, node.address) == text:
            node.coordinate = coordinate
