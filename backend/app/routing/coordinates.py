"""Coordinate resolver - free-text address/place name to coordinate.

Cascade (each stage runs only if the previous found nothing in the service region):
1. Cache lookup by normalized query
2. Structured address search on the normalized query
3. Keyword search on the normalized query, ranked by ``score_document``
4. Same as 2-3 with parenthetical content stripped
5. Same as 2-3 with the region token prepended
6. Best out-of-region keyword match (degraded, still cached)

Vendor errors propagate to the caller and nothing is cached for them.
"""

import logging
from dataclasses import dataclass

from backend.app.adapters import kakao
from backend.app.adapters.gateway import VendorGateway
from backend.app.adapters.kakao import GeoDocument
from backend.app.config import Settings, get_settings
from backend.app.db.repositories import CoordinateCacheStore
from backend.app.models.common import Coordinate
from backend.app.routing.geo import Region, has_parentheses, normalize_query, strip_parentheses

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    """Keyword ranking weights."""

    in_region: float = 100
    exact_name: float = 200
    prefix_name: float = 150
    substring_name: float = 50
    per_token: float = 50
    length_penalty: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringWeights":
        return cls(
            in_region=settings.score_in_region,
            exact_name=settings.score_exact_name,
            prefix_name=settings.score_prefix_name,
            substring_name=settings.score_substring_name,
            per_token=settings.score_per_token,
            length_penalty=settings.score_length_penalty,
        )


def score_document(
    doc: GeoDocument, query: str, region: Region, weights: ScoringWeights
) -> float:
    """Rank a keyword hit against the query; higher is better."""
    name = doc.name.strip()
    score = 0.0

    if region.contains(doc.coordinate):
        score += weights.in_region

    if name == query:
        score += weights.exact_name
    elif name.startswith(query):
        score += weights.prefix_name
    elif query in name:
        score += weights.substring_name

    score -= len(name) * weights.length_penalty
    score += weights.per_token * sum(1 for token in query.split() if token in name)
    return score


@dataclass(frozen=True)
class _Candidate:
    coordinate: Coordinate
    name: str
    score: float


class CoordinateResolver:
    """Resolves queries to coordinates with cascading rewrites and a persistent cache."""

    def __init__(
        self,
        gateway: VendorGateway,
        cache: CoordinateCacheStore,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._gateway = gateway
        self._cache = cache
        self._region = Region.from_settings(settings)
        self._weights = ScoringWeights.from_settings(settings)
        self._address_path = settings.kakao_address_path
        self._keyword_path = settings.kakao_keyword_path

    @property
    def region(self) -> Region:
        return self._region

    def query_variants(self, normalized: str) -> list[str]:
        """Rewrites tried in order: as-is, without parentheses, with region token."""
        variants = [normalized]
        base = normalized
        if has_parentheses(normalized):
            base = strip_parentheses(normalized)
            if base:
                variants.append(base)
        if self._region.token not in normalized and base:
            variants.append(f"{self._region.token} {base}")

        unique: list[str] = []
        for variant in variants:
            if variant not in unique:
                unique.append(variant)
        return unique

    async def resolve(self, query: str) -> Coordinate | None:
        """Resolve a query to a coordinate.

        Returns:
            Coordinate (in-region, or the best out-of-region match as a degraded
            result), or None when every stage came back empty

        Raises:
            VendorTimeoutError, VendorError: Geocoding call failed
        """
        normalized = normalize_query(query)
        if not normalized:
            return None

        cached = await self._cache.get(normalized)
        if cached is not None:
            self._gateway.record_cache_hit("coordinate")
            return cached

        fallback: _Candidate | None = None
        for variant in self.query_variants(normalized):
            hit, out_of_region = await self._lookup(variant)
            if hit is not None:
                await self._cache.put(normalized, hit)
                return hit
            if out_of_region and (fallback is None or out_of_region.score > fallback.score):
                fallback = out_of_region

        if fallback is not None:
            logger.info(
                "Geocoding degraded to out-of-region match",
                extra={"structured": {"query": normalized, "match": fallback.name}},
            )
            await self._cache.put(normalized, fallback.coordinate)
            return fallback.coordinate

        logger.info("Geocoding found nothing", extra={"structured": {"query": normalized}})
        return None

    async def _lookup(self, variant: str) -> tuple[Coordinate | None, _Candidate | None]:
        """Run address then keyword search for one query variant.

        Returns:
            (in-region hit, best out-of-region keyword candidate)
        """
        for doc in await kakao.search_address(self._gateway, variant, self._address_path):
            if self._region.contains(doc.coordinate):
                return doc.coordinate, None

        docs = await kakao.search_keyword(self._gateway, variant, self._keyword_path)
        if not docs:
            return None, None

        candidates = [
            _Candidate(
                coordinate=d.coordinate,
                name=d.name,
                score=score_document(d, variant, self._region, self._weights),
            )
            for d in docs
        ]
        ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
        for candidate in ranked:
            if self._region.contains(candidate.coordinate):
                return candidate.coordinate, None
        return None, ranked[0]
