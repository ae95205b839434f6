"""Geometry and query-normalization helpers."""

import math
import re
from dataclasses import dataclass

from backend.app.config import Settings
from backend.app.models.common import Coordinate

EARTH_RADIUS_KM = 6371.0

# Hangul syllable immediately followed by a digit, e.g. "엑스포로85"
_HANGUL_DIGIT = re.compile(r"([가-힣])(\d)")
_PARENTHETICAL = re.compile(r"\s*[(（][^)）]*[)）]\s*")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Region:
    """Bounding box used to validate geocoding results."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    token: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "Region":
        return cls(
            min_lat=settings.region_min_lat,
            max_lat=settings.region_max_lat,
            min_lng=settings.region_min_lng,
            max_lng=settings.region_max_lng,
            token=settings.region_token,
        )

    def contains(self, coordinate: Coordinate) -> bool:
        return (
            self.min_lat <= coordinate.lat <= self.max_lat
            and self.min_lng <= coordinate.lng <= self.max_lng
        )


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometers."""
    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def normalize_query(query: str) -> str:
    """Collapse whitespace and split a Hangul word from an adjoining number.

    >>> normalize_query("대전 엑스포로85")
    '대전 엑스포로 85'
    """
    spaced = _HANGUL_DIGIT.sub(r"\1 \2", query)
    return _WHITESPACE.sub(" ", spaced).strip()


def strip_parentheses(query: str) -> str:
    """Remove parenthetical content, e.g. "한밭수목원 (동원)" -> "한밭수목원"."""
    return _WHITESPACE.sub(" ", _PARENTHETICAL.sub(" ", query)).strip()


def has_parentheses(query: str) -> bool:
    return _PARENTHETICAL.search(query) is not None


def coordinate_key(coordinate: Coordinate, precision: int) -> str:
    """Cache-key form of a coordinate, rounded to ``precision`` decimal places."""
    return f"{coordinate.lat:.{precision}f},{coordinate.lng:.{precision}f}"
