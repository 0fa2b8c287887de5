"""
Similarity Engine - pairwise scoring of two listings.

Pure functions, no database access. Inputs are CanonicalListing instances
or plain mappings with the same field names (camelCase extractor aliases
are accepted for mappings).

Overall score is a weighted sum of four sub-scores:

    0.35 * distance + 0.35 * area + 0.20 * rooms + 0.10 * year

Distance and area always take part; a missing coordinate or area scores 0.
Rooms and year take part only when known on both sides, and the weights of
the remaining terms are rescaled to sum to 1. Identical listings with all
fields present therefore score exactly 1.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ingestion.services.content_hash import normalize_number, pick

EARTH_RADIUS_M = 6371000

DISTANCE_CAP_M = 1500
RELATIVE_TOLERANCE = 0.18

WEIGHT_DISTANCE = 0.35
WEIGHT_AREA = 0.35
WEIGHT_ROOMS = 0.20
WEIGHT_YEAR = 0.10


def _value(listing: Any, name: str) -> Optional[float]:
    if isinstance(listing, Mapping):
        raw = pick(listing, name)
    else:
        raw = getattr(listing, name, None)
    return normalize_number(raw)


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def listing_distance_m(subject: Any, candidate: Any) -> Optional[float]:
    """Distance between two listings, or None when either lacks coordinates."""
    coords = [_value(subject, "lat"), _value(subject, "lng"), _value(candidate, "lat"), _value(candidate, "lng")]
    if any(c is None for c in coords):
        return None
    return haversine_m(*coords)


def distance_score(meters: Optional[float], cap: float = DISTANCE_CAP_M) -> float:
    """1 at zero distance, falling linearly to 0 at ``cap``; unknown is 0."""
    if meters is None:
        return 0.0
    return 1.0 - min(max(meters, 0.0), cap) / cap


def relative_difference_score(
    a: Optional[float], b: Optional[float], tolerance: float = RELATIVE_TOLERANCE
) -> float:
    """
    Linear falloff on ``|a - b| / max(a, b)``.

    1 when equal, 0 once the relative difference reaches ``tolerance``.
    Missing or non-positive values score 0.
    """
    if a is None or b is None or a <= 0 or b <= 0:
        return 0.0
    rel = abs(a - b) / max(a, b)
    if rel >= tolerance:
        return 0.0
    return 1.0 - rel / tolerance


def rooms_score(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    diff = abs(a - b)
    if diff == 0:
        return 1.0
    if diff <= 0.5:
        return 0.8
    if diff <= 1.0:
        return 0.5
    return 0.0


def year_score(a: Optional[float], b: Optional[float]) -> Optional[float]:
    # Weak signal: never below 0.2
    if a is None or b is None:
        return None
    diff = abs(a - b)
    if diff <= 5:
        return 1.0
    if diff <= 10:
        return 0.7
    if diff <= 20:
        return 0.4
    return 0.2


def price_per_area(price_eur: Optional[float], area_m2: Optional[float]) -> Optional[float]:
    if price_eur is None or not area_m2 or area_m2 <= 0:
        return None
    return round(price_eur / area_m2, 2)


@dataclass
class SimilarityResult:
    score: float
    distance_m: Optional[float] = None
    components: Dict[str, Optional[float]] = field(default_factory=dict)

    def as_reason(self) -> Dict[str, Any]:
        reason = {"type": "similarity", "score": round(self.score, 3)}
        reason.update(
            {k: round(v, 3) for k, v in self.components.items() if v is not None}
        )
        if self.distance_m is not None:
            reason["distance_m"] = int(round(self.distance_m))
        return reason


def compare(subject: Any, candidate: Any) -> SimilarityResult:
    """Score two listings and keep the sub-scores for explanation."""
    meters = listing_distance_m(subject, candidate)

    terms = [
        ("distance", WEIGHT_DISTANCE, distance_score(meters)),
        (
            "area",
            WEIGHT_AREA,
            relative_difference_score(_value(subject, "area_m2"), _value(candidate, "area_m2")),
        ),
        ("rooms", WEIGHT_ROOMS, rooms_score(_value(subject, "rooms"), _value(candidate, "rooms"))),
        (
            "year",
            WEIGHT_YEAR,
            year_score(_value(subject, "year_built"), _value(candidate, "year_built")),
        ),
    ]

    total_weight = sum(weight for _, weight, value in terms if value is not None)
    weighted = sum(weight * value for _, weight, value in terms if value is not None)
    score = weighted / total_weight if total_weight else 0.0

    return SimilarityResult(
        score=min(max(score, 0.0), 1.0),
        distance_m=meters,
        components={name: value for name, _, value in terms},
    )


def overall_score(subject: Any, candidate: Any) -> float:
    """Similarity of two listings in [0, 1]."""
    return compare(subject, candidate).score
