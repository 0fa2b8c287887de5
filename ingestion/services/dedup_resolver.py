"""
Dedup Resolver - comparables and group membership for canonical listings.

Resolution pass for one listing:
1. find_comparables: bounded candidate pool (180 days, same city, within
   1500 m, area within 30 %, rooms within 1), ranked by similarity, top 12
2. resolve_comparables: the subject's CompMatch rows are replaced by the new
   top 12 inside one transaction
3. attach_to_group: existing group with the same deterministic signature,
   else the group of the best comparable scoring at least 0.85, else a new
   group

split_from_group is the operator override: the listing moves to a new
singleton group and is pinned so later passes leave it there.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from ingestion.exceptions import GroupMembershipError
from ingestion.models import CanonicalListing, CompMatch, DedupEdge, DedupGroup
from ingestion.services.group_stats import rebuild_group_stats_safely
from ingestion.services.similarity import (
    DISTANCE_CAP_M,
    SimilarityResult,
    compare,
    price_per_area,
)

logger = logging.getLogger(__name__)

COMPARABLE_WINDOW_DAYS = 180
MAX_COMPARABLES = 12
AREA_TOLERANCE = 0.30
ROOMS_TOLERANCE = 1
CANDIDATE_QUERY_LIMIT = 500
GROUP_MATCH_THRESHOLD = 0.85

METERS_PER_DEGREE_LAT = 111320


@dataclass
class Comparable:
    listing: CanonicalListing
    similarity: SimilarityResult

    @property
    def score(self) -> float:
        return self.similarity.score


def canonical_signature(listing: CanonicalListing) -> Optional[str]:
    """
    Deterministic grouping key, or None when a core field is missing.

    Coordinates rounded to 4 decimals (about 11 m), area to whole square
    meters and EUR price to thousands, plus floor and year when known.
    """
    if listing.lat is None or listing.lng is None or listing.area_m2 is None or listing.price_eur is None:
        return None
    lat = round(listing.lat, 4)
    lng = round(listing.lng, 4)
    area = round(listing.area_m2)
    band = round(listing.price_eur / 1000)
    floor = listing.floor_raw.strip().lower() if listing.floor_raw else "-"
    year = listing.year_built if listing.year_built is not None else "-"
    return f"geo:{lat},{lng}|m2:{area}|k:{band}|L:{floor}|Y:{year}"


def _candidate_queryset(subject: CanonicalListing):
    since = timezone.now() - timedelta(days=COMPARABLE_WINDOW_DAYS)
    qs = CanonicalListing.objects.exclude(pk=subject.pk).filter(created_at__gte=since)

    if subject.city:
        qs = qs.filter(Q(city="") | Q(city__iexact=subject.city))

    if subject.area_m2:
        qs = qs.filter(
            area_m2__gte=subject.area_m2 * (1 - AREA_TOLERANCE),
            area_m2__lte=subject.area_m2 * (1 + AREA_TOLERANCE),
        )

    if subject.rooms is not None:
        qs = qs.filter(
            Q(rooms__isnull=True)
            | Q(rooms__gte=subject.rooms - ROOMS_TOLERANCE, rooms__lte=subject.rooms + ROOMS_TOLERANCE)
        )

    if subject.lat is not None and subject.lng is not None:
        d_lat = DISTANCE_CAP_M / METERS_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(subject.lat)), 0.01)
        d_lng = DISTANCE_CAP_M / (METERS_PER_DEGREE_LAT * cos_lat)
        qs = qs.filter(
            Q(lat__isnull=True)
            | Q(lng__isnull=True)
            | Q(
                lat__gte=subject.lat - d_lat,
                lat__lte=subject.lat + d_lat,
                lng__gte=subject.lng - d_lng,
                lng__lte=subject.lng + d_lng,
            )
        )

    return qs.order_by("-created_at")[:CANDIDATE_QUERY_LIMIT]


def find_comparables(subject: CanonicalListing, limit: int = MAX_COMPARABLES) -> List[Comparable]:
    """
    Ranked comparables for a listing.

    Candidates whose distance is known and beyond the cap are dropped;
    unknown distances stay in the pool and score 0 on the distance term.
    """
    comparables = []
    for candidate in _candidate_queryset(subject):
        result = compare(subject, candidate)
        if result.distance_m is not None and result.distance_m > DISTANCE_CAP_M:
            continue
        comparables.append(Comparable(listing=candidate, similarity=result))

    comparables.sort(key=lambda c: (-c.score, -c.listing.created_at.timestamp()))
    return comparables[:limit]


def resolve_comparables(subject: CanonicalListing) -> List[Comparable]:
    """Replace the subject's CompMatch snapshot with a fresh top 12."""
    comparables = find_comparables(subject)

    rows = [
        CompMatch(
            subject=subject,
            candidate=c.listing,
            distance_m=int(round(c.similarity.distance_m)) if c.similarity.distance_m is not None else None,
            price_per_area=price_per_area(c.listing.price_eur, c.listing.area_m2),
            score=round(c.score, 3),
        )
        for c in comparables
    ]

    with transaction.atomic():
        CompMatch.objects.filter(subject=subject).delete()
        CompMatch.objects.bulk_create(rows)

    logger.debug(f"Stored {len(rows)} comparables for listing {subject.id}")
    return comparables


def _join_group(listing: CanonicalListing, group: DedupGroup, score: float, reason: dict) -> Optional[DedupGroup]:
    """Move a listing into ``group``; returns the group it left, if any."""
    previous = None
    if listing.group_id and listing.group_id != group.pk:
        previous = listing.group
        DedupEdge.objects.filter(group_id=listing.group_id, listing=listing).delete()

    DedupEdge.objects.update_or_create(
        group=group,
        listing=listing,
        defaults={"score": round(score, 3), "reason": reason},
    )

    if listing.group_id != group.pk:
        listing.group = group
        listing.save(update_fields=["group"])

    return previous


def attach_to_group(
    listing: CanonicalListing, comparables: Optional[List[Comparable]] = None
) -> DedupGroup:
    """
    Put a listing into its dedup group.

    Args:
        listing: Listing to place
        comparables: Ranked comparables from this pass (computed when omitted)

    Returns:
        The group the listing belongs to afterwards
    """
    if listing.group_pinned and listing.group_id:
        logger.debug(f"Listing {listing.id} is pinned to group {listing.group_id}")
        return listing.group

    signature = canonical_signature(listing)

    with transaction.atomic():
        group = None
        score = 1.0
        reason = {"type": "signature"}

        if signature:
            group = DedupGroup.objects.filter(signature=signature).first()

        if group is None:
            if comparables is None:
                comparables = find_comparables(listing)
            best = next(
                (
                    c
                    for c in comparables
                    if c.listing.group_id and c.score >= GROUP_MATCH_THRESHOLD
                ),
                None,
            )
            if best is not None:
                group = best.listing.group
                score = best.score
                reason = best.similarity.as_reason()
                reason["matched_listing"] = str(best.listing.id)

        if group is None:
            group, _ = DedupGroup.objects.get_or_create(
                signature=signature or f"adhoc:{listing.id}",
                defaults={
                    "city": listing.city,
                    "area_slug": listing.area_slug,
                    "centroid_lat": listing.lat,
                    "centroid_lng": listing.lng,
                    "canonical_url": listing.source_url,
                },
            )
            if not signature:
                score = 0.5
                reason = {"type": "adhoc"}

        previous = _join_group(listing, group, score, reason)

    rebuild_group_stats_safely(group)
    if previous is not None:
        rebuild_group_stats_safely(previous)

    logger.info(f"Listing {listing.id} attached to group {group.id} ({reason['type']})")
    return group


def split_from_group(listing: CanonicalListing, group: Optional[DedupGroup] = None) -> DedupGroup:
    """
    Force a listing out of its group into a new singleton group.

    The move itself is authoritative; stats rebuilds for both groups are
    best-effort.

    Raises:
        GroupMembershipError: if the listing is not a member of ``group``
    """
    group = group or listing.group
    if group is None or listing.group_id != group.pk:
        raise GroupMembershipError(f"Listing {listing.id} is not a member of group {getattr(group, 'pk', None)}")

    with transaction.atomic():
        DedupEdge.objects.filter(group=group, listing=listing).delete()

        new_group = DedupGroup.objects.create(
            signature=f"manual:{listing.id}:{uuid.uuid4().hex[:12]}",
            city=listing.city,
            area_slug=listing.area_slug,
            centroid_lat=listing.lat,
            centroid_lng=listing.lng,
            canonical_url=listing.source_url,
        )
        DedupEdge.objects.create(
            group=new_group,
            listing=listing,
            score=1.0,
            reason={"type": "manual_split", "from_group": str(group.pk)},
        )

        listing.group = new_group
        listing.group_pinned = True
        listing.save(update_fields=["group", "group_pinned"])

    rebuild_group_stats_safely(group)
    rebuild_group_stats_safely(new_group)

    logger.info(f"Listing {listing.id} split from group {group.pk} into {new_group.pk}")
    return new_group


def resolve_listing(listing: CanonicalListing) -> DedupGroup:
    """Full resolution pass: comparables snapshot, then group membership."""
    comparables = resolve_comparables(listing)
    return attach_to_group(listing, comparables)
