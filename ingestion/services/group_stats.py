"""
Dedup group statistics.

Recomputed from the current members whenever membership changes. Callers
treat a failed rebuild as non-fatal; ``rebuild_group_stats_safely`` logs
and swallows errors for that purpose.
"""

import logging
from typing import Optional

from django.utils import timezone

from ingestion.models import DedupGroup

logger = logging.getLogger(__name__)


def rebuild_group_stats(group: DedupGroup) -> DedupGroup:
    """
    Recompute item count, canonical member, centroid, EUR price range and
    distinct source count for a group.

    The canonical member is the most complete listing, ties broken by the
    most recent creation time.
    """
    members = list(group.listings.all())

    group.item_count = len(members)

    if members:
        canonical = max(members, key=lambda m: (m.completeness, m.created_at))
        group.canonical_url = canonical.source_url
        group.city = canonical.city or group.city
        group.area_slug = canonical.area_slug or group.area_slug
    else:
        group.canonical_url = ""

    located = [m for m in members if m.lat is not None and m.lng is not None]
    if located:
        group.centroid_lat = sum(m.lat for m in located) / len(located)
        group.centroid_lng = sum(m.lng for m in located) / len(located)
    else:
        group.centroid_lat = None
        group.centroid_lng = None

    prices = [m.price_eur for m in members if m.price_eur is not None]
    group.price_min_eur = min(prices) if prices else None
    group.price_max_eur = max(prices) if prices else None

    group.source_count = len({m.domain for m in members if m.domain})
    group.updated_at = timezone.now()

    group.save(
        update_fields=[
            "item_count",
            "canonical_url",
            "city",
            "area_slug",
            "centroid_lat",
            "centroid_lng",
            "price_min_eur",
            "price_max_eur",
            "source_count",
            "updated_at",
        ]
    )
    return group


def rebuild_group_stats_safely(group: Optional[DedupGroup]) -> bool:
    """Best-effort rebuild: returns False instead of raising."""
    if group is None:
        return False
    try:
        rebuild_group_stats(group)
        return True
    except Exception as e:
        logger.warning(f"Group stats rebuild failed for {group.pk}: {e}")
        return False
