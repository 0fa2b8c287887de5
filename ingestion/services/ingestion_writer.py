"""
Ingestion Writer - idempotent upsert of canonical listings.

Order of checks for each observation:
1. Cross-source duplicate guard: a non-terminal listing with the same
   content hash (for any source URL) already exists -> return it, tagged
   ``duplicate_content``; nothing is written.
2. The most recent listing for the source URL exists -> update it.
3. Otherwise create a listing and, once the transaction commits, ask the
   scoring service to score it. Updates never re-trigger scoring.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ingestion.models import CanonicalListing, TERMINAL_LISTING_STATUSES
from ingestion.services.content_hash import (
    compute_content_hash,
    normalize_number,
    pick,
)
from ingestion.utils.urls import domain_from

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "EUR"
MAX_PHOTOS = 20


@dataclass
class UpsertResult:
    """Outcome of an upsert."""

    listing_id: str
    content_hash: str
    created: bool = False
    duplicate_content: bool = False


def convert_to_eur(price: Optional[float], currency: Optional[str]) -> Optional[float]:
    """
    Convert a price to EUR using ``INGESTION_FX_RATES_TO_EUR``.

    A missing currency is taken as EUR; an unknown one yields None.
    """
    if price is None:
        return None
    code = (currency or DEFAULT_CURRENCY).strip().upper()
    rates = getattr(settings, "INGESTION_FX_RATES_TO_EUR", {"EUR": 1.0})
    rate = rates.get(code)
    if rate is None:
        logger.warning(f"No EUR rate for currency {code}, price_eur left empty")
        return None
    return round(float(price) * float(rate), 2)


def _text(value: Any, max_length: int) -> str:
    if value is None:
        return ""
    return str(value).strip()[:max_length]


def build_listing_fields(source_url: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Map extractor output onto CanonicalListing columns; bad values become None."""
    price = normalize_number(pick(fields, "price"))
    currency = _text(pick(fields, "currency"), 8).upper()
    rooms = normalize_number(pick(fields, "rooms"))
    year = normalize_number(pick(fields, "year_built"))

    photos = fields.get("photos") or []
    if not isinstance(photos, (list, tuple)):
        photos = []
    photos = [str(p) for p in photos if p][:MAX_PHOTOS]

    return {
        "domain": domain_from(source_url),
        "title": _text(pick(fields, "title"), 500),
        "price": price,
        "currency": currency,
        "price_eur": convert_to_eur(price, currency),
        "area_m2": normalize_number(pick(fields, "area_m2")),
        "rooms": float(rooms) if rooms is not None else None,
        "floor_raw": _text(pick(fields, "floor"), 50),
        "year_built": int(year) if year is not None else None,
        "address_raw": _text(fields.get("address_raw") or fields.get("addressRaw"), 500),
        "city": _text(fields.get("city"), 100),
        "area_slug": _text(fields.get("area_slug") or fields.get("areaSlug"), 100),
        "lat": normalize_number(pick(fields, "lat")),
        "lng": normalize_number(pick(fields, "lng")),
        "photos": photos,
        "photo_count": len(photos),
    }


def _schedule_scoring(listing: CanonicalListing) -> None:
    from ingestion.tasks import notify_scoring_service

    listing_id = str(listing.id)
    source_url = listing.source_url

    def _send():
        try:
            notify_scoring_service.delay(listing_id, source_url)
        except Exception as e:
            logger.error(f"Could not queue scoring for listing {listing_id}: {e}")

    transaction.on_commit(_send)


class IngestionWriter:
    """Turns extracted fields into canonical listing rows."""

    def find_duplicate(self, content_hash: str) -> Optional[CanonicalListing]:
        return (
            CanonicalListing.objects.filter(content_hash=content_hash)
            .exclude(status__in=TERMINAL_LISTING_STATUSES)
            .order_by("-created_at")
            .first()
        )

    def upsert(self, source_url: str, fields: Mapping[str, Any]) -> UpsertResult:
        """
        Persist an observation of ``source_url``.

        Args:
            source_url: Page the fields were extracted from
            fields: Extractor output (snake_case or camelCase keys)

        Returns:
            UpsertResult with the listing id and what happened
        """
        content_hash = compute_content_hash(fields)

        duplicate = self.find_duplicate(content_hash)
        if duplicate is not None:
            logger.info(
                f"Duplicate content for {source_url}: matches listing {duplicate.id} "
                f"({duplicate.source_url})"
            )
            return UpsertResult(
                listing_id=str(duplicate.id),
                content_hash=content_hash,
                duplicate_content=True,
            )

        values = build_listing_fields(source_url, fields)

        with transaction.atomic():
            existing = (
                CanonicalListing.objects.select_for_update()
                .filter(source_url=source_url)
                .order_by("-created_at")
                .first()
            )

            if existing is not None:
                for name, value in values.items():
                    setattr(existing, name, value)
                existing.content_hash = content_hash
                existing.updated_at = timezone.now()
                existing.save()
                logger.info(f"Updated listing {existing.id} from {source_url}")
                return UpsertResult(listing_id=str(existing.id), content_hash=content_hash)

            listing = CanonicalListing.objects.create(
                source_url=source_url[:2000],
                content_hash=content_hash,
                **values,
            )
            _schedule_scoring(listing)

        logger.info(f"Created listing {listing.id} from {source_url}")
        return UpsertResult(listing_id=str(listing.id), content_hash=content_hash, created=True)


def upsert_listing(source_url: str, fields: Mapping[str, Any]) -> UpsertResult:
    """Module-level shortcut used by tasks and the scheduler."""
    return IngestionWriter().upsert(source_url, fields)
