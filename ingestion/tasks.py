"""
Celery tasks for the ingestion pipeline.

Periodic (Celery Beat, see config/celery.py):
- crawl_tick: claim and process one batch of crawl jobs
- crawl_release_stale_claims: return abandoned ``fetching`` jobs to the queue
- seed_sources: enqueue seed list pages of enabled sources
- refresh_recent_listings: revisit listings from the last 21 days

Dispatched:
- resolve_listing: comparables snapshot and group membership for a listing
- notify_scoring_service: tell the valuation service about a new listing
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task
from django.utils import timezone

from ingestion.models import CanonicalListing
from ingestion.queue import crawl_queue
from ingestion.services.dedup_resolver import resolve_listing as run_resolution
from ingestion.services.scheduler import CrawlScheduler
from ingestion.services.scoring_client import ScoringClient

logger = logging.getLogger(__name__)


@shared_task(name="ingestion.tasks.crawl_tick")
def crawl_tick(batch_size: Optional[int] = None) -> Dict[str, Any]:
    """
    Periodic task processing one crawl batch.

    Runs every minute via Celery Beat; overlapping ticks are safe because
    claiming is atomic per job and the politeness gate state is shared.
    """
    counts = CrawlScheduler().run_batch(batch_size)
    return {**counts, "timestamp": timezone.now().isoformat()}


@shared_task(name="ingestion.tasks.crawl_release_stale_claims")
def crawl_release_stale_claims() -> Dict[str, Any]:
    released = crawl_queue.release_stale_claims()
    return {"released": released, "timestamp": timezone.now().isoformat()}


@shared_task(name="ingestion.tasks.seed_sources")
def seed_sources() -> Dict[str, Any]:
    counts = crawl_queue.seed_sources()
    return {**counts, "timestamp": timezone.now().isoformat()}


@shared_task(name="ingestion.tasks.refresh_recent_listings")
def refresh_recent_listings() -> Dict[str, Any]:
    counts = crawl_queue.refresh_recent_listings()
    return {**counts, "timestamp": timezone.now().isoformat()}


@shared_task(name="ingestion.tasks.resolve_listing", bind=True, max_retries=3)
def resolve_listing(self, listing_id: str) -> Dict[str, Any]:
    """
    Dedup resolution for one listing.

    Retries on unexpected errors; a listing deleted in the meantime is not
    an error.
    """
    try:
        listing = CanonicalListing.objects.get(pk=listing_id)
    except CanonicalListing.DoesNotExist:
        logger.warning(f"Listing {listing_id} no longer exists, skipping resolution")
        return {"listing_id": listing_id, "resolved": False}

    try:
        group = run_resolution(listing)
    except Exception as e:
        logger.error(f"Dedup resolution failed for listing {listing_id}: {e}")
        raise self.retry(exc=e, countdown=60)

    return {
        "listing_id": listing_id,
        "resolved": True,
        "group_id": str(group.id),
        "comparables": listing.comp_matches.count(),
    }


@shared_task(name="ingestion.tasks.notify_scoring_service")
def notify_scoring_service(listing_id: str, source_url: str) -> Dict[str, Any]:
    """Fire-and-forget notification of the valuation service."""
    accepted = ScoringClient().notify_new_listing(listing_id, source_url)
    return {"listing_id": listing_id, "accepted": accepted}
