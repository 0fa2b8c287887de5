"""
Crawl Queue - CrawlJob table operations.

The CrawlJob table is the only record of who owns a job. Ownership is
taken with one conditional UPDATE (``status=queued`` -> ``fetching``)
stamped with a fresh claim token, so concurrent schedulers never claim the
same job. Every later transition is filtered on that token: a worker whose
claim was released as stale cannot overwrite the new owner's outcome.

Job lifecycle:
    queued -> fetching -> done
                       -> queued (retry with backoff, or politeness denial)
                       -> error (terminal)
                       -> skipped (robots.txt)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from django.conf import settings
from django.utils import timezone

from ingestion.exceptions import InvalidURLError
from ingestion.models import (
    CanonicalListing,
    CrawlJob,
    CrawlJobKind,
    CrawlJobStatus,
    ListingSource,
)
from ingestion.utils.scheduling import calculate_backoff
from ingestion.utils.urls import domain_from, normalize_url

logger = logging.getLogger(__name__)

OVERFETCH_FACTOR = 3
SEED_PRIORITY = 10
REFRESH_PRIORITY = 2
REFRESH_WINDOW_DAYS = 21
REFRESH_LIMIT = 200
MAX_ERROR_LENGTH = 2000


@dataclass
class EnqueueResult:
    """Outcome of an enqueue: ``created``, ``skipped`` (already queued) or ``invalid``."""

    status: str
    normalized_url: str = ""
    job_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.status == "created"


def enqueue_url(
    url: str,
    kind: str = CrawlJobKind.DETAIL,
    priority: int = 0,
    scheduled_at=None,
) -> EnqueueResult:
    """
    Add a URL to the queue unless its normalized form is already there.

    An existing job is reported as ``skipped``, not as an error.
    """
    try:
        normalized = normalize_url(url)
    except InvalidURLError as e:
        logger.debug(f"Rejected URL {url!r}: {e}")
        return EnqueueResult(status="invalid", error=str(e))

    job, created = CrawlJob.objects.get_or_create(
        normalized_url=normalized,
        defaults={
            "url": url.strip()[:2000],
            "domain": domain_from(normalized),
            "kind": kind,
            "priority": priority,
            "scheduled_at": scheduled_at or timezone.now(),
        },
    )

    if created:
        logger.debug(f"Enqueued {kind} job {job.id} for {normalized}")
    return EnqueueResult(
        status="created" if created else "skipped",
        normalized_url=normalized,
        job_id=str(job.id),
    )


def enqueue_many(urls: Iterable[str], kind: str = CrawlJobKind.DETAIL, priority: int = 0) -> Dict[str, int]:
    counts = {"created": 0, "skipped": 0, "invalid": 0}
    for url in urls:
        counts[enqueue_url(url, kind=kind, priority=priority).status] += 1
    return counts


def _disabled_domains() -> List[str]:
    return list(ListingSource.objects.filter(enabled=False).values_list("domain", flat=True))


def select_batch(n: int, now=None) -> List[str]:
    """
    Pick up to ``n`` due job ids, at most one per domain.

    Jobs are read in ``(-priority, scheduled_at)`` order with over-fetch;
    when the over-fetched rows cover fewer than ``n`` domains another round
    runs excluding the domains already chosen, so a busy domain cannot crowd
    out the others.
    """
    if n <= 0:
        return []

    now = now or timezone.now()
    due = (
        CrawlJob.objects.filter(status=CrawlJobStatus.QUEUED, scheduled_at__lte=now)
        .exclude(domain__in=_disabled_domains())
        .order_by("-priority", "scheduled_at")
    )

    chosen: List[str] = []
    seen_domains = set()

    while len(chosen) < n:
        wanted = n - len(chosen)
        rows = list(
            due.exclude(domain__in=seen_domains).values_list("id", "domain")[: wanted * OVERFETCH_FACTOR]
        )
        if not rows:
            break
        for job_id, domain in rows:
            if domain in seen_domains:
                continue
            seen_domains.add(domain)
            chosen.append(job_id)
            if len(chosen) >= n:
                break

    return chosen


def claim(job_ids: Iterable) -> List[CrawlJob]:
    """
    Atomically move queued jobs to ``fetching``.

    Only rows still ``queued`` are taken; ids already claimed by another
    scheduler are silently left out of the result.
    """
    job_ids = list(job_ids)
    if not job_ids:
        return []

    token = uuid.uuid4()
    now = timezone.now()
    claimed = CrawlJob.objects.filter(id__in=job_ids, status=CrawlJobStatus.QUEUED).update(
        status=CrawlJobStatus.FETCHING,
        locked_at=now,
        claim_token=token,
        updated_at=now,
    )
    if claimed < len(job_ids):
        logger.debug(f"Claimed {claimed}/{len(job_ids)} jobs, the rest were taken")

    return list(CrawlJob.objects.filter(claim_token=token).order_by("-priority", "scheduled_at"))


def take_batch(n: Optional[int] = None) -> List[CrawlJob]:
    """Select and claim a domain-diverse batch of due jobs."""
    n = n or getattr(settings, "INGESTION_BATCH_SIZE", 25)
    return claim(select_batch(n))


def _finish(job: CrawlJob, **fields) -> bool:
    """Apply a transition if ``job`` is still owned by this claim."""
    fields.setdefault("locked_at", None)
    fields.setdefault("claim_token", None)
    fields["updated_at"] = timezone.now()

    updated = CrawlJob.objects.filter(
        pk=job.pk,
        status=CrawlJobStatus.FETCHING,
        claim_token=job.claim_token,
    ).update(**fields)

    if not updated:
        logger.warning(f"Lost claim on job {job.pk}, outcome {fields.get('status')} dropped")
        return False

    for name, value in fields.items():
        setattr(job, name, value)
    return True


def mark_done(job: CrawlJob, listing_id=None, content_hash: Optional[str] = None) -> bool:
    fields = {"status": CrawlJobStatus.DONE, "done_at": timezone.now(), "last_error": ""}
    if listing_id is not None:
        fields["listing_id"] = listing_id
    if content_hash is not None:
        fields["content_hash"] = content_hash
    return _finish(job, **fields)


def mark_failed(job: CrawlJob, error: str, transient: bool = True) -> bool:
    """
    Record a failed attempt.

    Transient failures are requeued at ``now + tries * step`` until the
    attempt cap; non-transient ones and the final attempt are terminal.
    """
    now = timezone.now()
    tries = job.tries + 1
    retry_at = calculate_backoff(tries, now) if transient else None

    fields = {"tries": tries, "last_error": (error or "")[:MAX_ERROR_LENGTH]}
    if retry_at is not None:
        fields.update(status=CrawlJobStatus.QUEUED, scheduled_at=retry_at)
        logger.info(f"Job {job.pk} failed (try {tries}), retry at {retry_at.isoformat()}: {error}")
    else:
        fields.update(status=CrawlJobStatus.ERROR, done_at=now)
        logger.warning(f"Job {job.pk} failed terminally after {tries} tries: {error}")

    return _finish(job, **fields)


def mark_skipped(job: CrawlJob, reason: str) -> bool:
    """Terminal skip, used for robots.txt exclusions."""
    return _finish(
        job,
        status=CrawlJobStatus.SKIPPED,
        last_error=reason[:MAX_ERROR_LENGTH],
        done_at=timezone.now(),
    )


def requeue(job: CrawlJob) -> bool:
    """Hand a claimed job back untouched (politeness denial, no try counted)."""
    return _finish(job, status=CrawlJobStatus.QUEUED)


def release_stale_claims(lease_minutes: Optional[int] = None) -> int:
    """Return jobs stuck in ``fetching`` past the claim lease to the queue."""
    lease = timedelta(
        minutes=lease_minutes or getattr(settings, "INGESTION_CLAIM_LEASE_MINUTES", 15)
    )
    now = timezone.now()
    released = CrawlJob.objects.filter(
        status=CrawlJobStatus.FETCHING,
        locked_at__lt=now - lease,
    ).update(
        status=CrawlJobStatus.QUEUED,
        locked_at=None,
        claim_token=None,
        updated_at=now,
    )
    if released:
        logger.warning(f"Released {released} stale crawl claims")
    return released


def terminal_errors(domain: Optional[str] = None):
    """Jobs in terminal ``error`` state, newest first."""
    qs = CrawlJob.objects.filter(status=CrawlJobStatus.ERROR)
    if domain:
        qs = qs.filter(domain=domain)
    return qs.order_by("-updated_at")


def _requeue_finished(normalized_url: str, priority: int) -> bool:
    """Put a ``done`` job back in the queue for a revisit."""
    now = timezone.now()
    return bool(
        CrawlJob.objects.filter(normalized_url=normalized_url, status=CrawlJobStatus.DONE).update(
            status=CrawlJobStatus.QUEUED,
            priority=priority,
            scheduled_at=now,
            tries=0,
            last_error="",
            updated_at=now,
        )
    )


def seed_sources() -> Dict[str, int]:
    """
    Enqueue the seed pages of every enabled source as discover jobs.

    Seeds already crawled are revisited so new listings on list pages are
    discovered.
    """
    counts = {"sources": 0, "created": 0, "requeued": 0, "skipped": 0, "invalid": 0}

    for source in ListingSource.objects.filter(enabled=True):
        counts["sources"] += 1
        for url in source.seed_urls or []:
            result = enqueue_url(url, kind=CrawlJobKind.DISCOVER, priority=SEED_PRIORITY)
            if result.status == "skipped" and _requeue_finished(result.normalized_url, SEED_PRIORITY):
                counts["requeued"] += 1
            else:
                counts[result.status] += 1

    logger.info(f"Seeded sources: {counts}")
    return counts


def refresh_recent_listings(days: int = REFRESH_WINDOW_DAYS, limit: int = REFRESH_LIMIT) -> Dict[str, int]:
    """
    Revisit listings created in the last ``days`` days to catch price and
    content changes. Conditional requests keep unchanged pages cheap.
    """
    cutoff = timezone.now() - timedelta(days=days)
    recent = (
        CanonicalListing.objects.filter(created_at__gte=cutoff)
        .exclude(source_url="")
        .order_by("-created_at")
        .values_list("source_url", flat=True)[:limit]
    )

    counts = {"checked": 0, "created": 0, "requeued": 0, "skipped": 0, "invalid": 0}
    for source_url in recent:
        counts["checked"] += 1
        result = enqueue_url(source_url, kind=CrawlJobKind.DETAIL, priority=REFRESH_PRIORITY)
        if result.status == "skipped" and _requeue_finished(result.normalized_url, REFRESH_PRIORITY):
            counts["requeued"] += 1
        else:
            counts[result.status] += 1

    logger.info(f"Refresh of recent listings: {counts}")
    return counts
