"""
Crawl Scheduler - drives one batch of crawl jobs end to end.

For each claimed job, sequentially:
1. robots.txt check; a disallowed URL is terminally ``skipped``
2. politeness gate; a denial hands the job back to the queue untouched
3. conditional fetch inside the gate slot
4. 304 -> done, nothing re-ingested
5. discover pages: enqueue listing links, the next list page and any
   child sitemaps
6. detail pages: extract, hash, skip if the hash is unchanged, otherwise
   upsert the canonical listing and dispatch dedup resolution

Failures follow the retry policy in ingestion.queue: network errors,
timeouts, 5xx and 429 are retried with backoff; other HTTP errors and
extraction failures are terminal at once. A job whose claim was taken
over by another worker reports ``lost_claim`` and is left alone.
"""

import logging
from collections import Counter
from typing import Dict, Optional

from ingestion.exceptions import ExtractionError, RobotsDisallowed
from ingestion.extractors import pick_adapter
from ingestion.fetchers.conditional_fetcher import ConditionalFetcher, FetchResult
from ingestion.fetchers.politeness import PolitenessGate
from ingestion.models import CrawlJob, CrawlJobKind, CrawlJobStatus
from ingestion.monitoring import (
    add_crawl_breadcrumb,
    capture_crawl_error,
    capture_terminal_failure,
)
from ingestion.queue import crawl_queue
from ingestion.services.content_hash import compute_content_hash
from ingestion.services.ingestion_writer import IngestionWriter
from ingestion.utils.scheduling import is_transient_status

logger = logging.getLogger(__name__)


class CrawlScheduler:
    """
    Processes claimed crawl jobs one after another.

    Collaborators are injectable; defaults are the database-backed gate,
    a fresh ConditionalFetcher and the IngestionWriter.
    """

    def __init__(
        self,
        gate: Optional[PolitenessGate] = None,
        fetcher: Optional[ConditionalFetcher] = None,
        writer: Optional[IngestionWriter] = None,
        dispatch_resolution: bool = True,
    ):
        self.gate = gate or PolitenessGate()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or ConditionalFetcher()
        self.writer = writer or IngestionWriter()
        self.dispatch_resolution = dispatch_resolution

    def run_batch(self, batch_size: Optional[int] = None) -> Dict[str, int]:
        """
        Claim and process one batch.

        Returns:
            Counts per outcome plus ``claimed``
        """
        jobs = crawl_queue.take_batch(batch_size)
        counts = Counter(claimed=len(jobs))

        try:
            for job in jobs:
                counts[self._run_job(job)] += 1
        finally:
            if self._owns_fetcher:
                self.fetcher.close()

        if jobs:
            logger.info(f"Crawl batch finished: {dict(counts)}")
        return dict(counts)

    def _run_job(self, job: CrawlJob) -> str:
        try:
            return self.process_job(job)
        except Exception as e:
            # Correctness failures (e.g. writing the listing) go through backoff
            logger.exception(f"Job {job.pk} failed for {job.url}")
            capture_crawl_error(error=e, job=job)
            return self._fail(job, f"{type(e).__name__}: {e}", transient=True)

    def process_job(self, job: CrawlJob) -> str:
        """Run one claimed job; returns the outcome name."""
        try:
            self.gate.ensure_allowed(job.url)
        except RobotsDisallowed as e:
            logger.info(str(e))
            crawl_queue.mark_skipped(job, str(e))
            return "skipped"

        with self.gate.slot(job.url) as acquired:
            if not acquired:
                crawl_queue.requeue(job)
                return "deferred"

            add_crawl_breadcrumb(domain=job.domain, url=job.url, message=f"Fetching {job.kind} page")
            result = self.fetcher.fetch(job.url)

        if result.not_modified:
            crawl_queue.mark_done(job)
            return "not_modified"

        if not result.ok:
            error = result.error or f"HTTP {result.status}"
            return self._fail(job, error, transient=is_transient_status(result.status))

        if job.kind == CrawlJobKind.DISCOVER:
            return self._handle_discover(job, result)
        return self._handle_detail(job, result)

    def _fail(self, job: CrawlJob, error: str, transient: bool) -> str:
        if not crawl_queue.mark_failed(job, error, transient=transient):
            # Another worker reclaimed the job; its outcome is not ours to report
            return "lost_claim"
        if job.status == CrawlJobStatus.ERROR:
            capture_terminal_failure(job, error)
            return "errors"
        return "retried"

    def _handle_discover(self, job: CrawlJob, result: FetchResult) -> str:
        adapter = pick_adapter(job.url)
        try:
            discovered = adapter.discover(result.body or "", job.url)
        except Exception as e:
            return self._fail(job, f"Discover failed: {e}", transient=False)

        links = crawl_queue.enqueue_many(discovered.links, kind=CrawlJobKind.DETAIL, priority=job.priority)
        if discovered.next_page:
            crawl_queue.enqueue_url(discovered.next_page, kind=CrawlJobKind.DISCOVER, priority=job.priority)
        if discovered.sitemaps:
            crawl_queue.enqueue_many(discovered.sitemaps, kind=CrawlJobKind.DISCOVER, priority=job.priority)

        logger.info(
            f"Discovered {len(discovered.links)} links on {job.url} "
            f"({links['created']} new, next page: {discovered.next_page or '-'})"
        )
        crawl_queue.mark_done(job)
        return "discovered"

    def _handle_detail(self, job: CrawlJob, result: FetchResult) -> str:
        adapter = pick_adapter(job.url)
        try:
            extracted = adapter.extract(result.body or "", job.url)
        except ExtractionError as e:
            logger.warning(f"Extraction failed for {job.url}: {e}")
            return self._fail(job, str(e), transient=False)
        except Exception as e:
            # A crashing adapter fails the same way on every retry
            logger.exception(f"Adapter crashed extracting {job.url}")
            capture_crawl_error(error=e, job=job)
            return self._fail(job, f"Extraction failed: {type(e).__name__}: {e}", transient=False)

        fields = extracted.to_fields()
        content_hash = compute_content_hash(fields)

        if job.listing_id and job.content_hash == content_hash:
            crawl_queue.mark_done(job)
            return "unchanged"

        upsert = self.writer.upsert(job.normalized_url, fields)
        crawl_queue.mark_done(job, listing_id=upsert.listing_id, content_hash=content_hash)

        if upsert.duplicate_content:
            return "duplicates"

        if self.dispatch_resolution:
            self._dispatch_resolution(upsert.listing_id)
        return "ingested"

    def _dispatch_resolution(self, listing_id: str) -> None:
        from ingestion.tasks import resolve_listing

        try:
            resolve_listing.delay(listing_id)
        except Exception as e:
            logger.error(f"Could not dispatch dedup resolution for {listing_id}: {e}")
