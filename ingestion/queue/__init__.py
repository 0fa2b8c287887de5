"""
Crawl job queue backed by the CrawlJob table.

Provides idempotent enqueueing, domain-diverse batch claiming and the
retry/backoff transitions used by the scheduler.
"""

from .crawl_queue import (
    EnqueueResult,
    claim,
    enqueue_many,
    enqueue_url,
    mark_done,
    mark_failed,
    mark_skipped,
    refresh_recent_listings,
    release_stale_claims,
    requeue,
    seed_sources,
    select_batch,
    take_batch,
    terminal_errors,
)

__all__ = [
    "EnqueueResult",
    "claim",
    "enqueue_many",
    "enqueue_url",
    "mark_done",
    "mark_failed",
    "mark_skipped",
    "refresh_recent_listings",
    "release_stale_claims",
    "requeue",
    "seed_sources",
    "select_batch",
    "take_batch",
    "terminal_errors",
]
