"""
Services for the ingestion pipeline.

Contains:
- content_hash: normalized field digest used as the idempotency key
- similarity: pairwise listing similarity scoring
- ingestion_writer: idempotent upsert of canonical listings
- dedup_resolver: comparables snapshot and dedup group membership
- group_stats: dedup group aggregate rebuilds
- scheduler: runs claimed crawl jobs through fetch, extract and ingest
- scoring_client: notification of the downstream valuation service
"""

from ingestion.services.content_hash import compute_content_hash
from ingestion.services.similarity import SimilarityResult, compare, overall_score
from ingestion.services.ingestion_writer import IngestionWriter, UpsertResult, upsert_listing
from ingestion.services.dedup_resolver import (
    attach_to_group,
    find_comparables,
    resolve_comparables,
    resolve_listing,
    split_from_group,
)
from ingestion.services.group_stats import rebuild_group_stats
from ingestion.services.scheduler import CrawlScheduler
from ingestion.services.scoring_client import ScoringClient

__all__ = [
    "compute_content_hash",
    "SimilarityResult",
    "compare",
    "overall_score",
    "IngestionWriter",
    "UpsertResult",
    "upsert_listing",
    "attach_to_group",
    "find_comparables",
    "resolve_comparables",
    "resolve_listing",
    "split_from_group",
    "rebuild_group_stats",
    "CrawlScheduler",
    "ScoringClient",
]
