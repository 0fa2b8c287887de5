"""
Django models for the Listing Ingestion Service.

Models: ListingSource, DomainFetchState, CrawlJob, HostCache, FetchLog,
        DedupGroup, CanonicalListing, DedupEdge, CompMatch

Crawl bookkeeping (jobs, conditional-fetch cache, fetch audit, politeness
state) lives next to the canonical listing records and their dedup groups so
that job ownership and per-domain throttling share one transactional store.
"""

import uuid
from django.db import models
from django.utils import timezone


class CrawlJobKind(models.TextChoices):
    """What a crawl job fetches."""

    DISCOVER = "discover", "Discover (list page)"
    DETAIL = "detail", "Detail (listing page)"


class CrawlJobStatus(models.TextChoices):
    """Status of a crawl job."""

    QUEUED = "queued", "Queued"
    FETCHING = "fetching", "Fetching"
    DONE = "done", "Done"
    ERROR = "error", "Error"
    SKIPPED = "skipped", "Skipped (robots.txt)"


class ListingStatus(models.TextChoices):
    """Lifecycle of a canonical listing."""

    PENDING = "pending", "Pending Scoring"
    ACTIVE = "active", "Active"
    ARCHIVED = "archived", "Archived"
    REJECTED = "rejected", "Rejected"


# Listings in these states never absorb duplicate submissions
TERMINAL_LISTING_STATUSES = (ListingStatus.ARCHIVED, ListingStatus.REJECTED)


class ListingSource(models.Model):
    """
    Per-domain politeness configuration for a listing site.

    Managed via Django Admin so operators can tune delays without code changes.
    Read-only to the crawler.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    domain = models.CharField(
        max_length=255, unique=True, help_text="Host without leading www."
    )
    enabled = models.BooleanField(default=True, help_text="Enable/disable crawling")
    min_delay_ms = models.PositiveIntegerField(
        default=2000, help_text="Minimum delay between two fetches to this domain"
    )
    max_concurrency = models.PositiveIntegerField(
        default=2, help_text="Maximum simultaneous in-flight fetches"
    )
    seed_urls = models.JSONField(
        default=list, blank=True, help_text="List pages enqueued as discover jobs"
    )
    notes = models.TextField(blank=True, help_text="Internal notes")

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)

    class Meta:
        db_table = "listing_sources"
        ordering = ["domain"]

    def __str__(self):
        state = "enabled" if self.enabled else "disabled"
        return f"{self.domain} ({state}, {self.min_delay_ms}ms)"


class DomainFetchState(models.Model):
    """
    Shared politeness state for one domain.

    Updated only through conditional UPDATE statements so that concurrent
    scheduler processes cannot both pass the gate for the same domain.
    """

    domain = models.CharField(max_length=255, unique=True)
    last_fetch_at = models.DateTimeField(null=True, blank=True)
    in_flight = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "domain_fetch_state"

    def __str__(self):
        return f"{self.domain} (in flight: {self.in_flight})"


class CanonicalListing(models.Model):
    """
    The deduplicated unit of a listing observation.

    One row per source URL; the content hash is the idempotency key shared
    by the crawler and direct submissions.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source_url = models.URLField(max_length=2000, db_index=True)
    domain = models.CharField(max_length=255, blank=True)

    # Extracted fields
    title = models.CharField(max_length=500, blank=True)
    price = models.FloatField(null=True, blank=True)
    currency = models.CharField(max_length=8, blank=True)
    price_eur = models.FloatField(null=True, blank=True)
    area_m2 = models.FloatField(null=True, blank=True)
    rooms = models.FloatField(null=True, blank=True)
    floor_raw = models.CharField(max_length=50, blank=True)
    year_built = models.IntegerField(null=True, blank=True)
    address_raw = models.CharField(max_length=500, blank=True)
    city = models.CharField(max_length=100, blank=True)
    area_slug = models.CharField(max_length=100, blank=True)
    lat = models.FloatField(null=True, blank=True)
    lng = models.FloatField(null=True, blank=True)
    photos = models.JSONField(default=list, blank=True)
    photo_count = models.PositiveIntegerField(default=0)

    # Idempotency
    content_hash = models.CharField(max_length=64, db_index=True)

    status = models.CharField(
        max_length=20, choices=ListingStatus.choices, default=ListingStatus.PENDING
    )

    # Dedup membership
    group = models.ForeignKey(
        "DedupGroup",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="listings",
    )
    group_pinned = models.BooleanField(
        default=False, help_text="Set by a manual split; automatic grouping leaves it alone"
    )

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "canonical_listings"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["content_hash", "status"], name="listing_hash_status_idx"),
            models.Index(fields=["source_url", "created_at"], name="listing_url_created_idx"),
            models.Index(fields=["lat", "lng"], name="listing_lat_lng_idx"),
        ]

    def __str__(self):
        return f"{self.title[:50] or self.source_url[:50]} ({self.status})"

    @property
    def completeness(self) -> int:
        """Number of comparable fields present, used to pick a group's canonical member."""
        return sum(
            [
                self.price_eur is not None,
                self.area_m2 is not None,
                self.rooms is not None,
                self.year_built is not None,
                self.lat is not None and self.lng is not None,
                bool(self.title),
            ]
        )


class DedupGroup(models.Model):
    """
    A cluster of listings believed to be the same physical property.

    Stats are rebuilt whenever membership changes.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    signature = models.CharField(max_length=255, unique=True)
    city = models.CharField(max_length=100, blank=True)
    area_slug = models.CharField(max_length=100, blank=True)
    centroid_lat = models.FloatField(null=True, blank=True)
    centroid_lng = models.FloatField(null=True, blank=True)
    canonical_url = models.URLField(max_length=2000, blank=True)
    item_count = models.PositiveIntegerField(default=0)

    # Aggregates over members
    price_min_eur = models.FloatField(null=True, blank=True)
    price_max_eur = models.FloatField(null=True, blank=True)
    source_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "dedup_groups"
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["city", "area_slug"], name="group_city_area_idx"),
        ]

    def __str__(self):
        return f"{self.signature} ({self.item_count} items)"


class DedupEdge(models.Model):
    """Membership edge between a listing and its dedup group."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    group = models.ForeignKey(DedupGroup, on_delete=models.CASCADE, related_name="edges")
    listing = models.ForeignKey(
        CanonicalListing, on_delete=models.CASCADE, related_name="group_edges"
    )
    score = models.FloatField(default=0.0)
    reason = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "dedup_edges"
        constraints = [
            models.UniqueConstraint(
                fields=["group", "listing"], name="unique_group_listing_edge"
            ),
        ]

    def __str__(self):
        return f"{self.listing_id} -> {self.group_id} ({self.score:.2f})"


class CompMatch(models.Model):
    """
    Scored link from a subject listing to one of its comparables.

    Rows for a subject are replaced as a whole on every resolution pass.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    subject = models.ForeignKey(
        CanonicalListing, on_delete=models.CASCADE, related_name="comp_matches"
    )
    candidate = models.ForeignKey(
        CanonicalListing, on_delete=models.CASCADE, related_name="comp_of"
    )
    distance_m = models.IntegerField(null=True, blank=True)
    price_per_area = models.FloatField(null=True, blank=True)
    score = models.FloatField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "comp_matches"
        ordering = ["-score"]
        constraints = [
            models.UniqueConstraint(
                fields=["subject", "candidate"], name="unique_subject_candidate"
            ),
        ]

    def __str__(self):
        return f"{self.subject_id} ~ {self.candidate_id} ({self.score:.3f})"


class CrawlJob(models.Model):
    """
    One row per URL to fetch.

    Ownership of a job is acquired through the atomic queued -> fetching
    transition; the normalized URL is unique so enqueueing is idempotent.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    url = models.URLField(max_length=2000)
    normalized_url = models.URLField(max_length=2000, unique=True)
    domain = models.CharField(max_length=255, db_index=True)
    kind = models.CharField(
        max_length=20, choices=CrawlJobKind.choices, default=CrawlJobKind.DETAIL
    )

    # Status
    status = models.CharField(
        max_length=20, choices=CrawlJobStatus.choices, default=CrawlJobStatus.QUEUED
    )
    priority = models.IntegerField(default=0, help_text="Higher = fetched first")
    scheduled_at = models.DateTimeField(
        default=timezone.now, help_text="Not fetched before this time (backoff)"
    )
    tries = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    # Results
    content_hash = models.CharField(max_length=64, blank=True)
    listing = models.ForeignKey(
        CanonicalListing,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="crawl_jobs",
    )

    # Claiming
    locked_at = models.DateTimeField(null=True, blank=True)
    claim_token = models.UUIDField(null=True, blank=True, db_index=True)

    # Timing
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)
    done_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "crawl_jobs"
        ordering = ["-priority", "scheduled_at"]
        indexes = [
            models.Index(fields=["status", "priority", "scheduled_at"], name="job_status_prio_sched_idx"),
            models.Index(fields=["status", "locked_at"], name="job_status_locked_idx"),
        ]

    def __str__(self):
        return f"{self.kind} {self.url[:80]} ({self.status})"


class HostCache(models.Model):
    """Per-URL validators used to build conditional requests."""

    url = models.URLField(max_length=2000, unique=True)
    etag = models.CharField(max_length=500, blank=True)
    last_modified = models.CharField(max_length=100, blank=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "host_cache"

    def __str__(self):
        return self.url[:100]


class FetchLog(models.Model):
    """
    Append-only audit of fetch attempts.

    Used for observability only, never for control flow.
    """

    url = models.URLField(max_length=2000)
    domain = models.CharField(max_length=255, db_index=True)
    status_code = models.IntegerField(null=True, blank=True)
    etag = models.CharField(max_length=500, blank=True)
    last_modified = models.CharField(max_length=100, blank=True)
    byte_size = models.PositiveIntegerField(default=0)
    error = models.TextField(blank=True)
    fetched_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "fetch_logs"
        ordering = ["-fetched_at"]
        indexes = [
            models.Index(fields=["domain", "fetched_at"], name="fetchlog_domain_time_idx"),
        ]

    def __str__(self):
        outcome = self.status_code if self.status_code is not None else "error"
        return f"{self.domain} {outcome} ({self.fetched_at})"
