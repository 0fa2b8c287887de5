"""
Tests for the CrawlJob queue.

Covers idempotent enqueueing, domain-diverse batch selection, atomic
claiming, retry/backoff transitions and claim-token protection.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from ingestion.models import CrawlJob, CrawlJobKind, CrawlJobStatus, ListingSource
from ingestion.queue import crawl_queue


@pytest.mark.django_db
class TestEnqueue:
    """enqueue_url is idempotent on the normalized URL."""

    def test_creates_job_with_normalized_url_and_domain(self):
        result = crawl_queue.enqueue_url("https://WWW.Example.com/listing/42/?utm_source=x")

        assert result.created
        job = CrawlJob.objects.get(pk=result.job_id)
        assert job.normalized_url == "https://www.example.com/listing/42"
        assert job.domain == "example.com"
        assert job.status == CrawlJobStatus.QUEUED
        assert job.kind == CrawlJobKind.DETAIL

    def test_second_enqueue_is_skipped(self):
        first = crawl_queue.enqueue_url("https://example.com/listing/42")
        second = crawl_queue.enqueue_url("https://example.com/listing/42#gallery", priority=5)

        assert first.created
        assert second.status == "skipped"
        assert second.job_id == first.job_id
        assert CrawlJob.objects.count() == 1
        # Existing job keeps its original priority
        assert CrawlJob.objects.get().priority == 0

    def test_invalid_url_is_reported_not_raised(self):
        result = crawl_queue.enqueue_url("mailto:agent@example.com")

        assert result.status == "invalid"
        assert result.error
        assert CrawlJob.objects.count() == 0

    def test_enqueue_many_counts_outcomes(self):
        counts = crawl_queue.enqueue_many(
            [
                "https://example.com/a",
                "https://example.com/b",
                "https://example.com/a/",
                "not-a-url",
            ]
        )
        assert counts == {"created": 2, "skipped": 1, "invalid": 1}


@pytest.mark.django_db
class TestSelectBatch:
    """Batch selection: due jobs only, priority order, one job per domain."""

    def test_one_job_per_domain(self, make_job):
        for i in range(10):
            make_job(f"https://busy.com/listing/{i}", priority=10)
        quiet = make_job("https://quiet.com/listing/1", priority=0)

        ids = crawl_queue.select_batch(2)

        domains = list(CrawlJob.objects.filter(id__in=ids).values_list("domain", flat=True))
        assert sorted(domains) == ["busy.com", "quiet.com"]
        assert quiet.id in ids

    def test_fewer_domains_than_batch_size(self, make_job):
        make_job("https://a.com/1")
        make_job("https://a.com/2")

        assert len(crawl_queue.select_batch(5)) == 1

    def test_priority_then_schedule_order(self, make_job):
        now = timezone.now()
        make_job("https://a.com/old-low", priority=0, scheduled_at=now - timedelta(hours=2))
        high = make_job("https://a.com/high", priority=5, scheduled_at=now - timedelta(minutes=1))

        assert crawl_queue.select_batch(1) == [high.id]

    def test_future_jobs_are_not_due(self, make_job):
        make_job("https://a.com/later", scheduled_at=timezone.now() + timedelta(minutes=10))

        assert crawl_queue.select_batch(5) == []

    def test_disabled_source_is_excluded(self, make_job):
        ListingSource.objects.create(domain="off.com", enabled=False)
        make_job("https://off.com/1")
        on = make_job("https://on.com/1")

        assert crawl_queue.select_batch(5) == [on.id]

    def test_non_queued_jobs_are_ignored(self, make_job):
        make_job("https://a.com/done", status=CrawlJobStatus.DONE)
        make_job("https://b.com/fetching", status=CrawlJobStatus.FETCHING)

        assert crawl_queue.select_batch(5) == []


@pytest.mark.django_db
class TestClaim:
    """Claiming is a single conditional update on status=queued."""

    def test_claim_moves_to_fetching_with_token(self, make_job):
        job = make_job("https://a.com/1")

        claimed = crawl_queue.claim([job.id])

        assert len(claimed) == 1
        assert claimed[0].status == CrawlJobStatus.FETCHING
        assert claimed[0].claim_token is not None
        assert claimed[0].locked_at is not None

    def test_job_is_claimed_only_once(self, make_job):
        job = make_job("https://a.com/1")

        first = crawl_queue.claim([job.id])
        second = crawl_queue.claim([job.id])

        assert len(first) == 1
        assert second == []

    def test_competing_schedulers_never_share_a_job(self, make_job):
        total = 12
        for i in range(total):
            make_job(f"https://site{i % 6}.ro/anunt/{i}")

        taken = {worker: [] for worker in range(3)}
        while CrawlJob.objects.filter(status=CrawlJobStatus.QUEUED).exists():
            # Every worker selects before any of them claims, so all see the same ids
            selections = {worker: crawl_queue.select_batch(4) for worker in taken}
            for worker, ids in selections.items():
                taken[worker].extend(job.id for job in crawl_queue.claim(ids))

        claimed = [job_id for ids in taken.values() for job_id in ids]
        assert len(claimed) == total
        assert len(set(claimed)) == total
        assert CrawlJob.objects.filter(status=CrawlJobStatus.FETCHING).count() == total

    def test_take_batch_claims_selected_jobs(self, make_job):
        make_job("https://a.com/1")
        make_job("https://b.com/1")

        jobs = crawl_queue.take_batch(10)

        assert {j.domain for j in jobs} == {"a.com", "b.com"}
        assert CrawlJob.objects.filter(status=CrawlJobStatus.FETCHING).count() == 2


@pytest.mark.django_db
class TestTransitions:
    """Outcome transitions of a claimed job."""

    def _claimed(self, make_job, **overrides):
        job = make_job("https://a.com/listing/1", **overrides)
        return crawl_queue.claim([job.id])[0]

    def test_mark_done_records_listing_and_hash(self, make_job, make_listing):
        job = self._claimed(make_job)
        listing = make_listing()

        assert crawl_queue.mark_done(job, listing_id=listing.id, content_hash="abc")

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.DONE
        assert job.listing_id == listing.id
        assert job.content_hash == "abc"
        assert job.done_at is not None
        assert job.claim_token is None

    def test_transient_failure_requeues_with_backoff(self, make_job):
        job = self._claimed(make_job)
        before = timezone.now()

        crawl_queue.mark_failed(job, "HTTP 503", transient=True)

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.QUEUED
        assert job.tries == 1
        assert job.last_error == "HTTP 503"
        assert job.scheduled_at >= before + timedelta(minutes=5)
        assert job.scheduled_at <= timezone.now() + timedelta(minutes=5)

    def test_backoff_grows_with_tries(self, make_job):
        job = self._claimed(make_job, tries=1)
        before = timezone.now()

        crawl_queue.mark_failed(job, "timeout")

        job.refresh_from_db()
        assert job.tries == 2
        assert job.scheduled_at >= before + timedelta(minutes=10)

    def test_third_failure_is_terminal(self, make_job):
        job = self._claimed(make_job, tries=2)

        crawl_queue.mark_failed(job, "HTTP 500")

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.ERROR
        assert job.tries == 3

    def test_non_transient_failure_is_terminal_at_once(self, make_job):
        job = self._claimed(make_job)

        crawl_queue.mark_failed(job, "HTTP 404", transient=False)

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.ERROR
        assert job.tries == 1

    def test_mark_skipped(self, make_job):
        job = self._claimed(make_job)

        crawl_queue.mark_skipped(job, "Disallowed by robots.txt")

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.SKIPPED
        assert "robots" in job.last_error

    def test_requeue_does_not_count_a_try(self, make_job):
        job = self._claimed(make_job)

        crawl_queue.requeue(job)

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.QUEUED
        assert job.tries == 0
        assert job.claim_token is None


@pytest.mark.django_db
class TestStaleClaims:
    """Abandoned claims are released; the old owner cannot write back."""

    def test_release_stale_claims(self, make_job):
        job = make_job("https://a.com/1")
        crawl_queue.claim([job.id])
        CrawlJob.objects.filter(pk=job.pk).update(locked_at=timezone.now() - timedelta(hours=1))

        assert crawl_queue.release_stale_claims(lease_minutes=15) == 1

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.QUEUED
        assert job.claim_token is None

    def test_fresh_claims_are_kept(self, make_job):
        job = make_job("https://a.com/1")
        crawl_queue.claim([job.id])

        assert crawl_queue.release_stale_claims(lease_minutes=15) == 0

    def test_previous_owner_loses_write_access(self, make_job):
        job = make_job("https://a.com/1")
        old_owner = crawl_queue.claim([job.id])[0]
        CrawlJob.objects.filter(pk=job.pk).update(locked_at=timezone.now() - timedelta(hours=1))
        crawl_queue.release_stale_claims(lease_minutes=15)
        new_owner = crawl_queue.claim([job.id])[0]

        assert crawl_queue.mark_done(old_owner) is False

        job.refresh_from_db()
        assert job.status == CrawlJobStatus.FETCHING
        assert job.claim_token == new_owner.claim_token


@pytest.mark.django_db
class TestSeedingAndRefresh:

    def test_seed_sources_enqueues_discover_jobs(self, listing_source):
        counts = crawl_queue.seed_sources()

        assert counts["sources"] == 1
        assert counts["created"] == 1
        job = CrawlJob.objects.get()
        assert job.kind == CrawlJobKind.DISCOVER
        assert job.priority == crawl_queue.SEED_PRIORITY

    def test_seed_sources_requeues_crawled_seeds(self, listing_source):
        crawl_queue.seed_sources()
        CrawlJob.objects.update(status=CrawlJobStatus.DONE)

        counts = crawl_queue.seed_sources()

        assert counts["requeued"] == 1
        assert CrawlJob.objects.get().status == CrawlJobStatus.QUEUED

    def test_disabled_sources_are_not_seeded(self, listing_source):
        listing_source.enabled = False
        listing_source.save()

        assert crawl_queue.seed_sources()["sources"] == 0
        assert CrawlJob.objects.count() == 0

    def test_refresh_recent_listings(self, make_listing):
        recent = make_listing(source_url="https://example.com/listing/1")
        make_listing(
            source_url="https://example.com/listing/old",
            created_at=timezone.now() - timedelta(days=60),
        )

        counts = crawl_queue.refresh_recent_listings(days=21)

        assert counts["checked"] == 1
        job = CrawlJob.objects.get()
        assert job.normalized_url == recent.source_url
        assert job.priority == crawl_queue.REFRESH_PRIORITY

    def test_terminal_errors_filtered_by_domain(self, make_job):
        make_job("https://a.com/1", status=CrawlJobStatus.ERROR, last_error="HTTP 404")
        make_job("https://b.com/1", status=CrawlJobStatus.ERROR, last_error="HTTP 410")
        make_job("https://a.com/2")

        assert crawl_queue.terminal_errors().count() == 2
        assert [j.domain for j in crawl_queue.terminal_errors("a.com")] == ["a.com"]
