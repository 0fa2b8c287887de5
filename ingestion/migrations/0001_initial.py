import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ListingSource",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("domain", models.CharField(help_text="Host without leading www.", max_length=255, unique=True)),
                ("enabled", models.BooleanField(default=True, help_text="Enable/disable crawling")),
                ("min_delay_ms", models.PositiveIntegerField(default=2000, help_text="Minimum delay between two fetches to this domain")),
                ("max_concurrency", models.PositiveIntegerField(default=2, help_text="Maximum simultaneous in-flight fetches")),
                ("seed_urls", models.JSONField(blank=True, default=list, help_text="List pages enqueued as discover jobs")),
                ("notes", models.TextField(blank=True, help_text="Internal notes")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "listing_sources",
                "ordering": ["domain"],
            },
        ),
        migrations.CreateModel(
            name="DomainFetchState",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("domain", models.CharField(max_length=255, unique=True)),
                ("last_fetch_at", models.DateTimeField(blank=True, null=True)),
                ("in_flight", models.PositiveIntegerField(default=0)),
            ],
            options={
                "db_table": "domain_fetch_state",
            },
        ),
        migrations.CreateModel(
            name="DedupGroup",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("signature", models.CharField(max_length=255, unique=True)),
                ("city", models.CharField(blank=True, max_length=100)),
                ("area_slug", models.CharField(blank=True, max_length=100)),
                ("centroid_lat", models.FloatField(blank=True, null=True)),
                ("centroid_lng", models.FloatField(blank=True, null=True)),
                ("canonical_url", models.URLField(blank=True, max_length=2000)),
                ("item_count", models.PositiveIntegerField(default=0)),
                ("price_min_eur", models.FloatField(blank=True, null=True)),
                ("price_max_eur", models.FloatField(blank=True, null=True)),
                ("source_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "dedup_groups",
                "ordering": ["-updated_at"],
                "indexes": [models.Index(fields=["city", "area_slug"], name="group_city_area_idx")],
            },
        ),
        migrations.CreateModel(
            name="CanonicalListing",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("source_url", models.URLField(db_index=True, max_length=2000)),
                ("domain", models.CharField(blank=True, max_length=255)),
                ("title", models.CharField(blank=True, max_length=500)),
                ("price", models.FloatField(blank=True, null=True)),
                ("currency", models.CharField(blank=True, max_length=8)),
                ("price_eur", models.FloatField(blank=True, null=True)),
                ("area_m2", models.FloatField(blank=True, null=True)),
                ("rooms", models.FloatField(blank=True, null=True)),
                ("floor_raw", models.CharField(blank=True, max_length=50)),
                ("year_built", models.IntegerField(blank=True, null=True)),
                ("address_raw", models.CharField(blank=True, max_length=500)),
                ("city", models.CharField(blank=True, max_length=100)),
                ("area_slug", models.CharField(blank=True, max_length=100)),
                ("lat", models.FloatField(blank=True, null=True)),
                ("lng", models.FloatField(blank=True, null=True)),
                ("photos", models.JSONField(blank=True, default=list)),
                ("photo_count", models.PositiveIntegerField(default=0)),
                ("content_hash", models.CharField(db_index=True, max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending Scoring"),
                            ("active", "Active"),
                            ("archived", "Archived"),
                            ("rejected", "Rejected"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "group_pinned",
                    models.BooleanField(
                        default=False,
                        help_text="Set by a manual split; automatic grouping leaves it alone",
                    ),
                ),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "group",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="listings",
                        to="ingestion.dedupgroup",
                    ),
                ),
            ],
            options={
                "db_table": "canonical_listings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["content_hash", "status"], name="listing_hash_status_idx"),
                    models.Index(fields=["source_url", "created_at"], name="listing_url_created_idx"),
                    models.Index(fields=["lat", "lng"], name="listing_lat_lng_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DedupEdge",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("score", models.FloatField(default=0.0)),
                ("reason", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "group",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="edges",
                        to="ingestion.dedupgroup",
                    ),
                ),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="group_edges",
                        to="ingestion.canonicallisting",
                    ),
                ),
            ],
            options={
                "db_table": "dedup_edges",
                "constraints": [
                    models.UniqueConstraint(fields=("group", "listing"), name="unique_group_listing_edge"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CompMatch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("distance_m", models.IntegerField(blank=True, null=True)),
                ("price_per_area", models.FloatField(blank=True, null=True)),
                ("score", models.FloatField()),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="comp_of",
                        to="ingestion.canonicallisting",
                    ),
                ),
                (
                    "subject",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="comp_matches",
                        to="ingestion.canonicallisting",
                    ),
                ),
            ],
            options={
                "db_table": "comp_matches",
                "ordering": ["-score"],
                "constraints": [
                    models.UniqueConstraint(fields=("subject", "candidate"), name="unique_subject_candidate"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CrawlJob",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("url", models.URLField(max_length=2000)),
                ("normalized_url", models.URLField(max_length=2000, unique=True)),
                ("domain", models.CharField(db_index=True, max_length=255)),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("discover", "Discover (list page)"),
                            ("detail", "Detail (listing page)"),
                        ],
                        default="detail",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("fetching", "Fetching"),
                            ("done", "Done"),
                            ("error", "Error"),
                            ("skipped", "Skipped (robots.txt)"),
                        ],
                        default="queued",
                        max_length=20,
                    ),
                ),
                ("priority", models.IntegerField(default=0, help_text="Higher = fetched first")),
                (
                    "scheduled_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Not fetched before this time (backoff)",
                    ),
                ),
                ("tries", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
                ("content_hash", models.CharField(blank=True, max_length=64)),
                ("locked_at", models.DateTimeField(blank=True, null=True)),
                ("claim_token", models.UUIDField(blank=True, db_index=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("done_at", models.DateTimeField(blank=True, null=True)),
                (
                    "listing",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="crawl_jobs",
                        to="ingestion.canonicallisting",
                    ),
                ),
            ],
            options={
                "db_table": "crawl_jobs",
                "ordering": ["-priority", "scheduled_at"],
                "indexes": [
                    models.Index(fields=["status", "priority", "scheduled_at"], name="job_status_prio_sched_idx"),
                    models.Index(fields=["status", "locked_at"], name="job_status_locked_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="HostCache",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("url", models.URLField(max_length=2000, unique=True)),
                ("etag", models.CharField(blank=True, max_length=500)),
                ("last_modified", models.CharField(blank=True, max_length=100)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "host_cache",
            },
        ),
        migrations.CreateModel(
            name="FetchLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("url", models.URLField(max_length=2000)),
                ("domain", models.CharField(db_index=True, max_length=255)),
                ("status_code", models.IntegerField(blank=True, null=True)),
                ("etag", models.CharField(blank=True, max_length=500)),
                ("last_modified", models.CharField(blank=True, max_length=100)),
                ("byte_size", models.PositiveIntegerField(default=0)),
                ("error", models.TextField(blank=True)),
                ("fetched_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "fetch_logs",
                "ordering": ["-fetched_at"],
                "indexes": [
                    models.Index(fields=["domain", "fetched_at"], name="fetchlog_domain_time_idx"),
                ],
            },
        ),
    ]
