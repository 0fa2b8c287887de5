"""
Django admin configuration for ingestion models.

ListingSource is the operator's politeness configuration. Crawl jobs,
fetch logs and dedup groups are mostly read-only views with a few actions
(retry terminal jobs, re-seed sources, split a listing out of its group).
"""

from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html

from ingestion.models import (
    CanonicalListing,
    CompMatch,
    CrawlJob,
    CrawlJobStatus,
    DedupEdge,
    DedupGroup,
    DomainFetchState,
    FetchLog,
    HostCache,
    ListingSource,
)
from ingestion.queue import crawl_queue
from ingestion.services.dedup_resolver import split_from_group

BADGE_STYLE = (
    '<span style="background-color: {}; color: white; '
    'padding: 2px 8px; border-radius: 4px;">{}</span>'
)


@admin.register(ListingSource)
class ListingSourceAdmin(admin.ModelAdmin):
    """Per-domain politeness settings and seed pages."""

    list_display = ["domain", "enabled_badge", "min_delay_ms", "max_concurrency", "updated_at"]
    list_filter = ["enabled"]
    search_fields = ["domain", "notes"]
    readonly_fields = ["created_at", "updated_at"]

    fieldsets = (
        ("Source", {
            "fields": ("domain", "enabled"),
        }),
        ("Politeness", {
            "fields": ("min_delay_ms", "max_concurrency"),
        }),
        ("Seeds", {
            "fields": ("seed_urls",),
        }),
        ("Metadata", {
            "fields": ("notes", "created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["enable_sources", "disable_sources", "seed_now"]

    def enabled_badge(self, obj):
        if obj.enabled:
            return format_html(BADGE_STYLE, "#28a745", "Enabled")
        return format_html(BADGE_STYLE, "#6c757d", "Disabled")
    enabled_badge.short_description = "Enabled"
    enabled_badge.admin_order_field = "enabled"

    @admin.action(description="Enable selected sources")
    def enable_sources(self, request, queryset):
        count = queryset.update(enabled=True, updated_at=timezone.now())
        self.message_user(request, f"Enabled {count} source(s).")

    @admin.action(description="Disable selected sources")
    def disable_sources(self, request, queryset):
        count = queryset.update(enabled=False, updated_at=timezone.now())
        self.message_user(request, f"Disabled {count} source(s).")

    @admin.action(description="Enqueue seed pages now")
    def seed_now(self, request, queryset):
        created = 0
        for source in queryset.filter(enabled=True):
            created += crawl_queue.enqueue_many(
                source.seed_urls or [], kind="discover", priority=crawl_queue.SEED_PRIORITY
            )["created"]
        self.message_user(request, f"Enqueued {created} seed page(s).")


@admin.register(CrawlJob)
class CrawlJobAdmin(admin.ModelAdmin):
    """Crawl queue view; terminal errors can be sent back to the queue."""

    list_display = [
        "id_short",
        "domain",
        "kind",
        "status_badge",
        "priority",
        "tries",
        "scheduled_at",
        "last_error_short",
    ]
    list_filter = ["status", "kind", "domain"]
    search_fields = ["url", "normalized_url", "last_error"]
    readonly_fields = [
        "id",
        "url",
        "normalized_url",
        "domain",
        "kind",
        "status",
        "tries",
        "last_error",
        "content_hash",
        "listing",
        "locked_at",
        "claim_token",
        "created_at",
        "updated_at",
        "done_at",
    ]
    ordering = ["-updated_at"]
    actions = ["retry_jobs"]

    def id_short(self, obj):
        return str(obj.id)[:8]
    id_short.short_description = "Job ID"

    def status_badge(self, obj):
        colors = {
            CrawlJobStatus.QUEUED: "#ffc107",
            CrawlJobStatus.FETCHING: "#007bff",
            CrawlJobStatus.DONE: "#28a745",
            CrawlJobStatus.ERROR: "#dc3545",
            CrawlJobStatus.SKIPPED: "#6c757d",
        }
        return format_html(BADGE_STYLE, colors.get(obj.status, "#6c757d"), obj.get_status_display())
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def last_error_short(self, obj):
        return (obj.last_error or "")[:80]
    last_error_short.short_description = "Last error"

    @admin.action(description="Retry selected jobs (reset tries)")
    def retry_jobs(self, request, queryset):
        now = timezone.now()
        count = queryset.filter(status=CrawlJobStatus.ERROR).update(
            status=CrawlJobStatus.QUEUED,
            tries=0,
            scheduled_at=now,
            updated_at=now,
        )
        self.message_user(request, f"Requeued {count} job(s).")

    def has_add_permission(self, request):
        return False


@admin.register(FetchLog)
class FetchLogAdmin(admin.ModelAdmin):
    list_display = ["fetched_at", "domain", "status_code", "byte_size", "url", "error"]
    list_filter = ["status_code", "domain"]
    search_fields = ["url", "error"]
    ordering = ["-fetched_at"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(HostCache)
class HostCacheAdmin(admin.ModelAdmin):
    list_display = ["url", "etag", "last_modified", "updated_at"]
    search_fields = ["url"]


@admin.register(DomainFetchState)
class DomainFetchStateAdmin(admin.ModelAdmin):
    list_display = ["domain", "last_fetch_at", "in_flight"]
    search_fields = ["domain"]


class DedupEdgeInline(admin.TabularInline):
    model = DedupEdge
    extra = 0
    fields = ["listing", "score", "reason", "created_at"]
    readonly_fields = fields


@admin.register(DedupGroup)
class DedupGroupAdmin(admin.ModelAdmin):
    list_display = [
        "signature",
        "city",
        "item_count",
        "source_count",
        "price_min_eur",
        "price_max_eur",
        "updated_at",
    ]
    list_filter = ["city"]
    search_fields = ["signature", "canonical_url"]
    inlines = [DedupEdgeInline]


@admin.register(CanonicalListing)
class CanonicalListingAdmin(admin.ModelAdmin):
    list_display = [
        "title_short",
        "domain",
        "price",
        "currency",
        "area_m2",
        "rooms",
        "city",
        "status",
        "group",
        "group_pinned",
        "created_at",
    ]
    list_filter = ["status", "domain", "group_pinned"]
    search_fields = ["title", "source_url", "address_raw", "content_hash"]
    readonly_fields = ["content_hash", "created_at", "updated_at"]
    actions = ["split_out_of_group"]

    def title_short(self, obj):
        return (obj.title or obj.source_url)[:60]
    title_short.short_description = "Title"

    @admin.action(description="Split out of dedup group")
    def split_out_of_group(self, request, queryset):
        count = 0
        for listing in queryset.filter(group__isnull=False):
            split_from_group(listing)
            count += 1
        self.message_user(request, f"Split {count} listing(s) into their own groups.")


@admin.register(CompMatch)
class CompMatchAdmin(admin.ModelAdmin):
    list_display = ["subject", "candidate", "score", "distance_m", "price_per_area", "created_at"]
    ordering = ["-created_at", "-score"]

    def has_add_permission(self, request):
        return False
