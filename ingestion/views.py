"""
Service-level views.

Includes the health check endpoint used by monitoring and load balancers.
"""

from datetime import timedelta

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from django.utils import timezone

from ingestion.models import CrawlJob, CrawlJobStatus, FetchLog

HEALTH_CACHE_KEY = "ingestion:health:ping"


def get_celery_worker_count():
    """
    Count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if the broker is unreachable.
    """
    try:
        from config.celery import app as celery_app

        active = celery_app.control.inspect(timeout=1).active()
        return len(active) if active else 0
    except Exception:
        return 0


def health_check(request):
    """
    Health check endpoint for the ingestion service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - cache: "connected" or "error"
        - celery_workers: integer count of active workers
        - queue_depth: due jobs in ``queued`` state
        - terminal_errors: jobs in ``error`` state
        - fetch_success_rate_24h: share of 2xx/304 fetches in the last day

    Returns:
        JsonResponse, HTTP 200 when healthy, 503 otherwise
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception:
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    # Cache backs the robots.txt rules shared by all workers
    cache_status = "connected"
    try:
        cache.set(HEALTH_CACHE_KEY, "ok", 10)
        if cache.get(HEALTH_CACHE_KEY) != "ok":
            cache_status = "error"
    except Exception:
        cache_status = "error"

    queue_depth = 0
    terminal_errors = 0
    fetch_success_rate_24h = None

    if database_status == "connected":
        now = timezone.now()
        queue_depth = CrawlJob.objects.filter(
            status=CrawlJobStatus.QUEUED, scheduled_at__lte=now
        ).count()
        terminal_errors = CrawlJob.objects.filter(status=CrawlJobStatus.ERROR).count()

        recent = FetchLog.objects.filter(fetched_at__gte=now - timedelta(hours=24))
        total = recent.count()
        if total:
            ok = recent.filter(status_code__gte=200, status_code__lt=400).count()
            fetch_success_rate_24h = round(100.0 * ok / total, 1)

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "cache": cache_status,
            "celery_workers": get_celery_worker_count(),
            "queue_depth": queue_depth,
            "terminal_errors": terminal_errors,
            "fetch_success_rate_24h": fetch_success_rate_24h,
        },
        status=http_status,
    )
