"""
API URL configuration.

Endpoints:
- GET  /api/v1/crawl/errors/                - Terminal crawl errors
- GET  /api/v1/crawl/fetch-logs/            - Recent fetch log entries
- GET  /api/v1/crawl/stats/                 - Queue counts per status and domain
- POST /api/v1/groups/<group_id>/split/     - Split a listing out of a dedup group
"""

from django.urls import path

from ingestion.api.views import (
    crawl_errors,
    crawl_stats,
    fetch_logs,
    split_group_member,
)

app_name = 'ingestion_api'

urlpatterns = [
    # Crawl audit endpoints
    path('crawl/errors/', crawl_errors, name='crawl_errors'),
    path('crawl/fetch-logs/', fetch_logs, name='fetch_logs'),
    path('crawl/stats/', crawl_stats, name='crawl_stats'),

    # Dedup overrides
    path('groups/<uuid:group_id>/split/', split_group_member, name='split_group_member'),
]
