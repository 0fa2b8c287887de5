"""
Celery configuration for the Listing Ingestion Service.

This module configures Celery for asynchronous task processing
with separate task queues for crawl, dedup and scoring operations.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("listing_ingestion")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Configure task queues for different operations
app.conf.task_queues = {
    "crawl": {
        "exchange": "crawl",
        "routing_key": "crawl",
    },
    "dedup": {
        "exchange": "dedup",
        "routing_key": "dedup",
    },
    "scoring": {
        "exchange": "scoring",
        "routing_key": "scoring",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Route specific tasks to their queues
app.conf.task_routes = {
    "ingestion.tasks.crawl_*": {"queue": "crawl"},
    "ingestion.tasks.resolve_*": {"queue": "dedup"},
    "ingestion.tasks.notify_scoring_service": {"queue": "scoring"},
    "ingestion.tasks.seed_sources": {"queue": "default"},
    "ingestion.tasks.refresh_recent_listings": {"queue": "default"},
}

# Configure Celery Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Several ticks may overlap; claiming is atomic per job
    "crawl-tick-every-minute": {
        "task": "ingestion.tasks.crawl_tick",
        "schedule": crontab(minute="*"),
    },
    "crawl-release-stale-claims-every-10-minutes": {
        "task": "ingestion.tasks.crawl_release_stale_claims",
        "schedule": crontab(minute="*/10"),
    },
    "seed-sources-daily": {
        "task": "ingestion.tasks.seed_sources",
        "schedule": crontab(minute=0, hour=3),
    },
    "refresh-recent-listings-every-6-hours": {
        "task": "ingestion.tasks.refresh_recent_listings",
        "schedule": crontab(minute=30, hour="*/6"),
    },
}
