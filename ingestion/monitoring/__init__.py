"""
Monitoring for the crawl pipeline.

Sentry capture with crawl context; FetchLog and terminal CrawlJobs are the
operator-facing audit trail (see ingestion.api).
"""

from .sentry_integration import (
    add_crawl_breadcrumb,
    capture_crawl_error,
    capture_terminal_failure,
)

__all__ = [
    "add_crawl_breadcrumb",
    "capture_crawl_error",
    "capture_terminal_failure",
]
