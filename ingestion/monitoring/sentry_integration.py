"""
Sentry error tracking for the crawl pipeline.

- Breadcrumbs carry crawl context (domain, URL, job)
- Sensitive values (auth headers, tokens, cookies) are filtered out
- Exceptions and terminal job failures are captured with job context

Sentry itself is initialised in settings when SENTRY_DSN is set; without a
DSN every capture here is a no-op inside the SDK.

Usage:
    from ingestion.monitoring import capture_crawl_error

    try:
        upsert_listing(url, fields)
    except Exception as e:
        capture_crawl_error(error=e, job=job)
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {
    "cookie",
    "cookies",
    "api_key",
    "apikey",
    "authorization",
    "password",
    "secret",
    "token",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace values of sensitive-looking keys, recursing into dicts."""
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_crawl_breadcrumb(
    domain: str,
    url: str,
    message: str = "Crawl operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    data = {"domain": domain, "url": url}
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(category="crawl", message=message, level=level, data=data)
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def _job_context(job) -> Dict[str, Any]:
    if job is None:
        return {}
    return {
        "job_id": str(job.pk),
        "kind": job.kind,
        "tries": job.tries,
        "status": job.status,
    }


def capture_crawl_error(
    error: Exception,
    job=None,
    url: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an exception raised while processing a crawl job.

    Args:
        error: The exception that occurred
        job: CrawlJob being processed (optional)
        url: URL being processed when no job is at hand
        extra_context: Additional context (filtered for sensitive data)
    """
    url = url or (job.url if job is not None else "unknown")
    domain = job.domain if job is not None else ""

    add_crawl_breadcrumb(
        domain=domain,
        url=url,
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("crawl.domain", domain or "unknown")
            scope.set_extra("crawl_url", url)
            scope.set_extra("crawl_job", _job_context(job))
            if extra_context:
                scope.set_extra("crawl_context", _filter_sensitive_data(extra_context))
            sentry_sdk.capture_exception(error)
    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_terminal_failure(job, reason: str) -> None:
    """Report a job that reached terminal ``error`` without an exception."""
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("crawl.domain", job.domain)
            scope.set_tag("crawl.outcome", "terminal_error")
            scope.set_extra("crawl_url", job.url)
            scope.set_extra("crawl_job", _job_context(job))
            sentry_sdk.capture_message(
                f"Crawl job failed terminally: {reason[:200]}", level="warning"
            )
    except Exception as e:
        logger.warning(f"Failed to capture terminal failure to Sentry: {e}")
