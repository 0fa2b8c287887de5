"""
Retry scheduling for crawl jobs.

Backoff is linear in the attempt count: the n-th failure pushes the job
``n * INGESTION_BACKOFF_STEP_MINUTES`` into the future, until the attempt
cap turns the failure terminal.
"""

from datetime import timedelta

from django.conf import settings
from django.utils import timezone


def get_max_tries() -> int:
    return getattr(settings, "INGESTION_MAX_TRIES", 3)


def get_backoff_step() -> timedelta:
    return timedelta(minutes=getattr(settings, "INGESTION_BACKOFF_STEP_MINUTES", 5))


def calculate_backoff(tries: int, from_time=None):
    """
    Calculate when a failed job becomes due again.

    Args:
        tries: Attempt count after incrementing for this failure
        from_time: Base time to calculate from (defaults to now)

    Returns:
        datetime for the retry, or None when the attempt cap is reached
    """
    if from_time is None:
        from_time = timezone.now()

    if tries >= get_max_tries():
        return None

    return from_time + get_backoff_step() * tries


def is_transient_status(status_code: int) -> bool:
    """
    Whether a fetch status is worth retrying.

    0 stands for network errors and timeouts.
    """
    return status_code == 0 or status_code == 429 or status_code >= 500
