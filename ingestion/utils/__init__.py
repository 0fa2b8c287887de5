"""Utility helpers for the ingestion app."""

from ingestion.utils.urls import domain_from, normalize_url
from ingestion.utils.scheduling import calculate_backoff, is_transient_status

__all__ = [
    "domain_from",
    "normalize_url",
    "calculate_backoff",
    "is_transient_status",
]
