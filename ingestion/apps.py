"""
Ingestion application configuration.
"""

from django.apps import AppConfig


class IngestionConfig(AppConfig):
    """Configuration for the ingestion Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "ingestion"
    verbose_name = "Listing Ingestion"
