"""
Ingestion Django application.

This app crawls real-estate listing pages politely, ingests them into
canonical listings and groups listings that describe the same property.
"""

default_app_config = "ingestion.apps.IngestionConfig"
