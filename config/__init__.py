"""
Django project package for the Listing Ingestion Service.

Importing the Celery app here makes shared tasks bind to it.
"""

from .celery import app as celery_app

__all__ = ["celery_app"]
