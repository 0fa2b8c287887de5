"""
Django base settings for the Listing Ingestion Service.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import json
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# Quick-start development settings - unsuitable for production
# See https://docs.djangoproject.com/en/4.2/howto/deployment/checklist/

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-ingestion-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "ingestion",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Cache Configuration
# https://docs.djangoproject.com/en/4.2/topics/cache/
# Holds the robots.txt cache. Configured in environment-specific settings.

CACHES = {
    # Override in environment-specific settings
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60  # a tick handles at most one batch

# Task routing - crawl, dedup and scoring queues
CELERY_TASK_ROUTES = {
    "ingestion.tasks.crawl_*": {"queue": "crawl"},
    "ingestion.tasks.resolve_*": {"queue": "dedup"},
    "ingestion.tasks.notify_scoring_service": {"queue": "scoring"},
}


# Django REST Framework Configuration
# https://www.django-rest-framework.org/

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 100,
}


# DRF Spectacular (OpenAPI/Swagger) Configuration
# https://drf-spectacular.readthedocs.io/

SPECTACULAR_SETTINGS = {
    "TITLE": "Listing Ingestion Service API",
    "DESCRIPTION": "Operator surface for the listing crawl and dedup pipeline",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "ingestion": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# External Service Configuration

# Downstream valuation/scoring service, notified once per new listing
VALUATION_SERVICE_URL = os.getenv("VALUATION_SERVICE_URL", "")
VALUATION_SERVICE_TOKEN = os.getenv("VALUATION_SERVICE_TOKEN", "")


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

if SENTRY_DSN:
    import sentry_sdk

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        send_default_pii=False,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        environment=SENTRY_ENVIRONMENT,
    )


# Ingestion Configuration

# Name matched against robots.txt User-agent groups
INGESTION_BOT_NAME = os.getenv("INGESTION_BOT_NAME", "ListingIngestBot")

# Fixed identifying User-Agent sent with every request
INGESTION_USER_AGENT = os.getenv(
    "INGESTION_USER_AGENT",
    f"{INGESTION_BOT_NAME}/1.0 (+https://listings.example.com/bot)",
)

# Absolute timeout for a listing fetch (seconds)
INGESTION_FETCH_TIMEOUT = float(os.getenv("INGESTION_FETCH_TIMEOUT", "15"))

# Timeout for robots.txt fetches (seconds) and how long parsed files are cached
INGESTION_ROBOTS_TIMEOUT = float(os.getenv("INGESTION_ROBOTS_TIMEOUT", "10"))
INGESTION_ROBOTS_TTL_SECONDS = int(os.getenv("INGESTION_ROBOTS_TTL_SECONDS", "3600"))

# Politeness defaults for domains without a ListingSource row
INGESTION_DEFAULT_MIN_DELAY_MS = int(os.getenv("INGESTION_DEFAULT_MIN_DELAY_MS", "2000"))
INGESTION_MAX_CONCURRENCY = int(os.getenv("INGESTION_MAX_CONCURRENCY", "2"))

# In-flight gate slots older than this are reclaimed (seconds)
INGESTION_GATE_LEASE_SECONDS = int(os.getenv("INGESTION_GATE_LEASE_SECONDS", "120"))

# Scheduler batch size and retry policy
INGESTION_BATCH_SIZE = int(os.getenv("INGESTION_BATCH_SIZE", "25"))
INGESTION_MAX_TRIES = int(os.getenv("INGESTION_MAX_TRIES", "3"))
INGESTION_BACKOFF_STEP_MINUTES = int(os.getenv("INGESTION_BACKOFF_STEP_MINUTES", "5"))

# Jobs stuck in "fetching" longer than this are returned to the queue (minutes)
INGESTION_CLAIM_LEASE_MINUTES = int(os.getenv("INGESTION_CLAIM_LEASE_MINUTES", "15"))

# Conversion rates used to compare prices quoted in different currencies
INGESTION_FX_RATES_TO_EUR = json.loads(
    os.getenv(
        "INGESTION_FX_RATES_TO_EUR",
        '{"EUR": 1.0, "RON": 0.201, "USD": 0.92, "GBP": 1.17}',
    )
)
