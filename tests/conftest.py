"""
Pytest configuration and fixtures for the Listing Ingestion test suite.

HTTP never leaves the process: every client is an ``httpx.Client`` on a
``MockTransport`` whose routes are registered per test on ``fake_site``.
"""

import uuid

import httpx
import pytest
from django.core.cache import cache


class FakeSite:
    """
    URL-keyed responses for ``httpx.MockTransport``.

    Each route holds a list of responses served in order; the last one
    repeats. A response is either a ``(status, text, headers)`` tuple or a
    callable taking the request. Unknown URLs answer 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, url, *responses):
        self.routes[url] = list(responses)

    def page(self, url, text, status=200, headers=None):
        self.add(url, (status, text, headers or {}))

    def requests_for(self, url):
        return [r for r in self.requests if str(r.url) == url]

    def handler(self, request):
        self.requests.append(request)
        responses = self.routes.get(str(request.url))
        if not responses:
            return httpx.Response(404, text="Not found")

        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if callable(response):
            return response(request)
        status, text, headers = response
        return httpx.Response(status, text=text, headers=headers)


@pytest.fixture(autouse=True)
def clear_cache():
    """robots.txt rules and throttle counters live in the cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def http_client(fake_site):
    client = httpx.Client(transport=httpx.MockTransport(fake_site.handler))
    yield client
    client.close()


@pytest.fixture
def robots_cache(http_client):
    from ingestion.fetchers.robots import RobotsCache

    return RobotsCache(cache=cache, client=http_client)


@pytest.fixture
def gate(robots_cache):
    """Politeness gate with in-process state and no minimum delay."""
    from ingestion.fetchers.politeness import InMemoryGateState, PolitenessGate

    return PolitenessGate(
        state=InMemoryGateState(),
        robots=robots_cache,
        default_min_delay_ms=0,
        default_max_concurrency=2,
    )


@pytest.fixture
def fetcher(http_client):
    from ingestion.fetchers.conditional_fetcher import ConditionalFetcher

    return ConditionalFetcher(client=http_client, timeout=5)


@pytest.fixture
def scheduler(gate, fetcher):
    from ingestion.services.scheduler import CrawlScheduler

    return CrawlScheduler(gate=gate, fetcher=fetcher, dispatch_resolution=False)


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def operator_client(api_client, django_user_model):
    """API client authenticated as an operator."""
    user = django_user_model.objects.create_user(username="operator", password="operator-pass")
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def listing_source(db):
    """Create an enabled ListingSource for example.com."""
    from ingestion.models import ListingSource

    return ListingSource.objects.create(
        domain="example.com",
        enabled=True,
        min_delay_ms=0,
        max_concurrency=2,
        seed_urls=["https://example.com/vanzare"],
    )


@pytest.fixture
def make_listing(db):
    """Factory for CanonicalListing rows with sensible defaults."""
    from ingestion.models import CanonicalListing

    def _make(**overrides):
        values = {
            "source_url": f"https://example.com/listing/{uuid.uuid4().hex[:8]}",
            "domain": "example.com",
            "title": "Apartament 2 camere",
            "price": 100000.0,
            "currency": "EUR",
            "price_eur": 100000.0,
            "area_m2": 50.0,
            "rooms": 2.0,
            "city": "Bucuresti",
            "lat": 44.43,
            "lng": 26.10,
            "content_hash": uuid.uuid4().hex,
        }
        values.update(overrides)
        return CanonicalListing.objects.create(**values)

    return _make


@pytest.fixture
def make_job(db):
    """Factory for queued CrawlJob rows."""
    from ingestion.models import CrawlJob, CrawlJobKind
    from ingestion.utils.urls import domain_from, normalize_url

    def _make(url, kind=CrawlJobKind.DETAIL, **overrides):
        normalized = normalize_url(url)
        values = {
            "url": url,
            "normalized_url": normalized,
            "domain": domain_from(normalized),
            "kind": kind,
        }
        values.update(overrides)
        return CrawlJob.objects.create(**values)

    return _make
