"""
Tests for URL normalization and retry scheduling helpers.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from ingestion.exceptions import InvalidURLError
from ingestion.utils import calculate_backoff, domain_from, is_transient_status, normalize_url


class TestNormalizeUrl:
    """Canonical URL form used as the crawl queue key."""

    def test_lowercases_scheme_and_host(self):
        assert normalize_url("HTTPS://Example.COM/Listing/42") == "https://example.com/Listing/42"

    def test_drops_fragment_and_tracking_params(self):
        url = "https://example.com/listing/42?utm_source=fb&utm_medium=cpc&fbclid=abc#photos"
        assert normalize_url(url) == "https://example.com/listing/42"

    def test_sorts_remaining_query_params(self):
        url = "https://example.com/search?page=2&city=bucuresti"
        assert normalize_url(url) == "https://example.com/search?city=bucuresti&page=2"

    def test_strips_trailing_slash_except_root(self):
        assert normalize_url("https://example.com/listing/42/") == "https://example.com/listing/42"
        assert normalize_url("https://example.com") == "https://example.com/"
        assert normalize_url("https://example.com/") == "https://example.com/"

    def test_drops_default_port_keeps_custom_port(self):
        assert normalize_url("https://example.com:443/a") == "https://example.com/a"
        assert normalize_url("http://example.com:80/a") == "http://example.com/a"
        assert normalize_url("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_equivalent_urls_share_normal_form(self):
        variants = [
            "https://example.com/listing/42",
            "https://EXAMPLE.com/listing/42/",
            "https://example.com/listing/42?utm_campaign=x",
            "  https://example.com/listing/42#top  ",
        ]
        assert len({normalize_url(v) for v in variants}) == 1

    @pytest.mark.parametrize("url", ["", "   ", None, "example.com/listing", "ftp://example.com/a", "https:///a"])
    def test_rejects_invalid_urls(self, url):
        with pytest.raises(InvalidURLError):
            normalize_url(url)


class TestDomainFrom:

    def test_strips_www(self):
        assert domain_from("https://www.example.com/a") == "example.com"

    def test_lowercases(self):
        assert domain_from("https://Imobiliare.RO/x") == "imobiliare.ro"

    def test_garbage_gives_empty_string(self):
        assert domain_from("not a url") == ""


class TestBackoff:
    """Linear backoff: tries * 5 minutes, terminal at 3 tries."""

    def test_first_failure_waits_one_step(self):
        now = timezone.now()
        assert calculate_backoff(1, now) == now + timedelta(minutes=5)

    def test_second_failure_waits_two_steps(self):
        now = timezone.now()
        assert calculate_backoff(2, now) == now + timedelta(minutes=10)

    def test_attempt_cap_is_terminal(self):
        assert calculate_backoff(3) is None
        assert calculate_backoff(7) is None

    def test_step_and_cap_follow_settings(self, settings):
        settings.INGESTION_BACKOFF_STEP_MINUTES = 1
        settings.INGESTION_MAX_TRIES = 5
        now = timezone.now()
        assert calculate_backoff(4, now) == now + timedelta(minutes=4)
        assert calculate_backoff(5, now) is None


class TestTransientStatus:

    @pytest.mark.parametrize("status", [0, 429, 500, 502, 503])
    def test_transient(self, status):
        assert is_transient_status(status) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_not_transient(self, status):
        assert is_transient_status(status) is False
