"""
Tests for the operator API and the health check.
"""

import uuid
from unittest.mock import patch

import pytest
from django.urls import reverse

from ingestion.models import CrawlJobStatus, DedupEdge, FetchLog
from ingestion.services.dedup_resolver import attach_to_group


@pytest.fixture
def terminal_job(make_job):
    return make_job(
        "https://example.com/anunt/1",
        status=CrawlJobStatus.ERROR,
        tries=3,
        last_error="HTTP 503",
    )


@pytest.mark.django_db
class TestAuthentication:

    @pytest.mark.parametrize("name", ["crawl_errors", "fetch_logs", "crawl_stats"])
    def test_requires_authentication(self, api_client, name):
        response = api_client.get(reverse(f"ingestion_api:{name}"))

        assert response.status_code in (401, 403)


@pytest.mark.django_db
class TestCrawlErrors:

    def test_lists_terminal_jobs(self, operator_client, terminal_job, make_job):
        make_job("https://example.com/anunt/2")

        response = operator_client.get(reverse("ingestion_api:crawl_errors"))

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        error = data["errors"][0]
        assert error["job_id"] == str(terminal_job.id)
        assert error["last_error"] == "HTTP 503"
        assert error["tries"] == 3

    def test_filter_by_domain(self, operator_client, terminal_job, make_job):
        make_job("https://other.ro/anunt/1", status=CrawlJobStatus.ERROR, last_error="HTTP 404")

        response = operator_client.get(reverse("ingestion_api:crawl_errors"), {"domain": "other.ro"})

        errors = response.json()["errors"]
        assert [e["domain"] for e in errors] == ["other.ro"]

    def test_limit(self, operator_client, make_job):
        for i in range(3):
            make_job(f"https://example.com/anunt/{i}", status=CrawlJobStatus.ERROR)

        response = operator_client.get(reverse("ingestion_api:crawl_errors"), {"limit": "2"})

        assert response.json()["count"] == 2


@pytest.mark.django_db
class TestFetchLogs:

    @pytest.fixture
    def logs(self):
        FetchLog.objects.create(url="https://example.com/a", domain="example.com", status_code=200, byte_size=10)
        FetchLog.objects.create(url="https://example.com/b", domain="example.com", status_code=503)
        FetchLog.objects.create(url="https://other.ro/a", domain="other.ro", status_code=None, error="refused")

    def test_lists_all(self, operator_client, logs):
        response = operator_client.get(reverse("ingestion_api:fetch_logs"))

        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_filter_by_status_code(self, operator_client, logs):
        response = operator_client.get(reverse("ingestion_api:fetch_logs"), {"status_code": "503"})

        assert [log["url"] for log in response.json()["logs"]] == ["https://example.com/b"]

    def test_filter_by_domain(self, operator_client, logs):
        response = operator_client.get(reverse("ingestion_api:fetch_logs"), {"domain": "other.ro"})

        logs = response.json()["logs"]
        assert len(logs) == 1
        assert logs[0]["error"] == "refused"

    def test_invalid_status_code(self, operator_client):
        response = operator_client.get(reverse("ingestion_api:fetch_logs"), {"status_code": "abc"})

        assert response.status_code == 400


@pytest.mark.django_db
class TestCrawlStats:

    def test_counts(self, operator_client, make_job, make_listing, terminal_job):
        make_job("https://example.com/anunt/2")
        make_job("https://other.ro/anunt/1")
        make_listing()

        data = operator_client.get(reverse("ingestion_api:crawl_stats")).json()

        assert data["by_status"] == {"queued": 2, "error": 1}
        assert data["by_domain"]["example.com"] == {"queued": 1, "error": 1}
        assert data["by_domain"]["other.ro"] == {"queued": 1}
        assert data["listings"] == 1
        assert data["groups"] == 0


@pytest.mark.django_db
class TestSplitGroupMember:

    @pytest.fixture
    def grouped(self, make_listing):
        first = make_listing()
        second = make_listing(domain="other.ro", source_url="https://other.ro/anunt/1")
        group = attach_to_group(first)
        attach_to_group(second)
        return group, first, second

    def _url(self, group_id):
        return reverse("ingestion_api:split_group_member", kwargs={"group_id": group_id})

    def test_split(self, operator_client, grouped):
        group, first, second = grouped

        response = operator_client.post(self._url(group.id), {"listing_id": str(second.id)}, format="json")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["from_group"] == str(group.id)
        second.refresh_from_db()
        assert str(second.group_id) == data["group_id"]
        assert second.group_pinned is True
        assert DedupEdge.objects.get(listing=second).reason["type"] == "manual_split"

    def test_missing_listing_id(self, operator_client, grouped):
        group, _, _ = grouped

        response = operator_client.post(self._url(group.id), {}, format="json")

        assert response.status_code == 400

    def test_unknown_group(self, operator_client, grouped):
        _, first, _ = grouped

        response = operator_client.post(self._url(uuid.uuid4()), {"listing_id": str(first.id)}, format="json")

        assert response.status_code == 404
        assert response.json()["error"] == "Group not found"

    def test_unknown_listing(self, operator_client, grouped):
        group, _, _ = grouped

        response = operator_client.post(self._url(group.id), {"listing_id": str(uuid.uuid4())}, format="json")

        assert response.status_code == 404

    def test_malformed_listing_id(self, operator_client, grouped):
        group, _, _ = grouped

        response = operator_client.post(self._url(group.id), {"listing_id": "not-a-uuid"}, format="json")

        assert response.status_code == 404

    def test_listing_not_in_group(self, operator_client, grouped, make_listing):
        group, _, _ = grouped
        outsider = make_listing(lat=None, lng=None)

        response = operator_client.post(self._url(group.id), {"listing_id": str(outsider.id)}, format="json")

        assert response.status_code == 400


@pytest.mark.django_db
class TestHealthCheck:

    @patch("ingestion.views.get_celery_worker_count", return_value=2)
    def test_healthy(self, mock_workers, client, make_job):
        make_job("https://example.com/anunt/1")
        FetchLog.objects.create(url="https://example.com/a", domain="example.com", status_code=200)
        FetchLog.objects.create(url="https://example.com/b", domain="example.com", status_code=304)
        FetchLog.objects.create(url="https://example.com/c", domain="example.com", status_code=500)
        FetchLog.objects.create(url="https://example.com/d", domain="example.com", status_code=None)

        response = client.get("/api/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["cache"] == "connected"
        assert data["celery_workers"] == 2
        assert data["queue_depth"] == 1
        assert data["fetch_success_rate_24h"] == 50.0

    @patch("ingestion.views.get_celery_worker_count", return_value=0)
    def test_no_fetches_yet(self, mock_workers, client):
        data = client.get("/api/health/").json()

        assert data["fetch_success_rate_24h"] is None
        assert data["terminal_errors"] == 0
