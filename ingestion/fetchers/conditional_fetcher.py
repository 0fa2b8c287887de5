"""
Conditional Fetcher - one GET per call with ETag/Last-Modified revalidation.

Sends If-None-Match / If-Modified-Since from HostCache together with the
bot's identifying User-Agent. Network errors and timeouts are reported as
``status=0`` results and never raised. Every attempt is written to
FetchLog; neither the FetchLog insert nor the HostCache update can fail
the fetch.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
from django.conf import settings
from django.utils import timezone

from ingestion.models import FetchLog, HostCache
from ingestion.utils.urls import domain_from

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of a conditional fetch."""

    url: str
    status: int
    body: Optional[str] = None
    etag: str = ""
    last_modified: str = ""
    byte_size: int = 0
    error: Optional[str] = None

    @property
    def not_modified(self) -> bool:
        return self.status == 304

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class ConditionalFetcher:
    """
    Synchronous httpx fetcher with conditional headers.

    The timeout is absolute: the body is streamed and the download is
    abandoned once ``timeout`` seconds have passed since the request began.
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "ro,en;q=0.8",
        "Accept-Encoding": "gzip, deflate",
    }

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Args:
            client: Pre-configured httpx client (tests pass a MockTransport one)
            timeout: Absolute per-request timeout in seconds (default from settings)
            user_agent: Identifying User-Agent (default from settings)
        """
        self.timeout = timeout or getattr(settings, "INGESTION_FETCH_TIMEOUT", 15)
        self.user_agent = user_agent or getattr(
            settings, "INGESTION_USER_AGENT", "ListingIngestBot/1.0"
        )
        self._owns_client = client is None
        self._http_client = client

    def __enter__(self):
        self._get_client()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _get_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._http_client

    def close(self):
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def _conditional_headers(self, url: str) -> Dict[str, str]:
        headers = {**self.DEFAULT_HEADERS, "User-Agent": self.user_agent}
        try:
            cached = HostCache.objects.filter(url=url).first()
        except Exception as e:
            logger.warning(f"HostCache lookup failed for {url}: {e}")
            return headers

        if cached:
            if cached.etag:
                headers["If-None-Match"] = cached.etag
            if cached.last_modified:
                headers["If-Modified-Since"] = cached.last_modified
        return headers

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch a URL once.

        Returns:
            FetchResult; ``status`` is 0 for network errors and timeouts,
            304 with ``body=None`` when the page is unchanged.
        """
        headers = self._conditional_headers(url)
        deadline = time.monotonic() + self.timeout

        try:
            with self._get_client().stream("GET", url, headers=headers, timeout=self.timeout) as response:
                etag = response.headers.get("etag", "")
                last_modified = response.headers.get("last-modified", "")

                if response.status_code == 304:
                    result = FetchResult(
                        url=url, status=304, etag=etag, last_modified=last_modified
                    )
                else:
                    chunks = []
                    for chunk in response.iter_bytes():
                        if time.monotonic() > deadline:
                            raise httpx.ReadTimeout(
                                f"Exceeded {self.timeout}s reading body", request=response.request
                            )
                        chunks.append(chunk)
                    raw = b"".join(chunks)
                    result = FetchResult(
                        url=url,
                        status=response.status_code,
                        body=raw.decode(response.encoding or "utf-8", errors="replace"),
                        etag=etag,
                        last_modified=last_modified,
                        byte_size=len(raw),
                        error=None if response.is_success else f"HTTP {response.status_code}",
                    )

        except httpx.TimeoutException as e:
            logger.warning(f"Timeout fetching {url}: {e}")
            result = FetchResult(url=url, status=0, error=f"Timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Network error fetching {url}: {e}")
            result = FetchResult(url=url, status=0, error=f"Network error: {e}")

        self._record(result)
        return result

    def _record(self, result: FetchResult) -> None:
        """Best-effort FetchLog insert and HostCache update."""
        try:
            FetchLog.objects.create(
                url=result.url,
                domain=domain_from(result.url),
                status_code=result.status or None,
                etag=result.etag[:500],
                last_modified=result.last_modified[:100],
                byte_size=result.byte_size,
                error=result.error or "",
            )
        except Exception as e:
            logger.warning(f"FetchLog write failed for {result.url}: {e}")

        if not result.ok or not (result.etag or result.last_modified):
            return

        try:
            HostCache.objects.update_or_create(
                url=result.url,
                defaults={
                    "etag": result.etag[:500],
                    "last_modified": result.last_modified[:100],
                    "updated_at": timezone.now(),
                },
            )
        except Exception as e:
            logger.warning(f"HostCache update failed for {result.url}: {e}")
