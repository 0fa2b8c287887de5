"""
Scoring Client - notifies the downstream valuation service of new listings.

Fire-and-forget from the pipeline's point of view: the call runs in a
Celery task on the ``scoring`` queue and failures are logged, never
propagated to the crawl.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class ScoringClient:
    """Posts ``(listing_id, source_url)`` to the valuation service."""

    ENDPOINT = "/api/v1/listings/score"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 30,
    ):
        """
        Args:
            base_url: Valuation service URL (empty disables notifications)
            api_key: Bearer token for authentication
            client: Pre-configured httpx client
            timeout: Request timeout in seconds
        """
        from django.conf import settings

        self.base_url = (
            base_url if base_url is not None else getattr(settings, "VALUATION_SERVICE_URL", "")
        )
        self.api_key = api_key or getattr(settings, "VALUATION_SERVICE_TOKEN", None)
        self.client = client
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def notify_new_listing(self, listing_id: str, source_url: str) -> bool:
        """
        Trigger scoring for a newly created listing.

        Returns:
            True when the service accepted the request
        """
        if not self.enabled:
            logger.debug(f"Scoring service not configured, skipping listing {listing_id}")
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url.rstrip('/')}{self.ENDPOINT}"
        payload = {"listing_id": str(listing_id), "source_url": source_url}

        try:
            if self.client is not None:
                response = self.client.post(url, json=payload, headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Scoring service request failed for listing {listing_id}: {e}")
            return False

        if response.is_success:
            logger.info(f"Scoring requested for listing {listing_id}")
            return True

        logger.error(
            f"Scoring service error for listing {listing_id}: HTTP {response.status_code}"
        )
        return False
