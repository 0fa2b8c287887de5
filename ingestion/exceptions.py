"""
Exception types raised inside the ingestion pipeline.

Fetch failures are never raised: the fetcher reports them as a FetchResult
with status 0. These exceptions cover the remaining failure classes the
scheduler distinguishes when deciding between retry and terminal error.
"""


class IngestionError(Exception):
    """Base class for pipeline errors."""


class InvalidURLError(IngestionError):
    """URL cannot be normalized (missing scheme or host)."""


class ExtractionError(IngestionError):
    """Page was fetched but could not be turned into listing fields.

    Retrying will not fix a parsing problem, so jobs failing with this
    error are marked terminal on the first attempt.
    """


class RobotsDisallowed(IngestionError):
    """robots.txt forbids fetching the path for our user agent."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Disallowed by robots.txt: {url}")


class GroupMembershipError(IngestionError):
    """Listing is not a member of the dedup group named in the request."""
