"""
Base adapter for listing sites.

An adapter turns fetched HTML into either more URLs to crawl (``discover``
on list pages) or listing fields (``extract`` on detail pages). Missing or
malformed fields are returned as None; only a page that yields nothing
usable raises ExtractionError.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class DiscoverResult:
    """Links found on a list page or sitemap."""

    links: List[str] = field(default_factory=list)
    next_page: Optional[str] = None
    sitemaps: List[str] = field(default_factory=list)


@dataclass
class ExtractedListing:
    """
    Structured fields extracted from a detail page.

    Attributes mirror CanonicalListing columns; every field is optional.
    """

    title: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    area_m2: Optional[float] = None
    rooms: Optional[float] = None
    floor_raw: Optional[str] = None
    year_built: Optional[int] = None
    address_raw: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    photos: List[str] = field(default_factory=list)
    source_meta: Dict[str, Any] = field(default_factory=dict)

    def to_fields(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("source_meta", None)
        return data

    @property
    def is_empty(self) -> bool:
        return self.title is None and self.price is None and self.area_m2 is None


class SourceAdapter(ABC):
    """Site-specific discover/extract logic."""

    DOMAIN: str = "*"

    @abstractmethod
    def discover(self, html: str, page_url: str) -> DiscoverResult:
        """
        Collect listing links and the next list page from a list page.

        Args:
            html: Page body
            page_url: URL the page was fetched from, for resolving relative links
        """

    @abstractmethod
    def extract(self, html: str, url: str) -> ExtractedListing:
        """
        Extract listing fields from a detail page.

        Raises:
            ExtractionError: if the page contains no listing data at all
        """
