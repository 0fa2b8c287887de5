"""
Base class and parsing helpers for site-specific adapters.

A SiteAdapter knows one portal: which anchors on a list page lead to
listings, where the next page link lives, and how to read the detail
page. Sitemaps are detected by URL and handed to the sitemap parser.
"""

import json
import logging
import re
import unicodedata
from abc import abstractmethod
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ingestion.exceptions import ExtractionError
from ingestion.extractors.base import DiscoverResult, ExtractedListing, SourceAdapter
from ingestion.extractors.generic import MAX_PHOTOS, NEXT_LINK_TEXT, _to_float
from ingestion.extractors.sitemap import is_sitemap_url, parse_sitemap
from ingestion.utils.urls import domain_from

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)")
YEAR_PATTERN = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


def fold(text: str) -> str:
    """Lower-case and strip diacritics, so "Suprafață" matches "suprafata"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower().strip()


def text_of(element) -> Optional[str]:
    if element is None:
        return None
    return re.sub(r"\s+", " ", element.get_text(" ", strip=True)) or None


def select_text(soup: BeautifulSoup, *selectors: str) -> Optional[str]:
    """Text of the first non-empty element matching any selector, in order."""
    for selector in selectors:
        value = text_of(soup.select_one(selector))
        if value:
            return value
    return None


def head_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None or not soup.title.string:
        return None
    return soup.title.string.split("|")[0].strip() or None


def label_value(text: Optional[str], label: str) -> Optional[str]:
    """Value part of a "Label: value" or "Label value" text."""
    if not text:
        return None
    if ":" in text:
        return text.split(":", 1)[1].strip() or None
    if fold(text).startswith(fold(label)):
        return text[len(label):].strip() or None
    return text


def labelled_text(soup: BeautifulSoup, tag: str, label: str) -> Optional[str]:
    """Value of the first ``tag`` element whose text starts with ``label``."""
    wanted = fold(label)
    for element in soup.find_all(tag):
        text = text_of(element)
        if text and fold(text).startswith(wanted):
            return label_value(text, label)
    return None


def first_number(text: Optional[str], pattern=NUMBER_PATTERN) -> Optional[float]:
    if not text:
        return None
    match = pattern.search(text)
    return _to_float(match.group(1)) if match else None


def parse_year(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    match = YEAR_PATTERN.search(text)
    return int(match.group(1)) if match else None


def parse_price(text: Optional[str]) -> Optional[float]:
    """Digits only, so "85.000 €" and "85 000 EUR" both read 85000."""
    if not text:
        return None
    digits = re.sub(r"[^\d]", "", text)
    return float(digits) if digits else None


def price_currency(text: Optional[str], default: str) -> str:
    lowered = (text or "").lower()
    if "€" in lowered or "eur" in lowered:
        return "EUR"
    if "lei" in lowered or "ron" in lowered:
        return "RON"
    return default


def json_ld_geo(soup: BeautifulSoup) -> Tuple[Optional[float], Optional[float]]:
    """Coordinates from a JSON-LD ``geo`` object, directly or under ``offers``."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        if isinstance(data, dict):
            nodes = data.get("@graph", [data])
        elif isinstance(data, list):
            nodes = data
        else:
            continue

        for node in nodes:
            if not isinstance(node, dict):
                continue
            offers = node.get("offers")
            for geo in (node.get("geo"), offers.get("geo") if isinstance(offers, dict) else None):
                if isinstance(geo, dict):
                    lat, lng = _to_float(geo.get("latitude")), _to_float(geo.get("longitude"))
                    if lat is not None and lng is not None:
                        return lat, lng
    return None, None


def script_coordinates(
    soup: BeautifulSoup, lat_key: str = "lat", lng_key: str = "lng"
) -> Tuple[Optional[float], Optional[float]]:
    """Coordinates assigned in an inline script, e.g. ``{lat: 44.43, lng: 26.1}``."""
    lat_pattern = re.compile(rf"\b{lat_key}[\"']?\s*:\s*[\"']?(-?[\d.]+)")
    lng_pattern = re.compile(rf"\b{lng_key}[\"']?\s*:\s*[\"']?(-?[\d.]+)")
    for script in soup.find_all("script"):
        body = script.string or ""
        lat, lng = lat_pattern.search(body), lng_pattern.search(body)
        if lat and lng:
            return _to_float(lat.group(1)), _to_float(lng.group(1))
    return None, None


def image_source(img) -> Optional[str]:
    for attribute in ("src", "data-src", "data-lazy-src", "content"):
        value = img.get(attribute)
        if value and not value.startswith("data:"):
            return value
    return None


class SiteAdapter(SourceAdapter):
    """
    Adapter for one listing portal.

    Subclasses set the class attributes and implement parse_detail; the
    base class handles list pages, sitemaps and the common post-processing
    of extracted listings.
    """

    DOMAIN = ""
    # Path fragment every listing URL on the portal contains
    LISTING_MARKER = ""
    DEFAULT_CURRENCY = "EUR"
    LINK_SELECTORS: Tuple[str, ...] = ()
    NEXT_SELECTORS: Tuple[str, ...] = ()

    def discover(self, html: str, page_url: str) -> DiscoverResult:
        if is_sitemap_url(page_url):
            result = parse_sitemap(html, self.LISTING_MARKER)
            result.links = [link for link in result.links if self.accepts(link)]
            return result

        soup = BeautifulSoup(html, "html.parser")
        links = []
        for selector in self.LINK_SELECTORS:
            for anchor in soup.select(selector):
                href = (anchor.get("href") or "").strip()
                if not href:
                    continue
                absolute = urljoin(page_url, href)
                if self.accepts(absolute) and absolute not in links:
                    links.append(absolute)

        next_href = self.next_href(soup)
        next_page = urljoin(page_url, next_href) if next_href else None
        logger.debug(f"{self.DOMAIN}: {len(links)} listing links on {page_url}")
        return DiscoverResult(links=links, next_page=next_page)

    def accepts(self, url: str) -> bool:
        return domain_from(url) == self.DOMAIN and self.LISTING_MARKER in url

    def next_href(self, soup: BeautifulSoup) -> Optional[str]:
        for selector in self.NEXT_SELECTORS:
            anchor = soup.select_one(selector)
            if anchor is not None and anchor.get("href"):
                return anchor["href"]
        for anchor in soup.find_all("a", href=True):
            if anchor.get_text(strip=True).lower() in NEXT_LINK_TEXT:
                return anchor["href"]
        return None

    def extract(self, html: str, url: str) -> ExtractedListing:
        if not html or not html.strip():
            raise ExtractionError(f"Empty page: {url}")

        soup = BeautifulSoup(html, "html.parser")
        listing = self.parse_detail(soup, url)
        listing.source_meta = {"via": self.DOMAIN}
        listing.photos = self._absolute_photos(listing.photos, url)

        if listing.is_empty:
            raise ExtractionError(f"No listing fields found on {url}")
        return listing

    @abstractmethod
    def parse_detail(self, soup: BeautifulSoup, url: str) -> ExtractedListing:
        """Read the listing fields from a parsed detail page."""

    def _absolute_photos(self, sources: Iterable[str], url: str) -> List[str]:
        photos = []
        for src in sources:
            if not src or "placeholder" in src:
                continue
            absolute = urljoin(url, src)
            if absolute not in photos:
                photos.append(absolute)
            if len(photos) >= MAX_PHOTOS:
                break
        return photos
