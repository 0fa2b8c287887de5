"""
Generic adapter - heuristic extraction for listing sites without their own
adapter.

Listing links are recognised by listing keywords or long numeric ids in
the path. Fields come from the first heading, price-like elements, map
coordinates in data attributes or meta tags, and text patterns for rooms,
surface, floor and construction year (Romanian and English wording).
"""

import json
import logging
import re
from typing import Any, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from ingestion.exceptions import ExtractionError
from ingestion.extractors.base import DiscoverResult, ExtractedListing, SourceAdapter

logger = logging.getLogger(__name__)

LISTING_LINK_PATTERN = re.compile(
    r"anunt|oferta|listing|property|apartament|garsoniera|imobil|/[0-9]{6,}", re.IGNORECASE
)
NEXT_LINK_TEXT = ("următoarea", "urmatoarea", "next", "››", "»")

ROOMS_PATTERN = re.compile(r"(\d+)\s*(?:camere|camera|cam\.?|rooms?)\b", re.IGNORECASE)
AREA_PATTERN = re.compile(r"(\d{2,4}(?:[.,]\d+)?)\s*(?:m2|mp|m²|sqm)", re.IGNORECASE)
YEAR_PATTERNS = [
    re.compile(r"(\d{4})\s*(?:an\s*constructie|construit)", re.IGNORECASE),
    re.compile(r"(?:an(?:ul)?\s*(?:de\s*)?constructie|construit\s*(?:in|în)?|year\s*built)\D{0,5}(\d{4})", re.IGNORECASE),
]
FLOOR_PATTERN = re.compile(r"\b(?:etaj(?:ul)?|floor)\s*[:\-]?\s*([\w/]+)", re.IGNORECASE)

CURRENCY_MARKERS = [
    ("EUR", ("€", "eur")),
    ("RON", ("ron", "lei")),
    ("USD", ("$", "usd")),
    ("GBP", ("£", "gbp")),
]

MAX_PHOTOS = 20


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def _detect_currency(text: str) -> str:
    lowered = text.lower()
    for code, markers in CURRENCY_MARKERS:
        if any(marker in lowered for marker in markers):
            return code
    return "EUR"


class GenericAdapter(SourceAdapter):
    """Fallback adapter used for every domain without a specific one."""

    DOMAIN = "*"

    def discover(self, html: str, page_url: str) -> DiscoverResult:
        soup = BeautifulSoup(html, "html.parser")
        page_host = urlsplit(page_url).hostname

        links = []
        seen = set()
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith(("#", "mailto:", "javascript:")):
                continue
            if not LISTING_LINK_PATTERN.search(href):
                continue
            absolute = urljoin(page_url, href)
            if urlsplit(absolute).hostname != page_host or absolute in seen:
                continue
            seen.add(absolute)
            links.append(absolute)

        next_page = None
        next_anchor = soup.find("a", rel="next", href=True)
        if next_anchor is None:
            for anchor in soup.find_all("a", href=True):
                if anchor.get_text(strip=True).lower() in NEXT_LINK_TEXT:
                    next_anchor = anchor
                    break
        if next_anchor is not None:
            next_page = urljoin(page_url, next_anchor["href"])
            if next_page in seen:
                seen.discard(next_page)
                links.remove(next_page)

        return DiscoverResult(links=links, next_page=next_page)

    def extract(self, html: str, url: str) -> ExtractedListing:
        if not html or not html.strip():
            raise ExtractionError(f"Empty page: {url}")

        soup = BeautifulSoup(html, "html.parser")
        text = re.sub(r"\s+", " ", soup.get_text(" "))

        listing = ExtractedListing(source_meta={"via": "generic"})
        listing.title = self._title(soup)
        listing.price, listing.currency = self._price(soup)
        listing.lat, listing.lng = self._coordinates(soup)
        listing.photos = self._photos(soup, url)

        rooms = ROOMS_PATTERN.search(text)
        if rooms:
            listing.rooms = float(rooms.group(1))

        area = AREA_PATTERN.search(text)
        if area:
            listing.area_m2 = _to_float(area.group(1))

        for pattern in YEAR_PATTERNS:
            match = pattern.search(text)
            if match:
                year = int(match.group(1))
                if 1800 <= year <= 2100:
                    listing.year_built = year
                    break

        floor = FLOOR_PATTERN.search(text)
        if floor:
            listing.floor_raw = floor.group(1)[:50]

        address = soup.find(attrs={"itemprop": "address"}) or soup.find(class_=re.compile("address", re.I))
        if address:
            listing.address_raw = address.get_text(" ", strip=True)[:500] or None

        if listing.is_empty:
            raise ExtractionError(f"No listing fields found on {url}")

        return listing

    def _title(self, soup: BeautifulSoup) -> Optional[str]:
        heading = soup.find("h1")
        if heading and heading.get_text(strip=True):
            return heading.get_text(" ", strip=True)
        og_title = soup.find("meta", property="og:title")
        if og_title and og_title.get("content"):
            return og_title["content"].strip()
        return None

    def _price(self, soup: BeautifulSoup):
        element = soup.find(attrs={"data-price": True})
        if element is not None:
            raw = element["data-price"]
            label = element.get_text(" ", strip=True)
        else:
            element = soup.find(class_=re.compile("price", re.I))
            if element is None:
                return None, None
            raw = label = element.get_text(" ", strip=True)

        digits = re.sub(r"[^\d]", "", raw)
        if not digits:
            return None, None
        return float(digits), _detect_currency(label or raw)

    def _coordinates(self, soup: BeautifulSoup):
        holder = soup.find(attrs={"data-lat": True, "data-lng": True})
        if holder is not None:
            return _to_float(holder["data-lat"]), _to_float(holder["data-lng"])

        for lat_name, lng_name in (
            ("place:location:latitude", "place:location:longitude"),
            ("og:latitude", "og:longitude"),
        ):
            lat = soup.find("meta", property=lat_name)
            lng = soup.find("meta", property=lng_name)
            if lat and lng:
                return _to_float(lat.get("content")), _to_float(lng.get("content"))

        for script in soup.find_all("script", type="application/ld+json"):
            try:
                data = json.loads(script.string or "")
            except ValueError:
                continue
            geo = data.get("geo") if isinstance(data, dict) else None
            if isinstance(geo, dict):
                return _to_float(geo.get("latitude")), _to_float(geo.get("longitude"))

        return None, None

    def _photos(self, soup: BeautifulSoup, url: str):
        photos = []
        candidates = [img.get("src") for img in soup.find_all("img", src=True)]
        candidates += [meta.get("content") for meta in soup.find_all("meta", property="og:image")]
        for src in candidates:
            if not src or "logo" in src or "icon" in src:
                continue
            absolute = urljoin(url, src)
            if absolute not in photos:
                photos.append(absolute)
            if len(photos) >= MAX_PHOTOS:
                break
        return photos
