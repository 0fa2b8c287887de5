"""
Adapter for storia.ro.

Characteristics are rendered as aria-labelled rows ("Suprafață",
"Număr de camere", ...); gallery images carry responsive srcsets.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

from ingestion.extractors.base import ExtractedListing
from ingestion.extractors.site import (
    SiteAdapter,
    first_number,
    head_title,
    image_source,
    json_ld_geo,
    label_value,
    parse_price,
    parse_year,
    price_currency,
    script_coordinates,
    select_text,
    text_of,
)

AREA_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*m", re.IGNORECASE)
SRCSET_WIDTH = re.compile(r"\s(\d+)w$")


def largest_srcset_entry(srcset: str) -> Optional[str]:
    best, best_width = None, -1
    for candidate in srcset.split(","):
        candidate = candidate.strip()
        if not candidate:
            continue
        match = SRCSET_WIDTH.search(candidate)
        width = int(match.group(1)) if match else 0
        if width > best_width:
            best, best_width = candidate.split()[0], width
    return best


class StoriaAdapter(SiteAdapter):

    DOMAIN = "storia.ro"
    LISTING_MARKER = "/oferta/"
    LINK_SELECTORS = ('a[data-cy="listing-item-link"]', 'a[href*="/oferta/"]')
    NEXT_SELECTORS = ('a[data-cy="pagination.next"]', "a[rel=next]")

    def parse_detail(self, soup: BeautifulSoup, url: str) -> ExtractedListing:
        listing = ExtractedListing()
        listing.title = (
            select_text(soup, 'h1[data-cy="adPageAdTitle"]', "h1.offer-title") or head_title(soup)
        )

        price_text = select_text(soup, '[data-cy="adPageHeaderPrice"]', ".offer-price", '[aria-label*="Preț"]')
        listing.price = parse_price(price_text)
        if listing.price is not None:
            listing.currency = price_currency(price_text, self.DEFAULT_CURRENCY)

        listing.area_m2 = first_number(self._characteristic(soup, "Suprafață"), AREA_PATTERN)
        listing.rooms = first_number(self._characteristic(soup, "Număr de camere"))
        floor = self._characteristic(soup, "Etaj")
        listing.floor_raw = floor[:50] if floor else None
        listing.year_built = parse_year(self._characteristic(soup, "An construcție"))

        address = select_text(soup, '[data-cy="adPageHeaderLocation"]', ".offer-location")
        listing.address_raw = address[:500] if address else None

        listing.lat, listing.lng = json_ld_geo(soup)
        if listing.lat is None:
            listing.lat, listing.lng = script_coordinates(soup, "latitude", "longitude")

        listing.photos = self._photos(soup)
        return listing

    def _characteristic(self, soup: BeautifulSoup, label: str) -> Optional[str]:
        element = soup.find(attrs={"aria-label": label})
        return label_value(text_of(element), label)

    def _photos(self, soup: BeautifulSoup):
        photos = []
        for img in soup.select('[data-cy="mosaic-gallery"] img, .gallery img, picture img'):
            srcset = img.get("srcset")
            src = largest_srcset_entry(srcset) if srcset else image_source(img)
            if src and "thumbnail" not in src:
                photos.append(src)
        return photos
