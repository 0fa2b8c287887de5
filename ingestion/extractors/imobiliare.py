"""
Adapter for imobiliare.ro.

Detail pages carry schema.org microdata (itemprop) for most fields, with
the older "Label: value" characteristics list as fallback.
"""

import re

from bs4 import BeautifulSoup

from ingestion.extractors.base import ExtractedListing
from ingestion.extractors.site import (
    SiteAdapter,
    first_number,
    head_title,
    image_source,
    labelled_text,
    parse_price,
    parse_year,
    price_currency,
    script_coordinates,
    select_text,
)

AREA_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:mp|m2|m²)", re.IGNORECASE)


class ImobiliareAdapter(SiteAdapter):

    DOMAIN = "imobiliare.ro"
    LISTING_MARKER = "/vanzare-"
    LINK_SELECTORS = ('a[href*="/vanzare-"]',)
    NEXT_SELECTORS = ("a[rel=next]",)

    def accepts(self, url: str) -> bool:
        # Query strings are filters and sort orders of list pages
        return super().accepts(url) and "?" not in url

    def parse_detail(self, soup: BeautifulSoup, url: str) -> ExtractedListing:
        listing = ExtractedListing()
        listing.title = select_text(soup, "h1[itemprop=name]", "h1.titlu-anunt") or head_title(soup)

        price_element = soup.select_one("[itemprop=price]")
        if price_element is not None:
            price_text = price_element.get("content") or price_element.get_text(" ", strip=True)
            currency_element = soup.select_one("[itemprop=priceCurrency]")
            label = " ".join(
                filter(None, [
                    price_element.get_text(" ", strip=True),
                    currency_element.get("content") if currency_element is not None else None,
                ])
            )
        else:
            price_text = label = select_text(soup, ".pret-mare", ".pret")
        listing.price = parse_price(price_text)
        if listing.price is not None:
            listing.currency = price_currency(label, self.DEFAULT_CURRENCY)

        area_text = (
            select_text(soup, "[itemprop=floorSize]")
            or labelled_text(soup, "li", "Suprafață utilă")
            or self._feature(soup, "mp")
        )
        listing.area_m2 = first_number(area_text, AREA_PATTERN) or first_number(area_text)

        rooms_text = (
            select_text(soup, "[itemprop=numberOfRooms]")
            or labelled_text(soup, "li", "Număr camere")
            or self._feature(soup, "camere")
        )
        listing.rooms = first_number(rooms_text)

        floor = labelled_text(soup, "li", "Etaj")
        listing.floor_raw = floor[:50] if floor else None
        listing.year_built = parse_year(labelled_text(soup, "li", "An construcție"))

        address = select_text(soup, "[itemprop=address]", ".localizare-text", "h2.subtitle")
        listing.address_raw = address[:500] if address else None

        listing.lat, listing.lng = script_coordinates(soup, "lat", "lng")
        listing.photos = [
            image_source(img)
            for img in soup.select("[itemprop=image], .gallery img, .carousel img")
        ]
        return listing

    def _feature(self, soup: BeautifulSoup, unit: str):
        for element in soup.select(".features li, .features span"):
            text = element.get_text(" ", strip=True)
            if unit in text.lower():
                return text
        return None
