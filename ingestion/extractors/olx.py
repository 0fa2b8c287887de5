"""
Adapter for olx.ro real-estate ads.

Characteristics are a list of parameter items, either a key and value
pair of paragraphs or a single "Key: value" paragraph. Prices default to
lei unless the euro sign is shown.
"""

from typing import Dict

from bs4 import BeautifulSoup

from ingestion.extractors.base import ExtractedListing
from ingestion.extractors.site import (
    SiteAdapter,
    first_number,
    fold,
    head_title,
    json_ld_geo,
    parse_price,
    parse_year,
    price_currency,
    script_coordinates,
    select_text,
    text_of,
)

PARAMETER_KEYS = {
    "area": ("suprafata",),
    "rooms": ("numar camere", "numarul de camere", "camere"),
    "floor": ("etaj", "floor"),
    "year": ("an constructie", "anul constructiei"),
}


class OlxAdapter(SiteAdapter):

    DOMAIN = "olx.ro"
    LISTING_MARKER = "/d/oferta/"
    DEFAULT_CURRENCY = "RON"
    LINK_SELECTORS = ('a[data-cy="ad-card-title"]', "a.css-rc5s2u", 'a[href*="/d/oferta/"]')
    NEXT_SELECTORS = ('a[data-cy="pagination-forward"]', 'a[data-testid="pagination-forward"]')

    def parse_detail(self, soup: BeautifulSoup, url: str) -> ExtractedListing:
        listing = ExtractedListing()
        listing.title = select_text(soup, 'h1[data-cy="ad_title"]', "h1") or head_title(soup)

        price_text = select_text(
            soup, 'h3[data-testid="ad-price-container"]', '[data-testid="ad-price-container"]',
            '[data-testid="ad-price"]',
        )
        listing.price = parse_price(price_text)
        if listing.price is not None:
            listing.currency = price_currency(price_text, self.DEFAULT_CURRENCY)

        parameters = self._parameters(soup)
        listing.area_m2 = first_number(self._parameter(parameters, "area"))
        listing.rooms = first_number(self._parameter(parameters, "rooms"))
        floor = self._parameter(parameters, "floor")
        listing.floor_raw = floor[:50] if floor else None
        listing.year_built = parse_year(self._parameter(parameters, "year"))

        address = select_text(soup, '[data-cy="ad_location"]', '[data-testid="location-date"]')
        listing.address_raw = address[:500] if address else None

        listing.lat, listing.lng = json_ld_geo(soup)
        if listing.lat is None:
            listing.lat, listing.lng = script_coordinates(soup, "lat", "lon")

        listing.photos = [
            # Slider sources carry resize options after a semicolon
            (img.get("src") or "").split(";")[0]
            for img in soup.select('img[data-testid="slider-image"], [data-cy="adPhotos-slider"] img')
        ]
        return listing

    def _parameters(self, soup: BeautifulSoup) -> Dict[str, str]:
        parameters = {}
        for item in soup.select('li[data-cy="ad-parameters-item"], [data-testid="ad-parameters-container"] p'):
            paragraphs = item.find_all("p") if item.name == "li" else []
            if len(paragraphs) >= 2:
                key, value = text_of(paragraphs[0]), text_of(paragraphs[1])
            else:
                text = text_of(item) or ""
                if ":" not in text:
                    continue
                key, value = (part.strip() for part in text.split(":", 1))
            if key and value:
                parameters[fold(key).rstrip(":")] = value
        return parameters

    def _parameter(self, parameters: Dict[str, str], name: str):
        for key, value in parameters.items():
            if any(key.startswith(prefix) for prefix in PARAMETER_KEYS[name]):
                return value
        return None
