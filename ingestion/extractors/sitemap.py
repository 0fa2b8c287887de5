"""
XML sitemap discovery for site adapters.

A sitemap index yields child sitemaps, crawled later as discover jobs; a
urlset yields the listing URLs whose path contains the site's listing
marker. Namespaced and plain sitemaps are both accepted.
"""

import logging
from typing import List
from urllib.parse import urlsplit
from xml.etree import ElementTree as ET

from ingestion.exceptions import ExtractionError
from ingestion.extractors.base import DiscoverResult

logger = logging.getLogger(__name__)


def is_sitemap_url(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return "sitemap" in path or path.endswith(".xml")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


def _locations(root: ET.Element, entry: str) -> List[str]:
    locations = []
    for element in root:
        if _local_name(element.tag) != entry:
            continue
        for child in element:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                locations.append(child.text.strip())
    return locations


def parse_sitemap(xml: str, listing_marker: str) -> DiscoverResult:
    """
    Parse a sitemap or sitemap index.

    Raises:
        ExtractionError: if the document is not a sitemap
    """
    try:
        root = ET.fromstring(xml.strip())
    except ET.ParseError as e:
        raise ExtractionError(f"Invalid sitemap XML: {e}")

    root_name = _local_name(root.tag)
    if root_name == "sitemapindex":
        sitemaps = list(dict.fromkeys(_locations(root, "sitemap")))
        logger.debug(f"Sitemap index with {len(sitemaps)} child sitemaps")
        return DiscoverResult(sitemaps=sitemaps)

    if root_name == "urlset":
        links = [loc for loc in _locations(root, "url") if listing_marker in loc]
        return DiscoverResult(links=list(dict.fromkeys(links)))

    raise ExtractionError(f"Unknown sitemap root element: {root.tag}")
