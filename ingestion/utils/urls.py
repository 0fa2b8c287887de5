"""
URL normalization used as the crawl queue's uniqueness key.
"""

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ingestion.exceptions import InvalidURLError

# Query parameters that never change the page content
TRACKING_PARAMS = {"fbclid", "gclid", "yclid", "mc_cid", "mc_eid", "ref"}


def domain_from(url: str) -> str:
    """Return the lower-cased host of a URL without a leading ``www.``."""
    try:
        host = urlsplit(url.strip()).hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def normalize_url(url: Optional[str]) -> str:
    """
    Canonical form of a URL.

    - scheme and host lower-cased, default ports dropped
    - fragment removed
    - tracking parameters (utm_*, fbclid, ...) removed, the rest sorted
    - trailing slash removed from non-root paths

    Raises:
        InvalidURLError: if the URL has no http(s) scheme or no host
    """
    if not url or not url.strip():
        raise InvalidURLError("Empty URL")

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as e:
        raise InvalidURLError(f"Malformed URL {url!r}: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not parts.hostname:
        raise InvalidURLError(f"Not an absolute http(s) URL: {url!r}")

    host = parts.hostname.lower()
    if port and not (
        (scheme == "http" and port == 80) or (scheme == "https" and port == 443)
    ):
        host = f"{host}:{port}"

    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    query_pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in TRACKING_PARAMS
    ]
    query = urlencode(sorted(query_pairs))

    return urlunsplit((scheme, host, path, query, ""))
