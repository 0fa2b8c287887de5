"""
robots.txt parsing and caching.

Rules are fetched once per domain from ``https://{domain}/robots.txt`` and
kept in the Django cache (Redis in production) for
``INGESTION_ROBOTS_TTL_SECONDS``. A missing file, a non-2xx response or any
network failure yields an empty rule set, so crawling is allowed (fail open).
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlsplit

import httpx
from django.conf import settings
from django.core.cache import cache as default_cache

from ingestion.utils.urls import domain_from

logger = logging.getLogger(__name__)

CACHE_KEY_PATTERN = "ingestion:robots:{domain}"


@dataclass
class RobotsRules:
    """Directives from the groups that apply to our bot."""

    disallow: List[str] = field(default_factory=list)
    crawl_delay_ms: Optional[int] = None

    def is_allowed(self, path: str) -> bool:
        path = path or "/"
        return not any(path.startswith(rule) for rule in self.disallow)

    def to_dict(self) -> dict:
        return {"disallow": list(self.disallow), "crawl_delay_ms": self.crawl_delay_ms}

    @classmethod
    def from_dict(cls, data: dict) -> "RobotsRules":
        return cls(
            disallow=list(data.get("disallow") or []),
            crawl_delay_ms=data.get("crawl_delay_ms"),
        )


def parse_robots_txt(text: str, bot_name: Optional[str] = None) -> RobotsRules:
    """
    Parse robots.txt content into the rules that apply to ``bot_name``.

    Groups addressed to the bot itself and to ``*`` are merged. Empty
    ``Disallow`` lines allow everything and are ignored. When several
    matching groups set ``Crawl-delay`` the largest one wins.

    Args:
        text: Raw robots.txt body
        bot_name: Product token of our user agent (default from settings)

    Returns:
        RobotsRules for the bot
    """
    bot = (bot_name or getattr(settings, "INGESTION_BOT_NAME", "ListingIngestBot")).lower()

    rules = RobotsRules()
    group_agents: List[str] = []
    group_has_rules = False

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            # A user-agent line after rules starts a new group
            if group_has_rules:
                group_agents = []
                group_has_rules = False
            group_agents.append(value.lower())
            continue

        group_has_rules = True
        applies = any(agent == "*" or agent == bot for agent in group_agents)
        if not applies:
            continue

        if key == "disallow":
            if value:
                rules.disallow.append(value)
        elif key == "crawl-delay":
            try:
                delay_ms = int(float(value) * 1000)
            except ValueError:
                logger.debug(f"Ignoring malformed Crawl-delay: {value!r}")
                continue
            if delay_ms >= 0 and (rules.crawl_delay_ms is None or delay_ms > rules.crawl_delay_ms):
                rules.crawl_delay_ms = delay_ms

    return rules


class RobotsCache:
    """
    Shared robots.txt lookups backed by the Django cache.

    The cache backend and the HTTP client are injectable so tests can use
    locmem and ``httpx.MockTransport``.
    """

    def __init__(
        self,
        cache=None,
        client: Optional[httpx.Client] = None,
        ttl_seconds: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.cache = cache or default_cache
        self.client = client
        self.ttl_seconds = ttl_seconds or getattr(settings, "INGESTION_ROBOTS_TTL_SECONDS", 3600)
        self.timeout = timeout or getattr(settings, "INGESTION_ROBOTS_TIMEOUT", 10)
        self.user_agent = getattr(settings, "INGESTION_USER_AGENT", "ListingIngestBot/1.0")

    def get_rules(self, domain: str) -> RobotsRules:
        """Return cached rules for a domain, fetching robots.txt on a miss."""
        key = CACHE_KEY_PATTERN.format(domain=domain)
        cached = self.cache.get(key)
        if cached is not None:
            return RobotsRules.from_dict(cached)

        rules = self._fetch(domain)
        self.cache.set(key, rules.to_dict(), self.ttl_seconds)
        return rules

    def is_allowed(self, url: str) -> bool:
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        return self.get_rules(domain_from(url)).is_allowed(path)

    def crawl_delay_ms(self, domain: str) -> Optional[int]:
        return self.get_rules(domain).crawl_delay_ms

    def invalidate(self, domain: str) -> None:
        self.cache.delete(CACHE_KEY_PATTERN.format(domain=domain))

    def _fetch(self, domain: str) -> RobotsRules:
        robots_url = f"https://{domain}/robots.txt"
        headers = {"User-Agent": self.user_agent}

        try:
            if self.client is not None:
                response = self.client.get(robots_url, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(follow_redirects=True) as client:
                    response = client.get(robots_url, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.info(f"robots.txt unavailable for {domain}, allowing: {e}")
            return RobotsRules()

        if not response.is_success:
            logger.debug(f"robots.txt for {domain} returned HTTP {response.status_code}, allowing")
            return RobotsRules()

        return parse_robots_txt(response.text)
