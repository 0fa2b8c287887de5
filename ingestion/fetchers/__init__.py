"""
Polite fetching for listing pages.

Provides:
- RobotsCache / parse_robots_txt: robots.txt rules per domain
- PolitenessGate: per-domain delay and concurrency cap with shared state
- ConditionalFetcher: ETag/Last-Modified aware GET with fetch logging
"""

from .robots import RobotsCache, RobotsRules, parse_robots_txt
from .politeness import (
    DatabaseGateState,
    GateState,
    InMemoryGateState,
    PolitenessGate,
)
from .conditional_fetcher import ConditionalFetcher, FetchResult

__all__ = [
    "RobotsCache",
    "RobotsRules",
    "parse_robots_txt",
    "DatabaseGateState",
    "GateState",
    "InMemoryGateState",
    "PolitenessGate",
    "ConditionalFetcher",
    "FetchResult",
]
