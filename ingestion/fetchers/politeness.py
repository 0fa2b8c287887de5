"""
Politeness Gate - per-domain rate limiting and concurrency cap.

A fetch for a domain is allowed only when both hold:
- at least ``effective_delay`` has passed since the previous allowed fetch
- fewer than ``max_concurrency`` fetches are in flight

The check and the update happen in one atomic step inside the state
object. ``DatabaseGateState`` keeps the state in ``DomainFetchState`` rows
and uses a single conditional UPDATE, so any number of scheduler processes
share one view of each domain. ``InMemoryGateState`` is a lock-protected
equivalent for single-process use.

Effective delay is ``max(ListingSource.min_delay_ms, robots Crawl-delay)``:
robots.txt can only make us slower than the operator configured.

Usage:
    gate = PolitenessGate()
    with gate.slot(url) as acquired:
        if acquired:
            result = fetcher.fetch(url)
"""

import logging
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.db import IntegrityError
from django.db.models import Case, F, Q, Value, When
from django.utils import timezone

from ingestion.exceptions import RobotsDisallowed
from ingestion.fetchers.robots import RobotsCache
from ingestion.models import DomainFetchState, ListingSource
from ingestion.utils.urls import domain_from

logger = logging.getLogger(__name__)


class GateState:
    """Storage for per-domain politeness counters."""

    def try_acquire(
        self, domain: str, delay: timedelta, max_concurrency: int, now=None
    ) -> bool:
        raise NotImplementedError

    def release(self, domain: str) -> None:
        raise NotImplementedError


class DatabaseGateState(GateState):
    """
    Gate state stored in ``DomainFetchState``.

    Acquisition is one UPDATE filtered on the gate conditions; the row count
    tells whether this caller won. A slot whose lease has expired (the
    holder crashed before releasing) is reclaimed by resetting ``in_flight``.
    """

    def __init__(self, lease_seconds: Optional[int] = None):
        self.lease = timedelta(
            seconds=lease_seconds or getattr(settings, "INGESTION_GATE_LEASE_SECONDS", 120)
        )

    def _ensure_row(self, domain: str) -> None:
        try:
            DomainFetchState.objects.get_or_create(domain=domain)
        except IntegrityError:
            # Another process created it between the SELECT and INSERT
            pass

    def try_acquire(self, domain, delay, max_concurrency, now=None) -> bool:
        now = now or timezone.now()
        self._ensure_row(domain)

        lease_cutoff = now - self.lease
        stale = Q(last_fetch_at__lte=lease_cutoff)
        due = Q(last_fetch_at__isnull=True) | Q(last_fetch_at__lte=now - delay)
        has_capacity = Q(in_flight__lt=max_concurrency) | stale

        # in_flight is assigned first: it reads the old last_fetch_at
        updated = (
            DomainFetchState.objects.filter(domain=domain)
            .filter(due)
            .filter(has_capacity)
            .update(
                in_flight=Case(
                    When(stale, then=Value(1)),
                    default=F("in_flight") + 1,
                ),
                last_fetch_at=now,
            )
        )
        return updated == 1

    def release(self, domain: str) -> None:
        DomainFetchState.objects.filter(domain=domain, in_flight__gt=0).update(
            in_flight=F("in_flight") - 1
        )


class InMemoryGateState(GateState):
    """Process-local gate state guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last_fetch: Dict[str, object] = {}
        self._in_flight: Dict[str, int] = {}

    def try_acquire(self, domain, delay, max_concurrency, now=None) -> bool:
        now = now or timezone.now()
        with self._lock:
            last = self._last_fetch.get(domain)
            if last is not None and now - last < delay:
                return False
            if self._in_flight.get(domain, 0) >= max_concurrency:
                return False
            self._last_fetch[domain] = now
            self._in_flight[domain] = self._in_flight.get(domain, 0) + 1
            return True

    def release(self, domain: str) -> None:
        with self._lock:
            if self._in_flight.get(domain, 0) > 0:
                self._in_flight[domain] -= 1

    def in_flight(self, domain: str) -> int:
        with self._lock:
            return self._in_flight.get(domain, 0)


class PolitenessGate:
    """
    Per-domain gate combining operator config, robots.txt and shared state.

    Both the state object and the robots cache are injected; the defaults
    are the database-backed state and the Django-cache-backed robots cache.
    """

    def __init__(
        self,
        state: Optional[GateState] = None,
        robots: Optional[RobotsCache] = None,
        default_min_delay_ms: Optional[int] = None,
        default_max_concurrency: Optional[int] = None,
    ):
        self.state = state or DatabaseGateState()
        self.robots = robots or RobotsCache()
        self.default_min_delay_ms = (
            default_min_delay_ms
            if default_min_delay_ms is not None
            else getattr(settings, "INGESTION_DEFAULT_MIN_DELAY_MS", 2000)
        )
        self.default_max_concurrency = default_max_concurrency or getattr(
            settings, "INGESTION_MAX_CONCURRENCY", 2
        )

    def _source_limits(self, domain: str) -> Tuple[int, int]:
        source = ListingSource.objects.filter(domain=domain).first()
        if source is None:
            return self.default_min_delay_ms, self.default_max_concurrency
        return source.min_delay_ms, source.max_concurrency or self.default_max_concurrency

    def effective_delay_ms(self, domain: str) -> int:
        min_delay_ms, _ = self._source_limits(domain)
        crawl_delay_ms = self.robots.crawl_delay_ms(domain) or 0
        return max(min_delay_ms, crawl_delay_ms)

    def is_allowed(self, url: str) -> bool:
        """robots.txt check for a URL."""
        return self.robots.is_allowed(url)

    def ensure_allowed(self, url: str) -> None:
        """
        Raises:
            RobotsDisallowed: if robots.txt excludes the URL for our bot
        """
        if not self.is_allowed(url):
            raise RobotsDisallowed(url)

    def try_acquire(self, domain: str) -> bool:
        min_delay_ms, max_concurrency = self._source_limits(domain)
        crawl_delay_ms = self.robots.crawl_delay_ms(domain) or 0
        delay = timedelta(milliseconds=max(min_delay_ms, crawl_delay_ms))

        acquired = self.state.try_acquire(domain, delay, max_concurrency)
        if not acquired:
            logger.debug(f"Gate denied for {domain} (delay {delay}, cap {max_concurrency})")
        return acquired

    def release(self, domain: str) -> None:
        self.state.release(domain)

    @contextmanager
    def slot(self, url: str):
        """
        Scoped acquisition for the domain of ``url``.

        Yields True when a slot was acquired. The slot is released on every
        exit path, exceptions included.
        """
        domain = domain_from(url)
        acquired = self.try_acquire(domain)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(domain)
