"""
Fetch orchestration: per source, reuse a fresh cache entry, otherwise fetch;
on failure fall back to the stale entry, otherwise contribute nothing.
All sources run concurrently and one source's failure never affects another.
"""
import asyncio
import logging
from collections import namedtuple
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from billtracker.core.bill import Bill, BillStatus, normalize_bills, utc_now, align_now
from billtracker.core.cache_store import CacheStore


class Origin:
    """Where a source's contribution came from."""
    CACHE = "cache"
    FETCHED = "fetched"
    STALE = "stale"
    EMPTY = "empty"


SourceOutcome = namedtuple("SourceOutcome", ["source", "origin", "bills", "error"])


class FetchReport:
    """Merged bills plus what happened to every source."""

    def __init__(self, bills: List[Bill], outcomes: List[SourceOutcome]):
        self.bills = bills
        self.outcomes = outcomes

    @property
    def failed_sources(self) -> List[str]:
        return [o.source for o in self.outcomes if o.error is not None]

    @property
    def all_failed(self) -> bool:
        """True when every source failed and had no cache to fall back on."""
        return bool(self.outcomes) and all(o.origin == Origin.EMPTY for o in self.outcomes)


def due_date_key(bill: Bill) -> float:
    # timestamp() treats naive datetimes as local time, so mixed naive/aware bills still sort
    return bill.due_date.timestamp()


class FetchOrchestrator:
    def __init__(
        self,
        cache_store: CacheStore,
        fetch_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.cache_store = cache_store
        self.fetch_timeout = fetch_timeout
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    async def fetch_all(self, providers: Sequence, force_refresh: bool = False) -> List[Bill]:
        """Merged bills from all providers, ascending by due date."""
        report = await self.run(providers, force_refresh)
        return report.bills

    async def run(self, providers: Sequence, force_refresh: bool = False) -> FetchReport:
        providers = list(providers)
        results = await asyncio.gather(
            *(self._fetch_source(p, force_refresh) for p in providers),
            return_exceptions=True,
        )
        outcomes: List[SourceOutcome] = []
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                self.logger.error(f"Unexpected error for {provider.name}: {result!r}")
                result = await self._fallback(provider.name, str(result) or result.__class__.__name__)
            outcomes.append(result)

        merged: List[Bill] = []
        for outcome in outcomes:
            merged.extend(outcome.bills)
        merged.sort(key=due_date_key)
        return FetchReport(merged, outcomes)

    async def _fetch_source(self, provider, force_refresh: bool) -> SourceOutcome:
        source_id = provider.name

        if not force_refresh:
            cached = await asyncio.to_thread(self.cache_store.read_fresh, source_id)
            if cached is not None:
                self.logger.info(f"Using cached {source_id} data")
                return SourceOutcome(source_id, Origin.CACHE, cached, None)

        try:
            self.logger.info(f"Fetching fresh {source_id} data...")
            bills = normalize_bills(await self._invoke(provider))
        except Exception as e:
            error = str(e) or e.__class__.__name__
            self.logger.warning(f"Failed to fetch from {source_id}: {error}", exc_info=True)
            return await self._fallback(source_id, error)

        try:
            await asyncio.to_thread(self.cache_store.write, source_id, bills)
        except Exception as e:
            self.logger.warning(f"Failed to write cache for {source_id}: {e}")
        self.logger.info(f"Fetched {len(bills)} bill(s) from {source_id}")
        return SourceOutcome(source_id, Origin.FETCHED, bills, None)

    async def _fallback(self, source_id: str, error: str) -> SourceOutcome:
        """Stale cache if there is any, otherwise nothing."""
        try:
            stale = await asyncio.to_thread(self.cache_store.read_stale, source_id)
        except Exception as e:
            self.logger.error(f"Failed to read stale cache for {source_id}: {e}")
            stale = None
        if stale is not None:
            self.logger.warning(f"Using stale cache for {source_id}")
            return SourceOutcome(source_id, Origin.STALE, stale, error)
        return SourceOutcome(source_id, Origin.EMPTY, [], error)

    async def _invoke(self, provider):
        if self.fetch_timeout:
            return await asyncio.wait_for(provider.fetch(), self.fetch_timeout)
        return await provider.fetch()


def filter_by_category(bills: Iterable[Bill], category: str) -> List[Bill]:
    return [b for b in bills if b.category == category]


def filter_overdue(bills: Iterable[Bill], now: Optional[datetime] = None) -> List[Bill]:
    """Unpaid bills whose due date has passed."""
    now = now or utc_now()
    return [
        b for b in bills
        if b.status != BillStatus.PAID and b.due_date < align_now(now, b.due_date)
    ]


def filter_due_soon(bills: Iterable[Bill], days: int = 7, now: Optional[datetime] = None) -> List[Bill]:
    """Unpaid bills due between now and now + days."""
    now = now or utc_now()
    result = []
    for b in bills:
        if b.status == BillStatus.PAID:
            continue
        start = align_now(now, b.due_date)
        if start <= b.due_date <= start + timedelta(days=days):
            result.append(b)
    return result
