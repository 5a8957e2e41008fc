"""Cache-aside price retrieval with stale-read fallback.

Each instrument has at most one snapshot. A snapshot younger than the
configured max age is served as-is. An older one triggers a refresh, and if
the refresh fails the old snapshot is served flagged ``stale``. A fresh read
is never fabricated: with no snapshot and no upstream data, the result is
None.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from quotedesk.core.config import CacheConfig
from quotedesk.core.models import PriceResult, PriceSnapshot, utcnow
from quotedesk.providers.base import QuoteAdapter
from quotedesk.storage.store import StoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(minutes=15)


class PriceCache:
    """Persistent instrument-id -> PriceSnapshot cache.

    Parameters
    ----------
    store : StoreProtocol
        Backing store; the cache owns the snapshot records in it.
    max_age : timedelta
        Snapshots older than this are stale. Default: 15 minutes.
    clock : Callable[[], datetime]
        Source of "now" as an aware UTC datetime. Injectable for tests.
    """

    def __init__(
        self,
        store: StoreProtocol,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._max_age = max_age
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        store: StoreProtocol,
        config: CacheConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> PriceCache:
        return cls(store, max_age=timedelta(seconds=config.max_age_seconds), clock=clock)

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def is_stale(self, snapshot: PriceSnapshot | None) -> bool:
        if snapshot is None:
            return True
        return self._clock() - snapshot.updated_at > self._max_age

    async def get(self, instrument_id: str) -> PriceSnapshot | None:
        return await self._store.get_snapshot(instrument_id)

    async def refresh(
        self, instrument_id: str, provider_symbol: str, adapter: QuoteAdapter
    ) -> PriceSnapshot | None:
        """Fetch from upstream and overwrite the snapshot.

        Returns the snapshot now held by the store, or None if the adapter
        had no data.
        """
        stored = await self._fetch_and_store(instrument_id, provider_symbol, adapter)
        return stored[0] if stored is not None else None

    async def _fetch_and_store(
        self, instrument_id: str, provider_symbol: str, adapter: QuoteAdapter
    ) -> tuple[PriceSnapshot, bool] | None:
        quote = await adapter.fetch(provider_symbol)
        if quote is None:
            return None

        snapshot = PriceSnapshot.from_quote(instrument_id, quote, self._clock())
        if await self._store.put_snapshot(snapshot):
            logger.info("Updated price cache for stock %s", instrument_id)
            return snapshot, True

        logger.info(
            "Price cache for stock %s already holds a newer snapshot", instrument_id
        )
        newer = await self._store.get_snapshot(instrument_id)
        return newer, False

    async def get_with_refresh(
        self, instrument_id: str, provider_symbol: str, adapter: QuoteAdapter
    ) -> PriceResult | None:
        existing = await self._store.get_snapshot(instrument_id)

        if existing is not None and not self.is_stale(existing):
            logger.info("Cache hit for stock %s", instrument_id)
            return PriceResult(snapshot=existing, from_cache=True)

        logger.info("Cache miss/stale for stock %s, fetching fresh data", instrument_id)
        stored = await self._fetch_and_store(instrument_id, provider_symbol, adapter)
        if stored is not None:
            snapshot, written = stored
            return PriceResult(snapshot=snapshot, from_cache=not written)

        if existing is not None:
            logger.warning("Using stale cache for stock %s", instrument_id)
            return PriceResult(snapshot=existing, from_cache=True, stale=True)

        logger.warning("No price available for stock %s", instrument_id)
        return None
