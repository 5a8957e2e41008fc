"""Tests for quotedesk.quotes.cache (PriceCache)."""

from datetime import timedelta

import pytest

from quotedesk.core.config import CacheConfig
from quotedesk.core.exceptions import StorageError
from quotedesk.core.models import FetchStatus
from quotedesk.quotes.cache import DEFAULT_MAX_AGE, PriceCache


class OvertakenAdapter:
    """Stores a newer snapshot while its own fetch is in flight."""

    def __init__(self, inner, store, newer):
        self.inner = inner
        self.store = store
        self.newer = newer

    async def fetch(self, symbol):
        await self.store.put_snapshot(self.newer)
        return await self.inner.fetch(symbol)


@pytest.fixture
async def registered_store(store, make_instrument):
    await store.insert_instrument_if_absent(make_instrument())
    return store


@pytest.fixture
def cache(registered_store, clock) -> PriceCache:
    return PriceCache(registered_store, clock=clock)


class TestConstruction:
    def test_default_max_age_is_fifteen_minutes(self, store):
        assert PriceCache(store).max_age == timedelta(minutes=15)
        assert DEFAULT_MAX_AGE == timedelta(minutes=15)

    def test_from_config(self, store):
        cache = PriceCache.from_config(store, CacheConfig(max_age_seconds=60))
        assert cache.max_age == timedelta(seconds=60)


class TestIsStale:
    def test_missing_snapshot_is_stale(self, cache):
        assert cache.is_stale(None)

    def test_young_snapshot_is_fresh(self, cache, clock, make_snapshot):
        snap = make_snapshot(updated_at=clock.now - timedelta(minutes=5))
        assert not cache.is_stale(snap)

    def test_exactly_max_age_is_fresh(self, cache, clock, make_snapshot):
        snap = make_snapshot(updated_at=clock.now - timedelta(minutes=15))
        assert not cache.is_stale(snap)

    def test_older_than_max_age_is_stale(self, cache, clock, make_snapshot):
        snap = make_snapshot(updated_at=clock.now - timedelta(minutes=15, seconds=1))
        assert cache.is_stale(snap)


class TestGetWithRefresh:
    async def test_fresh_hit_skips_adapter(
        self, cache, registered_store, clock, international, make_snapshot
    ):
        snap = make_snapshot(current=50.0, updated_at=clock.now - timedelta(minutes=10))
        await registered_store.put_snapshot(snap)

        result = await cache.get_with_refresh("stock-1", "LLOY.L", international)

        assert result.from_cache is True
        assert result.stale is False
        assert result.snapshot == snap
        assert international.calls == []

    async def test_miss_fetches_and_stores(
        self, cache, registered_store, clock, international
    ):
        result = await cache.get_with_refresh("stock-1", "LLOY.L", international)

        assert result.from_cache is False
        assert result.stale is False
        assert result.snapshot.current == 52.3
        assert result.snapshot.updated_at == clock.now
        assert international.calls == ["LLOY.L"]
        assert await registered_store.get_snapshot("stock-1") == result.snapshot

    async def test_stale_snapshot_is_refreshed(
        self, cache, registered_store, clock, international, make_snapshot
    ):
        old = make_snapshot(current=50.0, updated_at=clock.now - timedelta(minutes=20))
        await registered_store.put_snapshot(old)

        result = await cache.get_with_refresh("stock-1", "LLOY.L", international)

        assert result.from_cache is False
        assert result.snapshot.current == 52.3
        assert result.snapshot.updated_at == clock.now
        assert result.snapshot.updated_at > old.updated_at

    async def test_stale_fallback_when_upstream_fails(
        self, cache, registered_store, clock, international, make_snapshot
    ):
        old = make_snapshot(current=50.0, updated_at=clock.now - timedelta(minutes=20))
        await registered_store.put_snapshot(old)
        international.fail(FetchStatus.ERROR)

        result = await cache.get_with_refresh("stock-1", "LLOY.L", international)

        assert result.from_cache is True
        assert result.stale is True
        assert result.snapshot == old
        assert await registered_store.get_snapshot("stock-1") == old

    async def test_unavailable_without_prior_snapshot(
        self, cache, registered_store, international
    ):
        international.fail(FetchStatus.RATE_LIMITED)

        result = await cache.get_with_refresh("stock-1", "LLOY.L", international)

        assert result is None
        assert await registered_store.get_snapshot("stock-1") is None

    async def test_snapshot_ages_into_staleness(
        self, cache, clock, international
    ):
        first = await cache.get_with_refresh("stock-1", "LLOY.L", international)
        clock.advance(minutes=14)
        second = await cache.get_with_refresh("stock-1", "LLOY.L", international)
        clock.advance(minutes=2)
        third = await cache.get_with_refresh("stock-1", "LLOY.L", international)

        assert first.from_cache is False
        assert second.from_cache is True
        assert third.from_cache is False
        assert third.snapshot.updated_at == clock.now
        assert len(international.calls) == 2

    async def test_newer_concurrent_write_wins(
        self, cache, registered_store, clock, international, make_snapshot
    ):
        await registered_store.put_snapshot(
            make_snapshot(current=50.0, updated_at=clock.now - timedelta(minutes=20))
        )
        newer = make_snapshot(current=55.0, updated_at=clock.now + timedelta(seconds=1))
        adapter = OvertakenAdapter(international, registered_store, newer)

        result = await cache.get_with_refresh("stock-1", "LLOY.L", adapter)

        assert result.snapshot == newer
        assert result.from_cache is True
        assert result.stale is False
        assert await registered_store.get_snapshot("stock-1") == newer

    async def test_store_errors_propagate(self, store, clock, international):
        # No instrument row: the snapshot write violates the foreign key
        cache = PriceCache(store, clock=clock)
        with pytest.raises(StorageError):
            await cache.get_with_refresh("ghost", "LLOY.L", international)


class TestRefresh:
    async def test_refresh_returns_stored_newer_snapshot(
        self, cache, registered_store, clock, international, make_snapshot
    ):
        newer = make_snapshot(current=55.0, updated_at=clock.now + timedelta(seconds=1))
        adapter = OvertakenAdapter(international, registered_store, newer)
        assert await cache.refresh("stock-1", "LLOY.L", adapter) == newer

    async def test_refresh_returns_none_without_data(self, cache, international):
        assert await cache.refresh("stock-1", "UNKNOWN.L", international) is None

    async def test_refresh_overwrites(self, cache, clock, international):
        snap = await cache.refresh("stock-1", "LLOY.L", international)
        assert snap.source == "yahoo"
        assert snap.currency == "GBp"
        assert (await cache.get("stock-1")) == snap
