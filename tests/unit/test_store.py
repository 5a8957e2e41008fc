"""Tests for the SQLite storage backend."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from quotedesk.core.config import StorageConfig
from quotedesk.core.exceptions import StorageError
from quotedesk.core.models import InstrumentIdentifiers, StorageBackend
from quotedesk.storage.store import SqliteStore, StoreProtocol, create_store


class TestLifecycle:
    async def test_satisfies_protocol(self, store):
        assert isinstance(store, StoreProtocol)

    async def test_health_check(self, store):
        assert await store.health_check() is True

    async def test_health_check_after_close(self):
        s = SqliteStore(StorageConfig(sqlite_path=":memory:"))
        await s.initialize()
        await s.close()
        assert await s.health_check() is False

    async def test_uninitialized_store_raises(self):
        s = SqliteStore(StorageConfig(sqlite_path=":memory:"))
        with pytest.raises(StorageError, match="not initialized"):
            await s.get_instrument("x")

    async def test_create_store_initializes(self, tmp_path):
        config = StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "nested" / "quotes.db"),
        )
        s = await create_store(config)
        try:
            assert await s.health_check()
            assert (tmp_path / "nested" / "quotes.db").exists()
        finally:
            await s.close()

    async def test_migrations_are_idempotent(self, tmp_path, make_instrument):
        config = StorageConfig(sqlite_path=str(tmp_path / "quotes.db"))
        s = await create_store(config)
        await s.insert_instrument_if_absent(make_instrument())
        await s.close()

        reopened = await create_store(config)
        try:
            assert await reopened.get_instrument("stock-1") is not None
            assert await reopened._get_schema_version() == 1
        finally:
            await reopened.close()


class TestInstruments:
    async def test_insert_and_get(self, store, make_instrument):
        inst = make_instrument(corporate_actions=[{"type": "split", "ratio": 2}])
        stored, created = await store.insert_instrument_if_absent(inst)

        assert created is True
        assert stored == inst
        loaded = await store.get_instrument("stock-1")
        assert loaded == inst
        assert loaded.corporate_actions == [{"type": "split", "ratio": 2}]
        assert loaded.identifiers.yahoo == "LLOY.L"

    async def test_get_missing(self, store):
        assert await store.get_instrument("nope") is None

    async def test_find_instrument_id(self, store, make_instrument):
        await store.insert_instrument_if_absent(make_instrument())
        assert await store.find_instrument_id("yahoo", "LLOY.L") == "stock-1"
        assert await store.find_instrument_id("yahoo", "VOD.L") is None
        assert await store.find_instrument_id("isin", "LLOY.L") is None

    async def test_duplicate_identifier_returns_existing(self, store, make_instrument):
        first, created_first = await store.insert_instrument_if_absent(
            make_instrument("stock-1")
        )
        second, created_second = await store.insert_instrument_if_absent(
            make_instrument("stock-2")
        )

        assert created_first is True
        assert created_second is False
        assert second.id == first.id == "stock-1"
        assert await store.get_instrument("stock-2") is None
        assert (await store.get_statistics())["instruments"] == 1

    async def test_concurrent_claims_keep_one_instrument(self, store, make_instrument):
        results = await asyncio.gather(
            *(
                store.insert_instrument_if_absent(make_instrument(f"stock-{n}"))
                for n in range(1, 6)
            )
        )

        assert [created for _, created in results].count(True) == 1
        assert len({inst.id for inst, _ in results}) == 1
        assert (await store.get_statistics())["instruments"] == 1
        assert len(await store.list_instruments()) == 1

    async def test_every_populated_identifier_is_claimed(self, store, make_instrument):
        inst = make_instrument(
            identifiers=InstrumentIdentifiers(yahoo="LLOY.L", isin="GB0008706128")
        )
        await store.insert_instrument_if_absent(inst)
        assert await store.find_instrument_id("isin", "GB0008706128") == "stock-1"

    async def test_list_instruments(self, store, make_instrument):
        await store.insert_instrument_if_absent(make_instrument("a", "LLOY.L"))
        await store.insert_instrument_if_absent(make_instrument("b", "VOD.L"))
        assert {i.id for i in await store.list_instruments()} == {"a", "b"}
        assert len(await store.list_instruments(limit=1)) == 1

    async def test_timestamps_round_trip_as_aware_utc(self, store, make_instrument):
        await store.insert_instrument_if_absent(make_instrument())
        loaded = await store.get_instrument("stock-1")
        assert loaded.metadata.created_at.tzinfo is not None
        assert loaded.metadata.created_at == datetime(2024, 3, 1, 14, 30, tzinfo=UTC)


class TestSnapshots:
    @pytest.fixture
    async def registered(self, store, make_instrument):
        await store.insert_instrument_if_absent(make_instrument())
        return store

    async def test_put_and_get(self, registered, make_snapshot):
        snap = make_snapshot(volume=1000, change=0.4)
        assert await registered.put_snapshot(snap) is True
        loaded = await registered.get_snapshot("stock-1")
        assert loaded == snap

    async def test_get_missing(self, store):
        assert await store.get_snapshot("stock-1") is None

    async def test_one_snapshot_per_instrument(self, registered, make_snapshot):
        t0 = datetime(2024, 3, 1, 14, 30, tzinfo=UTC)
        await registered.put_snapshot(make_snapshot(current=50.0, updated_at=t0))
        await registered.put_snapshot(
            make_snapshot(current=53.0, updated_at=t0 + timedelta(minutes=20))
        )

        loaded = await registered.get_snapshot("stock-1")
        assert loaded.current == 53.0
        assert (await registered.get_statistics())["snapshots"] == 1

    async def test_older_write_does_not_regress(self, registered, make_snapshot):
        t0 = datetime(2024, 3, 1, 14, 30, tzinfo=UTC)
        await registered.put_snapshot(
            make_snapshot(current=53.0, updated_at=t0 + timedelta(minutes=20))
        )
        written = await registered.put_snapshot(
            make_snapshot(current=50.0, updated_at=t0)
        )

        assert written is False
        loaded = await registered.get_snapshot("stock-1")
        assert loaded.current == 53.0
        assert loaded.updated_at == t0 + timedelta(minutes=20)

    async def test_equal_timestamp_overwrites(self, registered, make_snapshot):
        t0 = datetime(2024, 3, 1, 14, 30, tzinfo=UTC)
        await registered.put_snapshot(make_snapshot(current=50.0, updated_at=t0))
        assert await registered.put_snapshot(make_snapshot(current=51.0, updated_at=t0))
        assert (await registered.get_snapshot("stock-1")).current == 51.0

    async def test_offset_timestamps_compare_in_utc(self, registered, make_snapshot):
        from datetime import timezone

        utc_write = datetime(2024, 3, 1, 14, 30, tzinfo=UTC)
        # 15:00 at +02:00 is 13:00 UTC, older than the stored value
        older = datetime(2024, 3, 1, 15, 0, tzinfo=timezone(timedelta(hours=2)))
        await registered.put_snapshot(make_snapshot(current=50.0, updated_at=utc_write))
        assert await registered.put_snapshot(
            make_snapshot(current=49.0, updated_at=older)
        ) is False

    async def test_snapshot_requires_registered_instrument(self, store, make_snapshot):
        with pytest.raises(StorageError, match="Failed to save price snapshot"):
            await store.put_snapshot(make_snapshot(instrument_id="ghost"))

    async def test_failed_write_leaves_no_open_transaction(
        self, store, make_instrument, make_snapshot
    ):
        with pytest.raises(StorageError):
            await store.put_snapshot(make_snapshot(instrument_id="ghost"))

        _, created = await store.insert_instrument_if_absent(make_instrument())
        assert created is True
        assert await store.put_snapshot(make_snapshot()) is True
        assert await store.get_statistics() == {"instruments": 1, "snapshots": 1}


class TestStatistics:
    async def test_empty(self, store):
        assert await store.get_statistics() == {"instruments": 0, "snapshots": 0}

    async def test_counts(self, store, make_instrument, make_snapshot):
        await store.insert_instrument_if_absent(make_instrument())
        await store.put_snapshot(make_snapshot())
        assert await store.get_statistics() == {"instruments": 1, "snapshots": 1}
