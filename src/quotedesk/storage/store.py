"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from quotedesk.core.config import StorageConfig
from quotedesk.core.exceptions import StorageError
from quotedesk.core.models import (
    Instrument,
    InstrumentIdentifiers,
    InstrumentMetadata,
    PriceSnapshot,
    StorageBackend as StorageBackendEnum,
    normalize_timestamp,
)

logger = logging.getLogger(__name__)

_SNAPSHOT_COLUMNS = (
    "current",
    "high",
    "low",
    "open",
    "previous_close",
    "change",
    "change_percent",
    "fifty_two_week_high",
    "fifty_two_week_low",
    "volume",
    "market_cap",
    "currency",
    "source",
    "updated_at",
)


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO string, so stored timestamps sort lexicographically."""
    return normalize_timestamp(value).isoformat(timespec="microseconds")


@runtime_checkable
class StoreProtocol(Protocol):
    """Abstract storage interface for the instrument registry and price cache."""

    async def get_instrument(self, instrument_id: str) -> Instrument | None: ...
    async def find_instrument_id(self, provider: str, symbol: str) -> str | None: ...
    async def insert_instrument_if_absent(
        self, instrument: Instrument
    ) -> tuple[Instrument, bool]: ...
    async def list_instruments(self, limit: int | None = None) -> list[Instrument]: ...
    async def get_snapshot(self, instrument_id: str) -> PriceSnapshot | None: ...
    async def put_snapshot(self, snapshot: PriceSnapshot) -> bool: ...
    async def get_statistics(self) -> dict[str, int]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.

    The ``instrument_identifiers`` primary key is what keeps one instrument
    per (provider, symbol): the insert of a duplicate claim fails and the
    caller is handed the existing record instead.

    All coroutines share one connection, and so one transaction. Writes
    hold ``_write_lock`` from ``BEGIN IMMEDIATE`` to commit or rollback so
    one caller's rollback never touches another caller's rows.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS instruments (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    primary_symbol TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    type TEXT NOT NULL,
                    exchange TEXT,
                    identifiers_json TEXT NOT NULL,
                    corporate_actions_json TEXT NOT NULL DEFAULT '[]',
                    adjustment_factor REAL NOT NULL DEFAULT 1.0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS instrument_identifiers (
                    provider TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    instrument_id TEXT NOT NULL REFERENCES instruments(id),
                    PRIMARY KEY (provider, symbol)
                )""",
                """CREATE TABLE IF NOT EXISTS price_snapshots (
                    instrument_id TEXT PRIMARY KEY REFERENCES instruments(id),
                    current REAL NOT NULL,
                    high REAL,
                    low REAL,
                    open REAL,
                    previous_close REAL,
                    change REAL,
                    change_percent REAL,
                    fifty_two_week_high REAL,
                    fifty_two_week_low REAL,
                    volume INTEGER,
                    market_cap REAL,
                    currency TEXT,
                    source TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_identifiers_instrument ON instrument_identifiers(instrument_id)",
                "CREATE INDEX IF NOT EXISTS idx_instruments_symbol ON instruments(primary_symbol)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": "connect", "path": self._path},
            )
        return self._db

    async def _rollback(self, db: aiosqlite.Connection) -> None:
        if db.in_transaction:
            await db.rollback()

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Instrument Operations ---

    async def get_instrument(self, instrument_id: str) -> Instrument | None:
        try:
            async with self._conn().execute(
                "SELECT * FROM instruments WHERE id = ?", (instrument_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_instrument(row) if row is not None else None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get instrument: {e}",
                context={
                    "operation": "query",
                    "table": "instruments",
                    "instrument_id": instrument_id,
                },
            ) from e

    async def find_instrument_id(self, provider: str, symbol: str) -> str | None:
        try:
            async with self._conn().execute(
                """SELECT instrument_id FROM instrument_identifiers
                   WHERE provider = ? AND symbol = ?""",
                (provider, symbol),
            ) as cursor:
                row = await cursor.fetchone()
            return row["instrument_id"] if row is not None else None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to look up identifier: {e}",
                context={
                    "operation": "query",
                    "table": "instrument_identifiers",
                    "provider": provider,
                    "symbol": symbol,
                },
            ) from e

    async def insert_instrument_if_absent(
        self, instrument: Instrument
    ) -> tuple[Instrument, bool]:
        """Insert ``instrument`` unless one of its identifiers is already claimed.

        Returns the stored record and whether this call created it.
        """
        db = self._conn()
        claims = instrument.identifiers.populated()
        async with self._write_lock:
            try:
                await db.execute("BEGIN IMMEDIATE")
                await db.execute(
                    """INSERT INTO instruments
                       (id, name, primary_symbol, currency, type, exchange,
                        identifiers_json, corporate_actions_json, adjustment_factor,
                        created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        instrument.id,
                        instrument.name,
                        instrument.primary_symbol,
                        instrument.currency,
                        instrument.type,
                        instrument.exchange,
                        json.dumps(instrument.identifiers.model_dump()),
                        json.dumps(instrument.corporate_actions),
                        instrument.adjustment_factor,
                        _ts(instrument.metadata.created_at),
                        _ts(instrument.metadata.updated_at),
                    ),
                )
                for provider, symbol in claims.items():
                    await db.execute(
                        """INSERT INTO instrument_identifiers
                           (provider, symbol, instrument_id) VALUES (?, ?, ?)""",
                        (provider, symbol, instrument.id),
                    )
                await db.commit()
                return instrument, True
            except aiosqlite.IntegrityError:
                await self._rollback(db)
            except Exception as e:
                await self._rollback(db)
                raise StorageError(
                    f"Failed to insert instrument: {e}",
                    context={
                        "operation": "insert",
                        "table": "instruments",
                        "instrument_id": instrument.id,
                    },
                ) from e

        for provider, symbol in claims.items():
            existing_id = await self.find_instrument_id(provider, symbol)
            if existing_id is None:
                continue
            existing = await self.get_instrument(existing_id)
            if existing is not None:
                logger.info(
                    "Identifier %s:%s already claimed by %s",
                    provider,
                    symbol,
                    existing_id,
                )
                return existing, False

        raise StorageError(
            "Instrument insert conflicted but no existing record was found",
            context={
                "operation": "insert",
                "table": "instruments",
                "instrument_id": instrument.id,
            },
        )

    async def list_instruments(self, limit: int | None = None) -> list[Instrument]:
        try:
            query = "SELECT * FROM instruments ORDER BY created_at"
            params: list = []
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            async with self._conn().execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_instrument(r) for r in rows]
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to list instruments: {e}",
                context={"operation": "query", "table": "instruments"},
            ) from e

    # --- Price Snapshot Operations ---

    async def get_snapshot(self, instrument_id: str) -> PriceSnapshot | None:
        try:
            async with self._conn().execute(
                "SELECT * FROM price_snapshots WHERE instrument_id = ?",
                (instrument_id,),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_snapshot(row) if row is not None else None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get price snapshot: {e}",
                context={
                    "operation": "query",
                    "table": "price_snapshots",
                    "instrument_id": instrument_id,
                },
            ) from e

    async def put_snapshot(self, snapshot: PriceSnapshot) -> bool:
        """Upsert the snapshot unless a newer one is already stored.

        Returns True if the row was written.
        """
        values = (
            snapshot.current,
            snapshot.high,
            snapshot.low,
            snapshot.open,
            snapshot.previous_close,
            snapshot.change,
            snapshot.change_percent,
            snapshot.fifty_two_week_high,
            snapshot.fifty_two_week_low,
            snapshot.volume,
            snapshot.market_cap,
            snapshot.currency,
            snapshot.source,
            _ts(snapshot.updated_at),
        )
        columns = ", ".join(_SNAPSHOT_COLUMNS)
        placeholders = ", ".join("?" for _ in _SNAPSHOT_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _SNAPSHOT_COLUMNS)
        db = self._conn()
        async with self._write_lock:
            try:
                await db.execute("BEGIN IMMEDIATE")
                cursor = await db.execute(
                    f"""INSERT INTO price_snapshots (instrument_id, {columns})
                        VALUES (?, {placeholders})
                        ON CONFLICT(instrument_id) DO UPDATE SET {updates}
                        WHERE excluded.updated_at >= price_snapshots.updated_at""",
                    (snapshot.instrument_id, *values),
                )
                written = cursor.rowcount > 0
                await cursor.close()
                await db.commit()
                return written
            except Exception as e:
                await self._rollback(db)
                raise StorageError(
                    f"Failed to save price snapshot: {e}",
                    context={
                        "operation": "insert",
                        "table": "price_snapshots",
                        "instrument_id": snapshot.instrument_id,
                    },
                ) from e

    async def get_statistics(self) -> dict[str, int]:
        try:
            stats: dict[str, int] = {}
            for key, table in (
                ("instruments", "instruments"),
                ("snapshots", "price_snapshots"),
            ):
                async with self._conn().execute(
                    f"SELECT COUNT(*) FROM {table}"
                ) as cursor:
                    row = await cursor.fetchone()
                stats[key] = row[0]
            return stats
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "query"},
            ) from e

    # --- Row Converters ---

    @staticmethod
    def _row_to_instrument(row: aiosqlite.Row) -> Instrument:
        return Instrument(
            id=row["id"],
            name=row["name"],
            primary_symbol=row["primary_symbol"],
            currency=row["currency"],
            type=row["type"],
            exchange=row["exchange"],
            identifiers=InstrumentIdentifiers(**json.loads(row["identifiers_json"])),
            corporate_actions=json.loads(row["corporate_actions_json"] or "[]"),
            adjustment_factor=row["adjustment_factor"],
            metadata=InstrumentMetadata(
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            ),
        )

    @staticmethod
    def _row_to_snapshot(row: aiosqlite.Row) -> PriceSnapshot:
        return PriceSnapshot(
            instrument_id=row["instrument_id"],
            **{c: row[c] for c in _SNAPSHOT_COLUMNS},
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
