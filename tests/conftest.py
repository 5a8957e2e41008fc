"""Shared pytest fixtures for quotedesk."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from quotedesk.core.config import StorageConfig
from quotedesk.core.models import (
    FetchStatus,
    Instrument,
    InstrumentDescription,
    InstrumentIdentifiers,
    InstrumentMetadata,
    NormalizedQuote,
    PriceSnapshot,
    ProviderResult,
    StorageBackend,
    SymbolMatch,
)
from quotedesk.storage.store import SqliteStore


T0 = datetime(2024, 3, 1, 14, 30, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeQuoteAdapter:
    """In-memory QuoteAdapter: serves canned quotes and records calls."""

    def __init__(self, name: str, quotes: dict[str, NormalizedQuote] | None = None):
        self.name = name
        self.quotes = dict(quotes or {})
        self.status_override: FetchStatus | None = None
        self.calls: list[str] = []

    async def fetch_result(self, symbol: str) -> ProviderResult:
        self.calls.append(symbol)
        if self.status_override is not None:
            return ProviderResult(
                provider=self.name, symbol=symbol, status=self.status_override
            )
        quote = self.quotes.get(symbol)
        if quote is None:
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.EMPTY
            )
        return ProviderResult(
            provider=self.name, symbol=symbol, status=FetchStatus.OK, quote=quote
        )

    async def fetch(self, symbol: str) -> NormalizedQuote | None:
        result = await self.fetch_result(symbol)
        return result.quote

    def fail(self, status: FetchStatus = FetchStatus.ERROR) -> None:
        self.status_override = status


class FakeDomesticAdapter(FakeQuoteAdapter):
    def __init__(self, quotes=None, configured: bool = True):
        super().__init__("finnhub", quotes)
        self._configured = configured
        self.probes: list[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def probe(self, symbol: str) -> dict[str, Any]:
        self.probes.append(symbol)
        return {"quote": {"c": 1.0}, "candle": {"s": "no_data"}}


class FakeInternationalAdapter(FakeQuoteAdapter):
    def __init__(self, quotes=None, descriptions=None, matches=None):
        super().__init__("yahoo", quotes)
        self.descriptions: dict[str, InstrumentDescription] = dict(descriptions or {})
        self.matches: list[SymbolMatch] = list(matches or [])
        self.describe_calls: list[str] = []

    async def describe(self, symbol: str) -> InstrumentDescription | None:
        self.describe_calls.append(symbol)
        return self.descriptions.get(symbol)

    async def search(self, query: str) -> list[SymbolMatch]:
        return [m for m in self.matches if query.upper() in m.symbol.upper()]


# --- Sample data ---


def _make_quote(symbol: str = "AAPL", current: float = 189.5, **overrides) -> NormalizedQuote:
    defaults = dict(
        symbol=symbol,
        current=current,
        high=190.2,
        low=187.9,
        open=188.1,
        previous_close=188.0,
        change=1.5,
        change_percent=0.7979,
        source="finnhub",
    )
    defaults.update(overrides)
    return NormalizedQuote(**defaults)


def _make_instrument(
    instrument_id: str = "stock-1", symbol: str = "LLOY.L", **overrides
) -> Instrument:
    defaults = dict(
        id=instrument_id,
        name="Lloyds Banking Group plc",
        primary_symbol=symbol,
        currency="GBp",
        type="EQUITY",
        exchange="LSE",
        identifiers=InstrumentIdentifiers(yahoo=symbol),
        metadata=InstrumentMetadata(created_at=T0, updated_at=T0),
    )
    defaults.update(overrides)
    return Instrument(**defaults)


def _make_snapshot(
    instrument_id: str = "stock-1", current: float = 52.3, updated_at=T0, **overrides
) -> PriceSnapshot:
    defaults = dict(
        instrument_id=instrument_id,
        current=current,
        previous_close=51.9,
        currency="GBp",
        source="yahoo",
        updated_at=updated_at,
    )
    defaults.update(overrides)
    return PriceSnapshot(**defaults)


LLOY_DESCRIPTION = InstrumentDescription(
    symbol="LLOY.L",
    long_name="Lloyds Banking Group plc",
    short_name="LLOYDS BANKING GROUP PLC",
    currency="GBp",
    quote_type="EQUITY",
    exchange="LSE",
)


# --- Fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def domestic() -> FakeDomesticAdapter:
    return FakeDomesticAdapter(quotes={"AAPL": _make_quote()})


@pytest.fixture
def international() -> FakeInternationalAdapter:
    return FakeInternationalAdapter(
        quotes={
            "LLOY.L": _make_quote(
                "LLOY.L",
                52.3,
                name="Lloyds Banking Group plc",
                currency="GBp",
                previous_close=51.9,
                change=0.4,
                change_percent=0.7707,
                source="yahoo",
            )
        },
        descriptions={"LLOY.L": LLOY_DESCRIPTION},
        matches=[
            SymbolMatch(
                symbol="LLOY.L",
                description="Lloyds Banking Group plc",
                type="EQUITY",
                exchange="LSE",
            )
        ],
    )


@pytest.fixture
async def store():
    """An in-memory SqliteStore."""
    config = StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:")
    s = SqliteStore(config)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def make_quote():
    """Factory for NormalizedQuote with overridable defaults."""
    return _make_quote


@pytest.fixture
def make_instrument():
    """Factory for Instrument with overridable defaults."""
    return _make_instrument


@pytest.fixture
def make_snapshot():
    """Factory for PriceSnapshot with overridable defaults."""
    return _make_snapshot


@pytest.fixture
def lloy_description() -> InstrumentDescription:
    return LLOY_DESCRIPTION


@pytest.fixture
def service(store, clock, domestic, international):
    """QuoteService over the in-memory store, fake adapters and fake clock."""
    from quotedesk.quotes import PriceCache, QuoteService, StockRegistry

    return QuoteService(
        registry=StockRegistry(store, clock=clock),
        cache=PriceCache(store, clock=clock),
        domestic=domestic,
        international=international,
    )
