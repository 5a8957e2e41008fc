"""Quote orchestration: ad-hoc quotes and registry-bound cached prices.

Registry-bound retrieval runs, per request:

    REGISTRY_LOOKUP ─┬─ NOT_FOUND                       → NotFoundError
                     └─ FOUND → CACHE_READ ─┬─ FRESH_HIT → cached snapshot
                                            └─ MISS_OR_STALE → UPSTREAM_FETCH
                                                 ├─ SUCCESS          → fresh snapshot
                                                 ├─ STALE_FALLBACK   → stale snapshot
                                                 └─ FAILURE_NO_PRIOR → ProviderUnavailableError

The ad-hoc path skips the registry and the cache and always goes upstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from quotedesk.core.config import QuoteDeskConfig
from quotedesk.core.exceptions import (
    ConfigError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
    ProviderUnavailableError,
    QuoteDeskError,
)
from quotedesk.core.models import (
    FetchStatus,
    Instrument,
    InstrumentDescription,
    MarketRoute,
    NormalizedQuote,
    PriceResult,
    SymbolMatch,
)
from quotedesk.providers.base import QuoteAdapter
from quotedesk.providers.finnhub import FinnhubQuoteAdapter
from quotedesk.providers.router import SymbolRouter
from quotedesk.providers.yahoo import YahooQuoteAdapter
from quotedesk.quotes.cache import PriceCache
from quotedesk.quotes.registry import StockRegistry
from quotedesk.storage.store import StoreProtocol

logger = logging.getLogger(__name__)

REGISTRATION_PROVIDER = "yahoo"


class DomesticProvider(QuoteAdapter, Protocol):
    """A quote adapter that also offers raw diagnostics."""

    @property
    def configured(self) -> bool: ...

    async def probe(self, symbol: str) -> dict[str, Any]: ...


class InternationalProvider(QuoteAdapter, Protocol):
    """A quote adapter that also describes and searches instruments."""

    async def describe(self, symbol: str) -> InstrumentDescription | None: ...

    async def search(self, query: str) -> list[SymbolMatch]: ...


@dataclass
class Registration:
    """Result of registering (or re-finding) an instrument."""

    instrument: Instrument
    price: PriceResult | None
    created: bool

    @property
    def stock_id(self) -> str:
        return self.instrument.id


@dataclass
class StockPrice:
    """A registry-bound price: the instrument plus its served snapshot."""

    instrument: Instrument
    price: PriceResult


def _require(value: str | None, parameter: str) -> str:
    if value is None or not value.strip():
        raise InvalidRequestError(
            f"Missing {parameter} parameter", context={"parameter": parameter}
        )
    return value.strip()


class QuoteService:
    """Composes router, adapters, registry and cache.

    Parameters
    ----------
    registry : StockRegistry
    cache : PriceCache
    domestic : DomesticProvider
        Serves symbols without an exchange suffix (Finnhub).
    international : InternationalProvider
        Serves suffixed symbols, instrument descriptions and search (Yahoo).
    """

    def __init__(
        self,
        registry: StockRegistry,
        cache: PriceCache,
        domestic: DomesticProvider,
        international: InternationalProvider,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._domestic = domestic
        self._international = international
        self._router = SymbolRouter(domestic=domestic, international=international)
        # identifier key -> adapter able to quote that identifier, in priority order
        self._identifier_adapters: dict[str, QuoteAdapter] = {
            REGISTRATION_PROVIDER: international,
        }

    @classmethod
    def from_config(cls, config: QuoteDeskConfig, store: StoreProtocol) -> QuoteService:
        return cls(
            registry=StockRegistry(store),
            cache=PriceCache.from_config(store, config.cache),
            domestic=FinnhubQuoteAdapter.from_config(config.providers),
            international=YahooQuoteAdapter.from_config(config.providers),
        )

    @property
    def registry(self) -> StockRegistry:
        return self._registry

    @property
    def cache(self) -> PriceCache:
        return self._cache

    @staticmethod
    def _internal_error(operation: str, exc: Exception) -> InternalError:
        logger.error("Unexpected error during %s", operation, exc_info=exc)
        return InternalError(f"Failed to {operation}", context={"operation": operation})

    def _adapter_for(self, instrument: Instrument) -> tuple[str, QuoteAdapter]:
        identifiers = instrument.identifiers.populated()
        for key, adapter in self._identifier_adapters.items():
            if key in identifiers:
                return identifiers[key], adapter
        raise ProviderUnavailableError(
            "Stock has no provider symbol configured",
            context={"stock_id": instrument.id, "identifiers": identifiers},
        )

    # --- Ad-hoc ---

    async def get_quote(self, symbol: str | None) -> NormalizedQuote:
        """Route ``symbol`` to its provider and fetch a live quote."""
        symbol = _require(symbol, "symbol")
        route = self._router.classify(symbol)
        adapter = self._router.select(symbol)
        logger.info("Fetching %s quote for %s from %s", route, symbol, adapter.name)

        try:
            result = await adapter.fetch_result(symbol)
        except Exception as e:
            raise self._internal_error("fetch quote", e) from e

        if result.ok:
            return result.quote
        context = {"provider": adapter.name, "symbol": symbol, "status": str(result.status)}
        if result.status == FetchStatus.MISSING_KEY:
            raise ConfigError(f"{adapter.name} API key not configured", context=context)
        if result.status == FetchStatus.EMPTY:
            raise NotFoundError(f"No data found for symbol: {symbol}", context=context)
        raise ProviderUnavailableError("Failed to fetch quote", context=context)

    async def search(self, query: str | None) -> list[SymbolMatch]:
        query = _require(query, "q")
        return await self._international.search(query)

    async def probe(self, symbol: str) -> dict[str, Any]:
        """Raw domestic-provider diagnostics for ``symbol``."""
        symbol = _require(symbol, "symbol")
        if not self._domestic.configured:
            raise ConfigError(
                f"{self._domestic.name} API key not configured",
                context={"provider": self._domestic.name},
            )
        return await self._domestic.probe(symbol)

    # --- Registry-bound ---

    async def register(self, symbol: str | None) -> Registration:
        """Find or create the instrument for ``symbol`` and read its price.

        A missing price does not fail the registration; ``price`` is None.
        """
        symbol = _require(symbol, "symbol")
        try:
            instrument, created = await self._registry.find_or_create(
                REGISTRATION_PROVIDER,
                symbol,
                lambda: self._international.describe(symbol),
            )
            provider_symbol, adapter = self._adapter_for(instrument)
            price = await self._cache.get_with_refresh(
                instrument.id, provider_symbol, adapter
            )
        except QuoteDeskError:
            raise
        except Exception as e:
            raise self._internal_error("register stock", e) from e
        return Registration(instrument=instrument, price=price, created=created)

    async def get_stock(self, stock_id: str | None) -> Instrument:
        stock_id = _require(stock_id, "stockId")
        try:
            instrument = await self._registry.get(stock_id)
        except QuoteDeskError:
            raise
        except Exception as e:
            raise self._internal_error("get stock", e) from e
        if instrument is None:
            raise NotFoundError(
                f"Stock not found: {stock_id}", context={"stock_id": stock_id}
            )
        return instrument

    async def get_stock_price(self, stock_id: str | None) -> StockPrice:
        instrument = await self.get_stock(stock_id)
        provider_symbol, adapter = self._adapter_for(instrument)
        try:
            price = await self._cache.get_with_refresh(
                instrument.id, provider_symbol, adapter
            )
        except QuoteDeskError:
            raise
        except Exception as e:
            raise self._internal_error("get stock price", e) from e

        if price is None:
            raise ProviderUnavailableError(
                "Failed to fetch price",
                context={
                    "stock_id": instrument.id,
                    "provider": adapter.name,
                    "symbol": provider_symbol,
                },
            )
        return StockPrice(instrument=instrument, price=price)

    def classify(self, symbol: str) -> MarketRoute:
        return self._router.classify(symbol)
