"""Integration test fixtures: real storage and adapters, mocked network."""

from __future__ import annotations

from pathlib import Path

import pytest

from quotedesk.core.config import (
    APIConfig,
    ProvidersConfig,
    QuoteDeskConfig,
    StorageConfig,
)
from quotedesk.core.models import StorageBackend
from quotedesk.providers.finnhub import FinnhubQuoteAdapter
from quotedesk.providers.yahoo import YahooQuoteAdapter
from quotedesk.quotes import PriceCache, QuoteService, StockRegistry
from quotedesk.storage.store import SqliteStore

FINNHUB_QUOTE_URL = "https://finnhub.io/api/v1/quote"
YAHOO_CHART_URL = "https://query2.finance.yahoo.com/v8/finance/chart/LLOY.L"

AAPL_QUOTE = {"c": 189.5, "d": 1.5, "dp": 0.7979, "h": 190.2, "l": 187.9, "o": 188.1, "pc": 188.0}

LLOY_CHART = {
    "chart": {
        "result": [
            {
                "meta": {
                    "currency": "GBp",
                    "symbol": "LLOY.L",
                    "exchangeName": "LSE",
                    "instrumentType": "EQUITY",
                    "regularMarketPrice": 52.3,
                    "regularMarketDayHigh": 52.8,
                    "regularMarketDayLow": 51.6,
                    "chartPreviousClose": 51.9,
                    "longName": "Lloyds Banking Group plc",
                },
                "indicators": {"quote": [{"open": [51.0, 51.7]}]},
            }
        ],
        "error": None,
    }
}


@pytest.fixture
def integration_config(tmp_path: Path) -> QuoteDeskConfig:
    return QuoteDeskConfig(
        providers=ProvidersConfig(finnhub_api_key="integration-key"),
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "integration.db"),
        ),
        api=APIConfig(tokens={"integration-token": "tester"}),
    )


@pytest.fixture
async def integration_store(integration_config) -> SqliteStore:
    """An initialized file-backed SqliteStore."""
    store = SqliteStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def build_service(clock):
    """Wire QuoteService with the real adapters and the test clock."""

    def _build(config: QuoteDeskConfig, store) -> QuoteService:
        return QuoteService(
            registry=StockRegistry(store, clock=clock),
            cache=PriceCache.from_config(store, config.cache, clock=clock),
            domestic=FinnhubQuoteAdapter.from_config(config.providers),
            international=YahooQuoteAdapter.from_config(config.providers),
        )

    return _build


@pytest.fixture
def chart_body() -> dict:
    return LLOY_CHART


@pytest.fixture
def finnhub_body() -> dict:
    return AAPL_QUOTE
