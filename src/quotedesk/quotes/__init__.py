"""quotedesk.quotes: registry, price cache, and the orchestrating service."""

from quotedesk.quotes.cache import DEFAULT_MAX_AGE, PriceCache
from quotedesk.quotes.registry import StockRegistry
from quotedesk.quotes.service import QuoteService, Registration, StockPrice

__all__ = [
    "DEFAULT_MAX_AGE",
    "PriceCache",
    "StockRegistry",
    "QuoteService",
    "Registration",
    "StockPrice",
]
