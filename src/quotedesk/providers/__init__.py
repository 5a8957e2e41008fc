"""Upstream quote providers.

Architecture
------------
    Upstream JSON → Transformer → NormalizedQuote → QuoteAdapter → Consumer

Key abstractions:

- ``QuoteAdapter``: Consumer-facing async interface for fetching one quote.
- ``DescriptionSource``: Supplies instrument metadata for the registry.
- ``SymbolRouter``: Picks the domestic or international adapter for a symbol.

Built-in implementations:

- ``FinnhubQuoteAdapter``: Domestic quotes from the Finnhub API (key required).
- ``YahooQuoteAdapter``: International quotes, descriptions and symbol
  search from Yahoo Finance (keyless).
"""

from quotedesk.providers.base import DescriptionSource, QuoteAdapter
from quotedesk.providers.finnhub import FinnhubQuoteAdapter, FinnhubQuoteTransformer
from quotedesk.providers.router import SymbolRouter, is_international_symbol
from quotedesk.providers.yahoo import YahooChartTransformer, YahooQuoteAdapter

__all__ = [
    # Protocols
    "QuoteAdapter",
    "DescriptionSource",
    # Routing
    "SymbolRouter",
    "is_international_symbol",
    # Finnhub
    "FinnhubQuoteAdapter",
    "FinnhubQuoteTransformer",
    # Yahoo Finance
    "YahooQuoteAdapter",
    "YahooChartTransformer",
]
