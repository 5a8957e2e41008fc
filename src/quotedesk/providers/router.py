"""Symbol routing between the domestic and international providers."""

from __future__ import annotations

import re

from quotedesk.core.models import MarketRoute
from quotedesk.providers.base import QuoteAdapter

# Exchange suffix such as ".L" (London) or ".PA" (Paris).
_EXCHANGE_SUFFIX = re.compile(r"\.[A-Z]{1,2}$")


def is_international_symbol(symbol: str) -> bool:
    """True if the symbol ends in a dot plus one or two uppercase letters.

    Longer or lowercase suffixes do not match and route domestic. Share-class
    tickers such as ``BRK.B`` match and route international.
    """
    return _EXCHANGE_SUFFIX.search(symbol) is not None


class SymbolRouter:
    """Selects the adapter that serves a raw symbol."""

    def __init__(self, domestic: QuoteAdapter, international: QuoteAdapter) -> None:
        self._adapters = {
            MarketRoute.DOMESTIC: domestic,
            MarketRoute.INTERNATIONAL: international,
        }

    @staticmethod
    def classify(symbol: str) -> MarketRoute:
        if is_international_symbol(symbol):
            return MarketRoute.INTERNATIONAL
        return MarketRoute.DOMESTIC

    def select(self, symbol: str) -> QuoteAdapter:
        return self._adapters[self.classify(symbol)]
