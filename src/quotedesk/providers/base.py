"""Quote adapter protocols: the provider-agnostic interface layer.

Architecture
------------
Each upstream data source sits behind an adapter that converts its raw
response into the canonical ``NormalizedQuote``:

    Upstream JSON → Transformer → NormalizedQuote → QuoteAdapter → Consumer

- **QuoteAdapter** is the consumer-facing protocol. The price cache and the
  quote service depend only on this interface.

- Adapters never raise for upstream trouble. A network error, an HTTP error,
  an unparseable body and an unknown symbol all come back as a
  ``ProviderResult`` whose ``status`` says which of these happened and whose
  ``quote`` is None. Callers apply their own fallback policy on top.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from quotedesk.core.models import (
    InstrumentDescription,
    NormalizedQuote,
    ProviderResult,
)


@runtime_checkable
class QuoteAdapter(Protocol):
    """Fetches one quote from one upstream provider.

    Attributes
    ----------
    name : str
        Provider identifier stamped on every quote as ``source``.
    """

    name: str

    async def fetch_result(self, symbol: str) -> ProviderResult:
        """Fetch and classify the outcome. Never raises for upstream failures."""
        ...

    async def fetch(self, symbol: str) -> NormalizedQuote | None:
        """Fetch a normalized quote, or None when there is no usable data."""
        ...


@runtime_checkable
class DescriptionSource(Protocol):
    """Provides descriptive instrument metadata for registry creation."""

    name: str

    async def describe(self, symbol: str) -> InstrumentDescription | None:
        """Return the instrument description, or None if the symbol is unknown."""
        ...
