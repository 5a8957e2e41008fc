"""API-specific response schemas (Pydantic v2).

Responses use camelCase field names, matching the web client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from quotedesk.core.models import (
    Instrument,
    NormalizedQuote,
    PriceResult,
    SymbolMatch,
)


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(_ApiModel):
    """Response for GET /api/health."""

    message: str = "quotedesk API working"
    version: str
    timestamp: datetime
    authenticated: bool
    user_id: str | None = None


# -- Quotes --


class QuoteResponse(NormalizedQuote):
    """Ad-hoc quote, stamped with the time it was served."""

    timestamp: datetime


class SearchResponse(_ApiModel):
    """Symbol search results."""

    query: str
    count: int
    results: list[SymbolMatch]


# -- Registry-bound prices --


class PriceResponse(_ApiModel):
    """A cached snapshot as served, with provenance flags."""

    current: float
    high: float | None = None
    low: float | None = None
    open: float | None = None
    previous_close: float | None = None
    change: float | None = None
    change_percent: float | None = None
    fifty_two_week_high: float | None = None
    fifty_two_week_low: float | None = None
    volume: int | None = None
    market_cap: float | None = None
    currency: str | None = None
    source: str
    updated_at: datetime
    from_cache: bool
    stale: bool = False

    @classmethod
    def from_result(cls, result: PriceResult, **extra: Any) -> PriceResponse:
        fields = result.snapshot.model_dump(exclude={"instrument_id"})
        fields.update(from_cache=result.from_cache, stale=result.stale)
        fields.update(extra)
        return cls(**fields)


class RegisterResponse(_ApiModel):
    """Response for the register endpoint."""

    stock_id: str
    stock: Instrument
    price: PriceResponse | None
    created: bool


class StockPriceResponse(PriceResponse):
    """Registry-bound price: instrument summary plus snapshot fields."""

    stock_id: str
    name: str
    symbol: str
    adjustment_factor: float
    timestamp: datetime


class StockDetailResponse(Instrument):
    """Full instrument record, including corporate actions."""

    stock_id: str


class DebugQuoteResponse(_ApiModel):
    """Raw per-endpoint diagnostic bodies from the domestic provider."""

    symbol: str
    results: dict[str, Any]
