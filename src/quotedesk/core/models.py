"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

# --- Type Aliases ---

StockId = str
Symbol = str
ProviderName = str

# --- Enumerations ---


class MarketRoute(StrEnum):
    """Which upstream market a symbol is routed to."""

    DOMESTIC = "domestic"
    INTERNATIONAL = "international"


class FetchStatus(StrEnum):
    """Outcome of a single upstream quote fetch."""

    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    MISSING_KEY = "missing_key"


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


# --- Helpers ---


def normalize_timestamp(value: Any) -> datetime:
    """Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), plain dates, ISO-8601
    strings with or without a time part, and epoch seconds.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value, tz=UTC)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Unrecognized timestamp: {value!r}") from None
    else:
        raise ValueError(f"Unrecognized timestamp type: {type(value).__name__}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class _CamelModel(BaseModel):
    """Base for models serialized with the client's camelCase field names."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# --- Provider Models ---


class NormalizedQuote(_CamelModel):
    """Provider-agnostic quote. Every adapter produces this shape."""

    symbol: Symbol
    current: float
    source: ProviderName
    name: str | None = None
    currency: str | None = None
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

    @field_validator("current")
    @classmethod
    def current_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"current price must be > 0, got {v}")
        return v


class ProviderResult(BaseModel):
    """A fetch outcome that tells "unknown symbol" apart from "upstream down"."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderName
    symbol: Symbol
    status: FetchStatus
    quote: NormalizedQuote | None = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK and self.quote is not None


class InstrumentDescription(_CamelModel):
    """Descriptive instrument payload used to populate the registry."""

    symbol: Symbol
    long_name: str | None = None
    short_name: str | None = None
    currency: str | None = None
    quote_type: str | None = None
    exchange: str | None = None


class SymbolMatch(BaseModel):
    """One hit from a symbol search."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    description: str | None = None
    type: str | None = None
    exchange: str | None = None


# --- Registry Models ---


class InstrumentIdentifiers(BaseModel):
    """Provider-specific symbols for one instrument.

    Only the originating provider's key is populated at creation; the rest
    are placeholders for later enrichment.
    """

    model_config = ConfigDict(frozen=True)

    yahoo: str | None = None
    isin: str | None = None
    sedol: str | None = None
    bloomberg: str | None = None
    figi: str | None = None

    def populated(self) -> dict[str, str]:
        """Return only the identifiers that carry a value."""
        return {k: v for k, v in self.model_dump().items() if v}


class InstrumentMetadata(_CamelModel):
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> datetime:
        return normalize_timestamp(v)


class Instrument(_CamelModel):
    """A registered tradable security with a stable internal id."""

    id: StockId
    name: str
    primary_symbol: Symbol
    currency: str = "USD"
    type: str = "EQUITY"
    exchange: str | None = None
    identifiers: InstrumentIdentifiers = Field(default_factory=InstrumentIdentifiers)
    corporate_actions: list[dict[str, Any]] = Field(default_factory=list)
    adjustment_factor: float = 1.0
    metadata: InstrumentMetadata


# --- Cache Models ---


class PriceSnapshot(_CamelModel):
    """The single most recent cached quote for an instrument."""

    instrument_id: StockId
    current: float
    source: ProviderName
    updated_at: datetime
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

    @field_validator("updated_at", mode="before")
    @classmethod
    def _normalize_updated_at(cls, v: Any) -> datetime:
        return normalize_timestamp(v)

    @classmethod
    def from_quote(
        cls, instrument_id: StockId, quote: NormalizedQuote, updated_at: datetime
    ) -> PriceSnapshot:
        return cls(
            instrument_id=instrument_id,
            current=quote.current,
            source=quote.source,
            updated_at=updated_at,
            high=quote.high,
            low=quote.low,
            open=quote.open,
            previous_close=quote.previous_close,
            change=quote.change,
            change_percent=quote.change_percent,
            fifty_two_week_high=quote.fifty_two_week_high,
            fifty_two_week_low=quote.fifty_two_week_low,
            volume=quote.volume,
            market_cap=quote.market_cap,
            currency=quote.currency,
        )

    def age_seconds(self, now: datetime) -> float:
        return (now - self.updated_at).total_seconds()


class PriceResult(_CamelModel):
    """A snapshot as served to a caller, with its provenance flags."""

    snapshot: PriceSnapshot
    from_cache: bool
    stale: bool = False


# --- Auth ---


class Principal(BaseModel):
    """A verified caller identity."""

    model_config = ConfigDict(frozen=True)

    uid: str
