"""quotedesk.core: Foundation types, config, and exceptions."""

from quotedesk.core.config import (
    APIConfig,
    CacheConfig,
    ProvidersConfig,
    QuoteDeskConfig,
    StorageConfig,
    load_config,
)
from quotedesk.core.exceptions import (
    ConfigError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
    ProviderUnavailableError,
    QuoteDeskError,
    StorageError,
    UnauthenticatedError,
)
from quotedesk.core.models import (
    FetchStatus,
    Instrument,
    InstrumentDescription,
    InstrumentIdentifiers,
    InstrumentMetadata,
    MarketRoute,
    NormalizedQuote,
    PriceResult,
    PriceSnapshot,
    Principal,
    ProviderName,
    ProviderResult,
    StockId,
    StorageBackend,
    Symbol,
    SymbolMatch,
    normalize_timestamp,
)

__all__ = [
    # Type aliases
    "StockId",
    "Symbol",
    "ProviderName",
    # Enums
    "MarketRoute",
    "FetchStatus",
    "StorageBackend",
    # Provider models
    "NormalizedQuote",
    "ProviderResult",
    "InstrumentDescription",
    "SymbolMatch",
    # Registry models
    "Instrument",
    "InstrumentIdentifiers",
    "InstrumentMetadata",
    # Cache models
    "PriceSnapshot",
    "PriceResult",
    "Principal",
    "normalize_timestamp",
    # Config
    "QuoteDeskConfig",
    "ProvidersConfig",
    "CacheConfig",
    "StorageConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "QuoteDeskError",
    "ConfigError",
    "InvalidRequestError",
    "UnauthenticatedError",
    "NotFoundError",
    "ProviderUnavailableError",
    "InternalError",
    "StorageError",
]
