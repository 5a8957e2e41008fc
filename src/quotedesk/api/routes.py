"""FastAPI route definitions for the quotedesk API."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query

import quotedesk
from quotedesk.api.deps import get_config, get_principal, get_service, require_principal
from quotedesk.api.schemas import (
    DebugQuoteResponse,
    ErrorResponse,
    HealthResponse,
    PriceResponse,
    QuoteResponse,
    RegisterResponse,
    SearchResponse,
    StockDetailResponse,
    StockPriceResponse,
)
from quotedesk.core.config import QuoteDeskConfig
from quotedesk.core.exceptions import NotFoundError
from quotedesk.core.models import Principal, utcnow
from quotedesk.quotes.service import QuoteService

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        status: {"model": ErrorResponse} for status in (400, 401, 404, 500)
    }
)

# -- Health --

@router.get("/health", response_model=HealthResponse)
async def health_check(principal: Principal | None = Depends(get_principal)):
    """Liveness check that also reports whether the caller is authenticated."""
    return HealthResponse(
        version=quotedesk.__version__,
        timestamp=utcnow(),
        authenticated=principal is not None,
        user_id=principal.uid if principal else None,
    )

# -- Ad-hoc quotes --

@router.get("/quote", response_model=QuoteResponse)
async def get_quote(
    symbol: str | None = Query(None, description="Ticker, e.g. AAPL or LLOY.L"),
    principal: Principal = Depends(require_principal),
    service: QuoteService = Depends(get_service),
):
    """Live quote: Finnhub for domestic symbols, Yahoo Finance for suffixed ones."""
    logger.info("User %s requesting quote for %s", principal.uid, symbol)
    quote = await service.get_quote(symbol)
    return QuoteResponse(**quote.model_dump(), timestamp=utcnow())

@router.get("/search", response_model=SearchResponse)
async def search_symbol(
    q: str | None = Query(None, description="Symbol or company name"),
    principal: Principal = Depends(require_principal),
    service: QuoteService = Depends(get_service),
):
    """Search symbols by ticker or name."""
    logger.info("User %s searching for: %s", principal.uid, q)
    results = await service.search(q)
    return SearchResponse(query=q.strip(), count=len(results), results=results)

# -- Registry --

@router.api_route(
    "/stocks/register", methods=["GET", "POST"], response_model=RegisterResponse
)
async def register_stock(
    symbol: str | None = Query(None, description="Yahoo Finance symbol"),
    principal: Principal = Depends(require_principal),
    service: QuoteService = Depends(get_service),
):
    """Register a stock (or find the existing registration) and return its price."""
    logger.info("User %s registering stock: %s", principal.uid, symbol)
    registration = await service.register(symbol)
    price = (
        PriceResponse.from_result(registration.price)
        if registration.price is not None
        else None
    )
    return RegisterResponse(
        stock_id=registration.stock_id,
        stock=registration.instrument,
        price=price,
        created=registration.created,
    )

@router.get("/stocks/price", response_model=StockPriceResponse)
async def get_stock_price(
    stock_id: str | None = Query(None, alias="stockId"),
    principal: Principal = Depends(require_principal),
    service: QuoteService = Depends(get_service),
):
    """Cached price for a registered stock, refreshed when stale."""
    result = await service.get_stock_price(stock_id)
    instrument = result.instrument
    return StockPriceResponse.from_result(
        result.price,
        stock_id=instrument.id,
        name=instrument.name,
        symbol=instrument.primary_symbol,
        currency=result.price.snapshot.currency or instrument.currency,
        adjustment_factor=instrument.adjustment_factor,
        timestamp=utcnow(),
    )

@router.get("/stocks/detail", response_model=StockDetailResponse)
async def get_stock(
    stock_id: str | None = Query(None, alias="stockId"),
    principal: Principal = Depends(require_principal),
    service: QuoteService = Depends(get_service),
):
    """Registry record for a stock, including corporate actions."""
    instrument = await service.get_stock(stock_id)
    return StockDetailResponse(**instrument.model_dump(), stock_id=instrument.id)

# -- Diagnostics --

@router.get("/debug/quote", response_model=DebugQuoteResponse)
async def debug_quote(
    symbol: str = Query("LLOY.L"),
    principal: Principal = Depends(require_principal),
    service: QuoteService = Depends(get_service),
    config: QuoteDeskConfig = Depends(get_config),
):
    """Raw responses from several domestic-provider endpoints for one symbol."""
    if not config.api.debug_enabled:
        raise NotFoundError("Debug endpoint disabled")
    logger.info("User %s probing %s", principal.uid, symbol)
    results = await service.probe(symbol)
    return DebugQuoteResponse(symbol=symbol, results=results)
