"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import quotedesk
from quotedesk.api.auth import StaticTokenVerifier
from quotedesk.api.deps import AppState
from quotedesk.api.routes import router
from quotedesk.core.config import QuoteDeskConfig, load_config
from quotedesk.core.exceptions import (
    InternalError,
    InvalidRequestError,
    NotFoundError,
    QuoteDeskError,
    UnauthenticatedError,
)
from quotedesk.quotes.service import QuoteService
from quotedesk.storage.store import StoreProtocol, create_store

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[QuoteDeskConfig, StoreProtocol], QuoteService]

_STATUS_MAP: dict[type[QuoteDeskError], int] = {
    InvalidRequestError: 400,
    UnauthenticatedError: 401,
    NotFoundError: 404,
}


def _status_for(exc: QuoteDeskError) -> int:
    for exc_type, status in _STATUS_MAP.items():
        if isinstance(exc, exc_type):
            return status
    return 500


def _internal_error_response(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure server-side; the client only sees a generic body."""
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "detail": "Internal server error"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config: QuoteDeskConfig = app.state.config
    factory: ServiceFactory = app.state.service_factory
    store = await create_store(config.storage)

    app.state.app_state = AppState(
        config=config,
        store=store,
        service=factory(config, store),
        verifier=StaticTokenVerifier(config.api.tokens),
    )
    logger.info("quotedesk API started (db=%s)", config.storage.sqlite_path)

    yield

    await store.close()


def create_app(
    config: QuoteDeskConfig | None = None,
    service_factory: ServiceFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``service_factory`` builds the QuoteService from the config and the
    opened store; the default wires the real Finnhub and Yahoo adapters.
    """
    config = config or load_config()

    app = FastAPI(
        title="quotedesk API",
        description="Authenticated stock quotes with a cached instrument registry",
        version=quotedesk.__version__,
        lifespan=lifespan,
    )

    # Stash construction inputs so lifespan can retrieve them
    app.state.config = config
    app.state.service_factory = service_factory or QuoteService.from_config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.api.allowed_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    app.include_router(router, prefix="/api")

    @app.exception_handler(QuoteDeskError)
    async def quotedesk_exception_handler(request: Request, exc: QuoteDeskError):
        if isinstance(exc, InternalError):
            return _internal_error_response(request, exc)
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=400,
            content={"error": InvalidRequestError.__name__, "detail": "Invalid request"},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return _internal_error_response(request, exc)

    return app
