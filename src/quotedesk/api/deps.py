"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, Request

from quotedesk.api.auth import TokenVerifier, authenticate
from quotedesk.core.config import QuoteDeskConfig
from quotedesk.core.exceptions import UnauthenticatedError
from quotedesk.core.models import Principal
from quotedesk.quotes.service import QuoteService
from quotedesk.storage.store import StoreProtocol


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: QuoteDeskConfig
    store: StoreProtocol
    service: QuoteService
    verifier: TokenVerifier


def get_config(request: Request) -> QuoteDeskConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_service(request: Request) -> QuoteService:
    """Dependency: retrieve the quote service."""
    return request.app.state.app_state.service


async def get_principal(
    request: Request,
    authorization: str | None = Header(None),
) -> Principal | None:
    """Dependency: the verified caller, or None if unauthenticated."""
    verifier = request.app.state.app_state.verifier
    return await authenticate(verifier, authorization)


async def require_principal(
    principal: Principal | None = Depends(get_principal),
) -> Principal:
    """Dependency: the verified caller; refuses unauthenticated requests."""
    if principal is None:
        raise UnauthenticatedError("Authentication required")
    return principal
