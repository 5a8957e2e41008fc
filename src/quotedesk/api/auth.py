"""Bearer-token verification."""

from __future__ import annotations

import hmac
import logging
from typing import Protocol, runtime_checkable

from quotedesk.core.models import Principal

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


@runtime_checkable
class TokenVerifier(Protocol):
    """Turns a bearer token into a verified principal, or None."""

    async def verify(self, token: str) -> Principal | None: ...


class StaticTokenVerifier:
    """Verifies tokens against a fixed token -> principal-id mapping."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = dict(tokens)

    async def verify(self, token: str) -> Principal | None:
        for known, uid in self._tokens.items():
            if hmac.compare_digest(known.encode(), token.encode()):
                return Principal(uid=uid)
        return None


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        return None
    token = authorization[len(_BEARER_PREFIX) :].strip()
    return token or None


async def authenticate(
    verifier: TokenVerifier, authorization: str | None
) -> Principal | None:
    """Resolve the Authorization header to a principal.

    Absent headers and failed verifications both yield None; failures are
    logged, never raised.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    try:
        principal = await verifier.verify(token)
    except Exception as e:
        logger.warning("Token verification failed: %s", e)
        return None
    if principal is None:
        logger.warning("Token verification failed: unknown token")
    return principal
