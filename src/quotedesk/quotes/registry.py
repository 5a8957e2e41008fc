"""Instrument registry: find-or-create keyed by external provider symbol."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable
from uuid import uuid4

from quotedesk.core.exceptions import NotFoundError
from quotedesk.core.models import (
    Instrument,
    InstrumentDescription,
    InstrumentIdentifiers,
    InstrumentMetadata,
    utcnow,
)
from quotedesk.storage.store import StoreProtocol

logger = logging.getLogger(__name__)

DescriptionFetcher = Callable[[], Awaitable[InstrumentDescription | None]]


def _new_id() -> str:
    return str(uuid4())


class StockRegistry:
    """Owns Instrument records.

    Parameters
    ----------
    store : StoreProtocol
        Backing store. Uniqueness of (provider, symbol) is enforced there.
    id_factory : Callable[[], str]
        Generates fresh instrument ids. Default: UUID4 strings.
    clock : Callable[[], datetime]
        Source of creation timestamps.
    """

    def __init__(
        self,
        store: StoreProtocol,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._id_factory = id_factory
        self._clock = clock

    async def get(self, stock_id: str) -> Instrument | None:
        return await self._store.get_instrument(stock_id)

    async def find_by_external_symbol(
        self, provider: str, symbol: str
    ) -> Instrument | None:
        instrument_id = await self._store.find_instrument_id(provider, symbol)
        if instrument_id is None:
            return None
        return await self._store.get_instrument(instrument_id)

    def build_instrument(
        self, payload: InstrumentDescription, provider: str = "yahoo"
    ) -> Instrument:
        """Map a provider description into a new, unsaved Instrument."""
        if provider not in InstrumentIdentifiers.model_fields:
            raise ValueError(f"Unknown identifier key: {provider!r}")

        now = self._clock()
        return Instrument(
            id=self._id_factory(),
            name=payload.long_name or payload.short_name or payload.symbol,
            primary_symbol=payload.symbol,
            currency=payload.currency or "USD",
            type=payload.quote_type or "EQUITY",
            exchange=payload.exchange or None,
            identifiers=InstrumentIdentifiers(**{provider: payload.symbol}),
            corporate_actions=[],
            adjustment_factor=1.0,
            metadata=InstrumentMetadata(created_at=now, updated_at=now),
        )

    async def _create(
        self, payload: InstrumentDescription, provider: str
    ) -> tuple[Instrument, bool]:
        instrument = self.build_instrument(payload, provider)
        stored, created = await self._store.insert_instrument_if_absent(instrument)
        if created:
            logger.info("Created stock %s for %s", stored.id, payload.symbol)
        else:
            logger.info(
                "Stock %s was registered concurrently as %s", payload.symbol, stored.id
            )
        return stored, created

    async def create_from_provider_payload(
        self, payload: InstrumentDescription, provider: str = "yahoo"
    ) -> Instrument:
        stored, _ = await self._create(payload, provider)
        return stored

    async def find_or_create(
        self,
        provider: str,
        symbol: str,
        fetch_description: DescriptionFetcher,
    ) -> tuple[Instrument, bool]:
        """Return the instrument for ``symbol``, registering it on first sight.

        Returns the instrument and whether this call created it. Raises
        NotFoundError if the symbol is unregistered and the provider has no
        description for it.
        """
        existing = await self.find_by_external_symbol(provider, symbol)
        if existing is not None:
            logger.info("Stock %s already registered as %s", symbol, existing.id)
            return existing, False

        payload = await fetch_description()
        if payload is None:
            raise NotFoundError(
                f"Symbol not found: {symbol}",
                context={"provider": provider, "symbol": symbol},
            )
        return await self._create(payload, provider)
