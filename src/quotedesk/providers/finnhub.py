"""Finnhub quote provider: the domestic (US) market adapter.

Uses the ``/api/v1/quote`` endpoint via httpx, authenticated with an API
token passed as a query parameter. Finnhub answers unknown symbols with a
zeroed quote rather than an error, so a current price of 0 means "no data".
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from quotedesk.core.config import ProvidersConfig
from quotedesk.core.models import FetchStatus, NormalizedQuote, ProviderResult

logger = logging.getLogger(__name__)

_BASE_URL = "https://finnhub.io"
_QUOTE_PATH = "/api/v1/quote"
_CANDLE_PATH = "/api/v1/stock/candle"
_PROFILE_PATH = "/api/v1/stock/profile2"
_METRIC_PATH = "/api/v1/stock/metric"

_PROBE_WINDOW_SECONDS = 7 * 24 * 60 * 60

PROVIDER_NAME = "finnhub"


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class FinnhubQuoteTransformer:
    """Transforms a raw Finnhub ``/quote`` body into a NormalizedQuote.

    Finnhub uses single-letter keys: ``c`` current, ``h`` high, ``l`` low,
    ``o`` open, ``pc`` previous close, ``d`` change, ``dp`` change percent.
    """

    def adapt(self, raw_data: Any, symbol: str) -> NormalizedQuote | None:
        if not isinstance(raw_data, dict):
            return None
        current = _as_float(raw_data.get("c"))
        if not current or current <= 0:
            return None
        return NormalizedQuote(
            symbol=symbol,
            current=current,
            high=_as_float(raw_data.get("h")),
            low=_as_float(raw_data.get("l")),
            open=_as_float(raw_data.get("o")),
            previous_close=_as_float(raw_data.get("pc")),
            change=_as_float(raw_data.get("d")),
            change_percent=_as_float(raw_data.get("dp")),
            source=PROVIDER_NAME,
        )


class FinnhubQuoteAdapter:
    """Fetches quotes from Finnhub.

    Parameters
    ----------
    api_key : str | None
        Finnhub API token. When missing, every fetch reports
        ``FetchStatus.MISSING_KEY`` without touching the network.
    base_url : str
        Override base URL (useful for testing).
    timeout : float
        HTTP request timeout in seconds. Default: 10.0.
    transformer : FinnhubQuoteTransformer | None
        Custom transformer instance. Uses default if None.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: str | None,
        base_url: str = _BASE_URL,
        timeout: float = 10.0,
        transformer: FinnhubQuoteTransformer | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transformer = transformer or FinnhubQuoteTransformer()

    @classmethod
    def from_config(cls, config: ProvidersConfig) -> FinnhubQuoteAdapter:
        return cls(
            api_key=config.finnhub_api_key,
            base_url=config.finnhub_base_url,
            timeout=config.request_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        """GET a Finnhub endpoint and decode its JSON body.

        Raises httpx errors and ValueError; callers decide how to report them.
        """
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.get(
                f"{self._base_url}{path}",
                params={**params, "token": self._api_key or ""},
            )
            resp.raise_for_status()
            return resp.json()

    async def fetch_result(self, symbol: str) -> ProviderResult:
        if not self._api_key:
            logger.error("Finnhub API key not configured; cannot quote %s", symbol)
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.MISSING_KEY
            )

        try:
            payload = await self._get_json(_QUOTE_PATH, {"symbol": symbol})
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            logger.error("Finnhub HTTP error for %s: %s", symbol, code)
            status = FetchStatus.RATE_LIMITED if code == 429 else FetchStatus.ERROR
            return ProviderResult(provider=self.name, symbol=symbol, status=status)
        except httpx.RequestError as e:
            logger.error("Finnhub request error for %s: %s", symbol, e)
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.ERROR
            )
        except ValueError as e:
            logger.error("Finnhub returned unparseable body for %s: %s", symbol, e)
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.ERROR
            )

        if not isinstance(payload, dict):
            logger.error("Finnhub returned non-object body for %s", symbol)
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.ERROR
            )

        quote = self._transformer.adapt(payload, symbol)
        if quote is None:
            logger.info("Finnhub has no data for %s", symbol)
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.EMPTY
            )

        return ProviderResult(
            provider=self.name, symbol=symbol, status=FetchStatus.OK, quote=quote
        )

    async def fetch(self, symbol: str) -> NormalizedQuote | None:
        result = await self.fetch_result(symbol)
        return result.quote

    async def probe(self, symbol: str) -> dict[str, Any]:
        """Query several Finnhub endpoints for a symbol and return raw bodies.

        Diagnostic only. Each endpoint is independent: a failure is recorded
        as ``{"error": message}`` under that endpoint's key.
        """
        now = int(time.time())
        calls: dict[str, tuple[str, dict[str, str]]] = {
            "quote": (_QUOTE_PATH, {"symbol": symbol}),
            "candle": (
                _CANDLE_PATH,
                {
                    "symbol": symbol,
                    "resolution": "D",
                    "from": str(now - _PROBE_WINDOW_SECONDS),
                    "to": str(now),
                },
            ),
            "profile": (_PROFILE_PATH, {"symbol": symbol}),
            "metrics": (_METRIC_PATH, {"symbol": symbol, "metric": "all"}),
        }

        results: dict[str, Any] = {}
        for key, (path, params) in calls.items():
            try:
                results[key] = await self._get_json(path, params)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Finnhub probe %s failed for %s: %s", key, symbol, e)
                results[key] = {"error": str(e)}
        return results
