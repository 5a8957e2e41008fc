"""Yahoo Finance quote provider: the international market adapter.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint via httpx. The
chart response's ``meta`` block carries the ``regularMarket*`` fields we need
for a quote as well as the descriptive fields used to register an
instrument, so a single endpoint serves both ``fetch`` and ``describe``.

Symbol search goes through ``/v1/finance/search``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from quotedesk.core.config import ProvidersConfig
from quotedesk.core.exceptions import ProviderUnavailableError
from quotedesk.core.models import (
    FetchStatus,
    InstrumentDescription,
    NormalizedQuote,
    ProviderResult,
    SymbolMatch,
)

logger = logging.getLogger(__name__)

_BASE_URL = "https://query2.finance.yahoo.com"
_CHART_PATH = "/v8/finance/chart"
_SEARCH_PATH = "/v1/finance/search"
_USER_AGENT = "Mozilla/5.0 (compatible; quotedesk/0.1)"

PROVIDER_NAME = "yahoo"


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> int | None:
    f = _as_float(value)
    return int(f) if f is not None else None


def _last_present(values: list[Any] | None) -> Any:
    """Return the last non-null entry of a series, or None."""
    for v in reversed(values or []):
        if v is not None:
            return v
    return None


class YahooChartTransformer:
    """Transforms the ``chart.result[0]`` object into quote and description models.

    The chart endpoint has no ``regularMarketChange`` fields, so change and
    change percent are derived from the current price and previous close
    when the payload does not carry them.
    """

    def adapt(self, raw_data: Any, symbol: str) -> NormalizedQuote | None:
        """Parse a chart result into a NormalizedQuote.

        Returns None when there is no usable ``regularMarketPrice``.
        """
        if not isinstance(raw_data, dict):
            return None
        meta = raw_data.get("meta") or {}
        current = _as_float(meta.get("regularMarketPrice"))
        if not current or current <= 0:
            return None

        previous_close = _as_float(
            meta.get("regularMarketPreviousClose")
            or meta.get("chartPreviousClose")
            or meta.get("previousClose")
        )

        quotes = (raw_data.get("indicators") or {}).get("quote") or [{}]
        day_open = _as_float(meta.get("regularMarketOpen"))
        if day_open is None:
            day_open = _as_float(_last_present(quotes[0].get("open")))

        change = _as_float(meta.get("regularMarketChange"))
        change_percent = _as_float(meta.get("regularMarketChangePercent"))
        if change is None and previous_close:
            change = current - previous_close
        if change_percent is None and previous_close and change is not None:
            change_percent = change / previous_close * 100.0

        return NormalizedQuote(
            symbol=meta.get("symbol") or symbol,
            name=meta.get("longName") or meta.get("shortName"),
            currency=meta.get("currency"),
            current=current,
            high=_as_float(meta.get("regularMarketDayHigh")),
            low=_as_float(meta.get("regularMarketDayLow")),
            open=day_open,
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            fifty_two_week_high=_as_float(meta.get("fiftyTwoWeekHigh")),
            fifty_two_week_low=_as_float(meta.get("fiftyTwoWeekLow")),
            volume=_as_int(meta.get("regularMarketVolume")),
            market_cap=_as_float(meta.get("marketCap")),
            source=PROVIDER_NAME,
        )

    def describe(self, raw_data: Any, symbol: str) -> InstrumentDescription | None:
        if not isinstance(raw_data, dict):
            return None
        meta = raw_data.get("meta") or {}
        if not meta:
            return None
        return InstrumentDescription(
            symbol=meta.get("symbol") or symbol,
            long_name=meta.get("longName"),
            short_name=meta.get("shortName"),
            currency=meta.get("currency"),
            quote_type=meta.get("instrumentType"),
            exchange=meta.get("exchangeName"),
        )


class YahooQuoteAdapter:
    """Fetches quotes, descriptions and search results from Yahoo Finance.

    Parameters
    ----------
    base_url : str
        Override base URL (useful for testing).
    timeout : float
        HTTP request timeout in seconds. Default: 10.0.
    transformer : YahooChartTransformer | None
        Custom transformer instance. Uses default if None.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        base_url: str = _BASE_URL,
        timeout: float = 10.0,
        transformer: YahooChartTransformer | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transformer = transformer or YahooChartTransformer()

    @classmethod
    def from_config(cls, config: ProvidersConfig) -> YahooQuoteAdapter:
        return cls(base_url=config.yahoo_base_url, timeout=config.request_timeout)

    async def _fetch_chart(self, symbol: str) -> tuple[FetchStatus, dict | None]:
        """Fetch raw chart data for a single symbol.

        Returns the status and the ``chart.result[0]`` object (None unless OK).
        """
        url = f"{self._base_url}{_CHART_PATH}/{symbol}"
        params = {"range": "5d", "interval": "1d"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    url, params=params, headers={"User-Agent": _USER_AGENT}
                )
                if resp.status_code == 404:
                    logger.info("Yahoo Finance does not know %s", symbol)
                    return FetchStatus.EMPTY, None
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            logger.error(
                "Yahoo Finance HTTP error for %s: %s %s",
                symbol,
                code,
                e.response.text[:200],
            )
            status = FetchStatus.RATE_LIMITED if code == 429 else FetchStatus.ERROR
            return status, None
        except httpx.RequestError as e:
            logger.error("Yahoo Finance request error for %s: %s", symbol, e)
            return FetchStatus.ERROR, None
        except ValueError as e:
            logger.error("Yahoo Finance returned unparseable body for %s: %s", symbol, e)
            return FetchStatus.ERROR, None

        if not isinstance(data, dict):
            logger.error("Yahoo Finance returned non-object body for %s", symbol)
            return FetchStatus.ERROR, None

        chart = data.get("chart") or {}
        if chart.get("error"):
            err = chart["error"]
            logger.error(
                "Yahoo Finance API error for %s: %s (%s)",
                symbol,
                err.get("code"),
                err.get("description"),
            )
            if err.get("code") == "Not Found":
                return FetchStatus.EMPTY, None
            return FetchStatus.ERROR, None

        results = chart.get("result")
        if not results:
            logger.warning("Yahoo Finance returned no results for %s", symbol)
            return FetchStatus.EMPTY, None

        return FetchStatus.OK, results[0]

    async def fetch_result(self, symbol: str) -> ProviderResult:
        status, raw = await self._fetch_chart(symbol)
        if status != FetchStatus.OK:
            return ProviderResult(provider=self.name, symbol=symbol, status=status)

        quote = self._transformer.adapt(raw, symbol)
        if quote is None:
            logger.info("Yahoo Finance has no usable price for %s", symbol)
            return ProviderResult(
                provider=self.name, symbol=symbol, status=FetchStatus.EMPTY
            )
        return ProviderResult(
            provider=self.name, symbol=symbol, status=FetchStatus.OK, quote=quote
        )

    async def fetch(self, symbol: str) -> NormalizedQuote | None:
        result = await self.fetch_result(symbol)
        return result.quote

    async def describe(self, symbol: str) -> InstrumentDescription | None:
        """Fetch descriptive metadata for registering ``symbol``."""
        status, raw = await self._fetch_chart(symbol)
        if status != FetchStatus.OK:
            return None
        return self._transformer.describe(raw, symbol)

    async def search(self, query: str) -> list[SymbolMatch]:
        """Search symbols and names. Unlike fetch, failures raise."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    f"{self._base_url}{_SEARCH_PATH}",
                    params={"q": query, "quotesCount": "10", "newsCount": "0"},
                    headers={"User-Agent": _USER_AGENT},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Yahoo Finance search error for %r: %s", query, e)
            raise ProviderUnavailableError(
                "Failed to search symbols",
                context={"provider": self.name, "query": query},
            ) from e

        quotes = data.get("quotes") if isinstance(data, dict) else None
        return [
            SymbolMatch(
                symbol=item["symbol"],
                description=item.get("longname") or item.get("shortname"),
                type=item.get("quoteType"),
                exchange=item.get("exchange"),
            )
            for item in quotes or []
            if isinstance(item, dict) and item.get("symbol")
        ]
