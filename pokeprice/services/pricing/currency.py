"""
Currency conversion service for INR price display.

Provider prices are all quoted in USD. The USD/INR rate is fetched from a
list of free rate APIs, first valid answer wins, and cached for an hour.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

import httpx
import structlog

from pokeprice.core.cache import CURRENCY_CACHE_DURATION, ResultCache
from pokeprice.core.config import settings
from pokeprice.core.constants import NOT_AVAILABLE
from pokeprice.schemas.pricing import ExchangeRate, coerce_price

logger = structlog.get_logger()

RATE_CACHE_KEY = "exchange-rate:USD:INR"
FALLBACK_SOURCE = "fallback"

# Fallback rate if every API is unavailable (approximate)
FALLBACK_USD_INR_RATE = settings.fallback_usd_inr_rate


def _nested(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


@dataclass(frozen=True)
class RateSource:
    """A free exchange-rate API and how to read USD->INR from it."""
    name: str
    url: str
    parse: Callable[[Any], Any]


RATE_SOURCES: tuple[RateSource, ...] = (
    RateSource(
        "ExchangeRate-API",
        "https://open.er-api.com/v6/latest/USD",
        lambda data: _nested(data, "rates", "INR"),
    ),
    RateSource(
        "ExchangeRate.host",
        "https://api.exchangerate.host/latest?base=USD&symbols=INR",
        lambda data: _nested(data, "rates", "INR"),
    ),
    RateSource(
        "Frankfurter",
        "https://api.frankfurter.app/latest?from=USD&to=INR",
        lambda data: _nested(data, "rates", "INR"),
    ),
    RateSource(
        "CurrencyAPI (Fawaz)",
        "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/usd.json",
        lambda data: _nested(data, "usd", "inr"),
    ),
)


class CurrencyService:
    """
    USD->INR exchange rate with one-hour caching.

    When every source fails the last rate that was fetched successfully is
    returned, starting from FALLBACK_USD_INR_RATE.
    """

    def __init__(
        self,
        sources: tuple[RateSource, ...] = RATE_SOURCES,
        cache: Optional[ResultCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fallback_rate: float = FALLBACK_USD_INR_RATE,
    ):
        self.sources = sources
        self.cache = cache or ResultCache(duration=CURRENCY_CACHE_DURATION, max_size=8)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._last_known = ExchangeRate(
            rate=fallback_rate,
            last_updated=datetime.now(timezone.utc),
            source=FALLBACK_SOURCE,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.external_api_timeout),
                headers={"User-Agent": settings.user_agent},
                transport=self._transport,
            )
        return self._client

    async def get_usd_inr_rate(self, force_refresh: bool = False) -> ExchangeRate:
        """
        Fetch the current USD->INR rate.

        Args:
            force_refresh: Bypass the cache and query the sources.

        Returns:
            ExchangeRate naming the source that produced it.
        """
        if force_refresh:
            self.cache.delete(RATE_CACHE_KEY)
        else:
            cached = self.cache.get(RATE_CACHE_KEY)
            if cached is not None:
                return cached

        client = await self._get_client()
        for source in self.sources:
            try:
                resp = await client.get(source.url)
                if resp.status_code != 200:
                    logger.debug("Exchange rate source returned error", source=source.name, status=resp.status_code)
                    continue
                rate = coerce_price(source.parse(resp.json()))
            except (httpx.HTTPError, ValueError) as e:
                logger.debug("Exchange rate source failed", source=source.name, error=str(e))
                continue

            if rate is None:
                logger.debug("Exchange rate source returned invalid data", source=source.name)
                continue

            result = ExchangeRate(rate=rate, last_updated=datetime.now(timezone.utc), source=source.name)
            self.cache.set(RATE_CACHE_KEY, result)
            self._last_known = result
            logger.info("Fetched USD/INR rate", rate=rate, source=source.name)
            return result

        logger.warning(
            "All exchange rate sources failed, using last known rate",
            rate=self._last_known.rate,
            source=self._last_known.source,
        )
        return self._last_known

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()


def convert_usd(price: Union[float, str], rate: float) -> Union[float, str]:
    """
    Convert a USD price with ``rate``.

    Returns:
        Converted price rounded to 2 decimal places; "N/A" passes through.
    """
    if price == NOT_AVAILABLE:
        return NOT_AVAILABLE
    return round(float(price) * rate, 2)
