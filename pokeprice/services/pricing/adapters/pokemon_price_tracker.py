"""
Pokemon Price Tracker adapter.

Fuzzy name search returning a single best-effort market price per card.
This provider throttles aggressively, so calls are spaced by a minimum
interval on top of the usual queue and request budget.
"""
import asyncio
import time
from typing import Any, Callable, Optional

import structlog

from pokeprice.core.config import settings
from pokeprice.core.constants import (
    PRICE_TRACKER_RESULT_LIMIT,
    SOURCE_POKEMON_PRICE_TRACKER,
    TEAM_QUALIFIER_MARKER,
    Language,
    Provider,
)
from pokeprice.core.rate_limit import RateLimiter
from pokeprice.core.request_queue import RequestQueue, Sleeper, async_sleep
from pokeprice.schemas.pricing import PriceRecord
from pokeprice.services.normalization import extract_card_name, is_known_set, normalize_card_number
from pokeprice.services.pricing.base import (
    AdapterConfig,
    CardQuery,
    ProviderAdapter,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderNotFoundError,
    ProviderUnavailableError,
)
from pokeprice.services.pricing.sets import SetCatalogSource, SetRecord, SetResolver

logger = structlog.get_logger()


def tracker_search_term(card_name: str) -> str:
    """
    Short search term for the tracker's fuzzy search.

    "Team Rocket's Meowth" searches for "Meowth": in team names the
    trailing word is the distinctive one. Other names use their first two
    words.
    """
    words = card_name.split()
    if not words:
        return card_name
    first = words[0].lower()
    if len(words) > 1 and TEAM_QUALIFIER_MARKER in first:
        return words[-1]
    return " ".join(words[:2])


def _set_name(card: dict[str, Any]) -> Optional[str]:
    card_set = card.get("set")
    if isinstance(card_set, dict):
        return card_set.get("name")
    return card_set if isinstance(card_set, str) else None


class PokemonPriceTrackerAdapter(ProviderAdapter, SetCatalogSource):
    """
    Adapter for the Pokemon Price Tracker API.

    Also the preferred catalog of Japanese sets.

    Rate limit: 20 requests per minute, plus a minimum gap between calls.
    """

    def __init__(
        self,
        config: AdapterConfig | None = None,
        set_resolver: SetResolver | None = None,
        rate_limiter: RateLimiter | None = None,
        queue: RequestQueue | None = None,
        transport=None,
        min_interval_seconds: float | None = None,
        sleeper: Sleeper = async_sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if config is None:
            config = AdapterConfig(
                base_url=settings.pokemon_price_tracker_base_url,
                api_key=settings.pokemon_price_tracker_api_key,
                requires_api_key=True,
                rate_limit_requests=settings.price_tracker_rate_limit_requests,
                rate_limit_window_seconds=settings.price_tracker_rate_limit_window_seconds,
                default_block_seconds=settings.default_rate_limit_block_seconds,
                queue_delay_seconds=settings.pricing_queue_delay_ms / 1000,
            )
        super().__init__(config, rate_limiter=rate_limiter, queue=queue, transport=transport)
        if min_interval_seconds is None:
            min_interval_seconds = settings.price_tracker_min_interval_seconds
        self.min_interval_seconds = min_interval_seconds
        self._sleeper = sleeper
        self._clock = clock
        self._last_call: Optional[float] = None
        self._gate = asyncio.Lock()
        if set_resolver is not None:
            set_resolver.register(self.provider_slug, self)

    @property
    def provider_name(self) -> str:
        return "Pokemon Price Tracker"

    @property
    def provider_slug(self) -> str:
        return Provider.POKEMON_PRICE_TRACKER.value

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def _respect_min_interval(self) -> None:
        """Sleep out whatever is left of the minimum gap since the last call."""
        async with self._gate:
            if self._last_call is not None:
                wait = self.min_interval_seconds - (self._clock() - self._last_call)
                if wait > 0:
                    logger.debug("Price tracker spacing", wait_seconds=round(wait, 3))
                    await self._sleeper(wait)
            self._last_call = self._clock()

    async def fetch_set_catalog(self, language: Language) -> list[SetRecord]:
        """
        Japanese set catalog.

        Set IDs are the tracker's TCGplayer slugs (``m2-inferno-x``) when it
        has one. Only Japanese is offered; other languages come from TCGdex.
        """
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.provider_slug, "API key not configured")
        if language != Language.JAPANESE:
            raise ProviderNotFoundError(self.provider_slug, f"No set catalog for language {language.value}")

        await self._respect_min_interval()
        data = await self._request("GET", "/sets", params={"language": "japanese"})
        if data is None:
            raise ProviderNotFoundError(self.provider_slug, "No Japanese sets")
        raw_sets = data.get("data") if isinstance(data, dict) else data
        if not isinstance(raw_sets, list):
            raise ProviderUnavailableError(self.provider_slug, "Unexpected sets response")

        records = []
        for raw in raw_sets:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            set_id = raw.get("tcgPlayerId") or raw.get("slug") or raw.get("setId") or raw.get("id")
            if not set_id:
                continue
            card_count = raw.get("cardCount") or raw.get("total") or raw.get("numberOfCards")
            records.append(
                SetRecord(
                    provider=self.provider_slug,
                    id=str(set_id),
                    name=str(raw["name"]),
                    language=language,
                    symbol=raw.get("symbol"),
                    card_count=card_count if isinstance(card_count, int) else None,
                )
            )
        return records

    async def fetch_tracked_price(self, query: CardQuery) -> PriceRecord:
        """
        Market price from the tracker's fuzzy search.

        Prefers the result whose card number matches ``query.card_number``,
        otherwise the first of up to five results.
        """
        if not self.is_configured:
            return PriceRecord.unavailable(SOURCE_POKEMON_PRICE_TRACKER, note="API key not configured")

        term = tracker_search_term(extract_card_name(query.title))
        params: dict[str, Any] = {"search": term, "limit": PRICE_TRACKER_RESULT_LIMIT}
        if is_known_set(query.set_name):
            params["set"] = query.set_name
        if query.language == Language.JAPANESE:
            params["language"] = "japanese"

        await self._respect_min_interval()
        try:
            data = await self._request("GET", "/cards", params=params)
        except ProviderError as e:
            logger.warning("Price tracker lookup failed", error=str(e), search=term)
            return PriceRecord.unavailable(SOURCE_POKEMON_PRICE_TRACKER, note=self.failure_note(e))

        results = data.get("data") if isinstance(data, dict) else None
        cards = [card for card in results or [] if isinstance(card, dict)][:PRICE_TRACKER_RESULT_LIMIT]
        if not cards:
            logger.info("Price tracker returned no results", search=term, set_name=params.get("set"))
            return PriceRecord.unavailable(SOURCE_POKEMON_PRICE_TRACKER, note="No matching cards found")

        card = cards[0]
        if query.card_number:
            card = next(
                (c for c in cards if normalize_card_number(c.get("cardNumber")) == query.normalized_number),
                cards[0],
            )

        prices = card.get("prices") if isinstance(card.get("prices"), dict) else {}
        record = PriceRecord.from_price(
            prices.get("market"),
            SOURCE_POKEMON_PRICE_TRACKER,
            card_name=card.get("name"),
            card_number=card.get("cardNumber"),
            set_name=_set_name(card) or (query.set_name if query.has_known_set else None),
        )
        if record.is_priced:
            logger.info("Price tracker price found", card_name=card.get("name"), price=record.average_price)
        return record
