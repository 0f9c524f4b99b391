"""
Price aggregation engine.

Orchestrates the four pricing providers:

* ``resolve_price``: strict fallback, TCGdex first, then JustTCG. Used
  wherever a single "best" price is shown.
* ``resolve_all_prices``: every provider queried concurrently and returned
  side by side, with no winner picked.
* ``search_cards``: TCGdex card search, optionally priced, cached.

The engine owns every piece of mutable state (set catalogs, result cache,
rate-limit counters, request queues). Each process builds one engine, so
none of that state is shared between workers.
"""
import asyncio
import dataclasses
import functools
from typing import Any, Awaitable, Callable, Optional

import structlog

from pokeprice.core.cache import ResultCache
from pokeprice.core.config import settings
from pokeprice.core.constants import (
    SOURCE_EBAY,
    SOURCE_JUSTTCG_FAILED,
    SOURCE_POKEMON_PRICE_TRACKER,
    SOURCE_TCGPLAYER,
    UNKNOWN_SET,
    Language,
    Provider,
)
from pokeprice.core.rate_limit import RateLimiter
from pokeprice.core.request_queue import PacingPolicy
from pokeprice.schemas.pricing import CardSetSummary, CardSummary, PriceBundle, PriceRecord
from pokeprice.services.normalization import extract_set_from_title
from pokeprice.services.pricing.adapters import (
    EbaySoldListingsAdapter,
    JustTCGAdapter,
    PokemonPriceTrackerAdapter,
    TCGdexAdapter,
)
from pokeprice.services.pricing.base import CardQuery, ProviderError
from pokeprice.services.pricing.currency import CurrencyService
from pokeprice.services.pricing.fallback import FallbackChain, FallbackStep
from pokeprice.services.pricing.sets import SetRecord, SetResolver

logger = structlog.get_logger()

PriceLookup = Callable[[CardQuery], Awaitable[PriceRecord]]

ANY_FILTER_VALUES = frozenset({"", "all"})


def _filter_value(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip().lower() in ANY_FILTER_VALUES:
        return None
    return value.strip()


def filter_cards(
    cards: list[dict[str, Any]],
    rarity: Optional[str] = None,
    card_type: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Rarity is a substring match, type an exact match on any of the card's types."""
    rarity = _filter_value(rarity)
    card_type = _filter_value(card_type)

    if rarity:
        wanted = rarity.lower()
        cards = [c for c in cards if wanted in str(c.get("rarity") or "").lower()]
    if card_type:
        wanted = card_type.lower()
        cards = [c for c in cards if any(str(t).lower() == wanted for t in c.get("types") or [])]
    return cards


def _card_set_name(card: dict[str, Any]) -> Optional[str]:
    card_set = card.get("set")
    if isinstance(card_set, dict) and card_set.get("name"):
        return str(card_set["name"])
    return None


def _with_tcgdex_logo(record: SetRecord, tcgdex_sets: list[SetRecord]) -> SetRecord:
    """Copy the logo of the TCGdex set with the same name or ID, if any."""
    name = record.name.lower()
    match = next(
        (
            s for s in tcgdex_sets
            if s.logo and (s.name == record.name or s.id == record.id or name in s.name.lower())
        ),
        None,
    )
    return dataclasses.replace(record, logo=match.logo) if match else record


def unpriced_bundle(note: Optional[str] = None) -> PriceBundle:
    """Bundle of "N/A" records for every provider."""
    return PriceBundle(
        ebay=PriceRecord.unavailable(SOURCE_EBAY, note=note),
        pokemon_price_tracker=PriceRecord.unavailable(SOURCE_POKEMON_PRICE_TRACKER, note=note),
        tcg_player=PriceRecord.unavailable(SOURCE_TCGPLAYER, note=note),
    )


class PriceAggregationEngine:
    """
    Entry point for every price lookup.

    Usage:
        engine = PriceAggregationEngine.create()
        record = await engine.resolve_price(CardQuery(title="Charizard", card_number="4", set_name="Base Set"))
        await engine.close()
    """

    def __init__(
        self,
        tcgdex: TCGdexAdapter,
        justtcg: JustTCGAdapter,
        ebay: EbaySoldListingsAdapter,
        price_tracker: PokemonPriceTrackerAdapter,
        set_resolver: SetResolver,
        cache: ResultCache,
        rate_limiter: RateLimiter,
        pacing: Optional[PacingPolicy] = None,
        currency: Optional[CurrencyService] = None,
        search_limit: int = settings.search_result_limit,
    ):
        self.tcgdex = tcgdex
        self.justtcg = justtcg
        self.ebay = ebay
        self.price_tracker = price_tracker
        self.set_resolver = set_resolver
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.pacing = pacing or PacingPolicy()
        self.currency = currency or CurrencyService()
        self.search_limit = search_limit

        self.strict_chain = FallbackChain(
            [
                FallbackStep(
                    name=Provider.TCGDEX.value,
                    run=self._guard(SOURCE_TCGPLAYER, tcgdex.fetch_structured_price),
                ),
                FallbackStep(
                    name=Provider.JUSTTCG.value,
                    run=self._guard(SOURCE_JUSTTCG_FAILED, justtcg.fetch_by_variant),
                    applies=lambda query: self.justtcg.is_configured and query.has_number_key,
                ),
            ],
            pacing=self.pacing,
        )

    @classmethod
    def create(cls, pacing: Optional[PacingPolicy] = None, transport=None) -> "PriceAggregationEngine":
        """
        Build an engine with fresh state from application settings.

        Args:
            pacing: Delay policy; defaults to the configured delays.
            transport: Optional httpx transport shared by every adapter.
        """
        rate_limiter = RateLimiter()
        set_resolver = SetResolver()
        return cls(
            tcgdex=TCGdexAdapter(set_resolver=set_resolver, rate_limiter=rate_limiter, transport=transport),
            justtcg=JustTCGAdapter(set_resolver=set_resolver, rate_limiter=rate_limiter, transport=transport),
            ebay=EbaySoldListingsAdapter(rate_limiter=rate_limiter, transport=transport),
            price_tracker=PokemonPriceTrackerAdapter(
                set_resolver=set_resolver, rate_limiter=rate_limiter, transport=transport
            ),
            set_resolver=set_resolver,
            cache=ResultCache(duration=settings.card_cache_seconds, max_size=settings.result_cache_max_size),
            rate_limiter=rate_limiter,
            pacing=pacing or PacingPolicy.from_settings(settings),
            currency=CurrencyService(
                cache=ResultCache(duration=settings.currency_cache_seconds, max_size=8),
                transport=transport,
            ),
        )

    def _guard(self, source: str, lookup: PriceLookup) -> PriceLookup:
        return functools.partial(self._guarded, source, lookup)

    async def _guarded(self, source: str, lookup: PriceLookup, query: CardQuery) -> PriceRecord:
        """Run an adapter lookup; unexpected exceptions become a generic "N/A"."""
        try:
            return await lookup(query)
        except Exception:
            logger.exception("Unexpected pricing failure", source=source, **query.describe())
            return PriceRecord.unavailable(source, note="Lookup failed")

    async def resolve_price(self, query: CardQuery) -> PriceRecord:
        """
        Single best price: TCGdex, then JustTCG when configured and the query
        carries a set and card number.
        """
        try:
            return await self.strict_chain.resolve(query)
        except Exception:
            logger.exception("Strict price resolution failed", **query.describe())
            return PriceRecord.unavailable(SOURCE_TCGPLAYER, note="Lookup failed")

    async def resolve_all_prices(self, query: CardQuery) -> PriceBundle:
        """
        Every provider's price for one card.

        Sold listings, the strict TCGplayer chain and the price tracker run
        concurrently. A missing set is guessed from the title first.
        """
        if not query.has_known_set:
            inferred = extract_set_from_title(query.title)
            if inferred != UNKNOWN_SET:
                logger.debug("Set inferred from title", title=query.title, set_name=inferred)
                query = dataclasses.replace(query, set_name=inferred)

        ebay, tcg_player, tracker = await asyncio.gather(
            self._guarded(SOURCE_EBAY, self.ebay.fetch_sold_listings_price, query),
            self.resolve_price(query),
            self._guarded(SOURCE_POKEMON_PRICE_TRACKER, self.price_tracker.fetch_tracked_price, query),
        )
        return PriceBundle(ebay=ebay, pokemon_price_tracker=tracker, tcg_player=tcg_player)

    @staticmethod
    def search_cache_key(
        query: Optional[str],
        set_id: Optional[str],
        rarity: Optional[str],
        card_type: Optional[str],
        language: Language,
        include_pricing: bool,
    ) -> str:
        return ":".join(
            [
                "search",
                (query or "").strip().lower(),
                set_id or "",
                rarity or "",
                card_type or "",
                language.value,
                str(include_pricing).lower(),
            ]
        )

    async def search_cards(
        self,
        query: Optional[str] = None,
        set_id: Optional[str] = None,
        rarity: Optional[str] = None,
        card_type: Optional[str] = None,
        language: Language = Language.ENGLISH,
        include_pricing: bool = False,
        refresh: bool = False,
    ) -> list[CardSummary]:
        """
        Search TCGdex by name or set, optionally pricing every hit.

        Results are cached for the card cache duration. ``refresh`` drops the
        cached entry first. Priced results are only cached when at least one
        card got a price from some provider.

        Raises:
            ValueError: If neither ``query`` nor ``set_id`` is given.
        """
        set_id = _filter_value(set_id)
        search = _filter_value(query)
        rarity = _filter_value(rarity)
        card_type = _filter_value(card_type)
        if not search and not set_id:
            raise ValueError("A search query or set is required")

        key = self.search_cache_key(search, set_id, rarity, card_type, language, include_pricing)
        if refresh:
            self.cache.delete(key)
            logger.info("Search cache bypassed", key=key)
        else:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Search served from cache", key=key, cards=len(cached), age_seconds=round(self.cache.age(key) or 0))
                return cached

        try:
            if set_id:
                cards = await self.tcgdex.get_set_cards(set_id, language)
            else:
                cards = await self.tcgdex.search_cards(search, language)
        except ProviderError as e:
            logger.warning("Card search failed", query=search, set_id=set_id, error=str(e))
            return []

        cards = filter_cards(cards, rarity, card_type)[: self.search_limit]

        if include_pricing:
            logger.info("Pricing search results", cards=len(cards))
            summaries = list(
                await asyncio.gather(
                    *(self._price_card(card, index, language) for index, card in enumerate(cards))
                )
            )
        else:
            not_loaded = unpriced_bundle(note="Pricing not loaded")
            summaries = [self._summary(card, not_loaded) for card in cards]

        if not include_pricing or any(s.pricing is not None and s.pricing.has_any_price for s in summaries):
            self.cache.set(key, summaries)
        else:
            logger.info("Search result not cached: no provider returned a price", key=key)

        return summaries

    async def _price_card(self, card: dict[str, Any], index: int, language: Language) -> CardSummary:
        await self.pacing.stagger(index)
        try:
            full = card
            if not _card_set_name(card) and card.get("id"):
                try:
                    fetched = await self.tcgdex.get_card(str(card["id"]), language)
                except ProviderError as e:
                    logger.debug("Full card fetch failed", card_id=card.get("id"), error=str(e))
                    fetched = None
                if fetched:
                    full = fetched

            query = CardQuery(
                title=str(full.get("name") or ""),
                card_id=full.get("id"),
                card_number=full.get("localId"),
                set_name=_card_set_name(full) or UNKNOWN_SET,
                language=language,
            )
            return self._summary(full, await self.resolve_all_prices(query))
        except Exception:
            logger.exception("Error pricing card", card_id=card.get("id"))
            return self._summary(card, unpriced_bundle())

    @staticmethod
    def _summary(card: dict[str, Any], pricing: Optional[PriceBundle]) -> CardSummary:
        card_set = card.get("set")
        return CardSummary(
            id=str(card.get("id") or ""),
            local_id=card.get("localId"),
            name=str(card.get("name") or ""),
            image=card.get("image"),
            rarity=card.get("rarity"),
            types=[str(t) for t in card.get("types") or []],
            card_set=CardSetSummary(
                id=str(card_set.get("id") or ""),
                name=str(card_set.get("name") or ""),
                logo=card_set.get("logo"),
                symbol=card_set.get("symbol"),
            )
            if isinstance(card_set, dict)
            else None,
            pricing=pricing,
        )

    async def list_sets(self, language: Language = Language.ENGLISH) -> list[SetRecord]:
        """
        Set catalog for ``language``, cached for the engine's lifetime.

        Japanese sets come from the price tracker when it is configured and
        answers, with logos borrowed from the matching TCGdex set. Everything
        else, including a failed tracker fetch, comes from TCGdex.
        """
        if language == Language.JAPANESE and self.price_tracker.is_configured:
            tracked = await self.set_resolver.catalog(Provider.POKEMON_PRICE_TRACKER.value, language)
            if tracked:
                tcgdex_sets = await self.set_resolver.catalog(Provider.TCGDEX.value, language)
                return [_with_tcgdex_logo(record, tcgdex_sets) for record in tracked]
            logger.info("Japanese sets unavailable from price tracker, using TCGdex")
        return await self.set_resolver.catalog(Provider.TCGDEX.value, language)

    async def list_set_cards(self, set_id: str, language: Language = Language.ENGLISH) -> list[CardSummary]:
        """
        Unpriced cards of one TCGdex set.

        Raises:
            ProviderError: If TCGdex could not be reached.
        """
        cards = await self.tcgdex.get_set_cards(set_id, language)
        return [self._summary(card, None) for card in cards]

    async def close(self) -> None:
        """Close every adapter's HTTP client."""
        for adapter in (self.tcgdex, self.justtcg, self.ebay, self.price_tracker):
            await adapter.close()
        await self.currency.close()
