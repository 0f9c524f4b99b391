"""
JustTCG adapter for condition-specific TCGplayer prices.

JustTCG exposes each card as a list of variants (condition x printing),
each with its own price. Only the near-mint variant is treated as an
authoritative price; other conditions are never substituted.
"""
from typing import Any, Optional

import structlog

from pokeprice.core.config import settings
from pokeprice.core.constants import (
    NEAR_MINT_VARIANT_PATTERN,
    SOURCE_JUSTTCG,
    SOURCE_JUSTTCG_FAILED,
    Language,
    Provider,
)
from pokeprice.core.rate_limit import RateLimiter
from pokeprice.core.request_queue import RequestQueue
from pokeprice.schemas.pricing import PriceRecord, coerce_price
from pokeprice.services.normalization import card_numbers_match, extract_card_name
from pokeprice.services.pricing.base import (
    AdapterConfig,
    CardQuery,
    ProviderAdapter,
    ProviderError,
    ProviderNotFoundError,
    ProviderUnavailableError,
)
from pokeprice.services.pricing.sets import SetCatalogSource, SetRecord, SetResolver

logger = structlog.get_logger()

GAME = "pokemon"
# JustTCG publishes one catalog for every card language.
CATALOG_LANGUAGE = Language.ENGLISH


def unwrap_results(data: Any) -> list[dict[str, Any]]:
    """JustTCG answers with ``{"data": [...]}`` or a bare list."""
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def select_near_mint_variant(variants: Any) -> Optional[dict[str, Any]]:
    """First variant whose ID names the near-mint condition."""
    if not isinstance(variants, list):
        return None
    for variant in variants:
        if not isinstance(variant, dict):
            continue
        variant_id = variant.get("id")
        if isinstance(variant_id, str) and NEAR_MINT_VARIANT_PATTERN.search(variant_id):
            return variant
    return None


def select_number_match(cards: list[dict[str, Any]], card_number: str) -> Optional[dict[str, Any]]:
    """
    First card whose number matches ``card_number``.

    Ties are broken by response order. Sets that reuse a number across
    distinct prints therefore resolve to whichever JustTCG lists first.
    """
    for card in cards:
        if card_numbers_match(card.get("number"), card_number):
            return card
    return None


class JustTCGAdapter(ProviderAdapter, SetCatalogSource):
    """
    Adapter for the JustTCG API.

    Rate limit: 100 requests per hour on the free tier.
    """

    def __init__(
        self,
        config: AdapterConfig | None = None,
        set_resolver: SetResolver | None = None,
        rate_limiter: RateLimiter | None = None,
        queue: RequestQueue | None = None,
        transport=None,
    ):
        if config is None:
            config = AdapterConfig(
                base_url=settings.justtcg_base_url,
                api_key=settings.justtcg_api_key,
                requires_api_key=True,
                rate_limit_requests=settings.justtcg_rate_limit_requests,
                rate_limit_window_seconds=settings.justtcg_rate_limit_window_seconds,
                default_block_seconds=settings.default_rate_limit_block_seconds,
                queue_delay_seconds=settings.pricing_queue_delay_ms / 1000,
            )
        super().__init__(config, rate_limiter=rate_limiter, queue=queue, transport=transport)
        self.set_resolver = set_resolver or SetResolver()
        self.set_resolver.register(self.provider_slug, self)

    @property
    def provider_name(self) -> str:
        return "JustTCG"

    @property
    def provider_slug(self) -> str:
        return Provider.JUSTTCG.value

    def _auth_headers(self) -> dict[str, str]:
        return {"X-API-Key": self.config.api_key or ""}

    async def fetch_set_catalog(self, language: Language) -> list[SetRecord]:
        data = await self._request("GET", "/sets", params={"game": GAME})
        if data is None:
            raise ProviderNotFoundError(self.provider_slug, "Sets endpoint not found")

        return [
            SetRecord(provider=self.provider_slug, id=str(raw["id"]), name=str(raw["name"]), language=language)
            for raw in unwrap_results(data)
            if raw.get("id") and raw.get("name")
        ]

    async def search(self, term: str, set_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Catalog search, optionally scoped to one set."""
        params = {"q": term, "game": GAME}
        if set_id:
            params["set"] = set_id
        return unwrap_results(await self._request("GET", "/cards", params=params))

    async def get_variant(self, variant_id: str) -> Optional[dict[str, Any]]:
        """Full card record for one variant."""
        results = unwrap_results(await self._request("GET", "/cards", params={"variantId": variant_id}))
        return results[0] if results else None

    async def find_card(self, query: CardQuery, set_id: str) -> Optional[dict[str, Any]]:
        """
        Locate the card by number within a set.

        The search term is the first word of the cleaned name; the number
        filter does the narrowing. When the set has no hits, related subsets
        are searched in catalog order, then the whole game with results
        restricted to names containing the cleaned name.
        """
        card_name = extract_card_name(query.title)
        words = card_name.split()
        term = words[0] if words else card_name

        results = await self.search(term, set_id)

        if not results:
            subsets = await self.set_resolver.find_related_subsets(self.provider_slug, set_id, CATALOG_LANGUAGE)
            for subset_id in subsets:
                results = await self.search(term, subset_id)
                if results:
                    logger.debug("JustTCG results found in related subset", set_id=set_id, subset_id=subset_id)
                    break

        if not results:
            wanted = card_name.lower()
            results = [
                card for card in await self.search(term)
                if wanted and wanted in str(card.get("name") or "").lower()
            ]

        return select_number_match(results, query.card_number or "")

    async def fetch_by_variant(self, query: CardQuery) -> PriceRecord:
        """
        Near-mint TCGplayer price for a card identified by set and number.

        Returns:
            A "TCGplayer (JustTCG)" priced record, or an "N/A" record.
        """
        if not self.is_configured:
            return PriceRecord.unavailable(SOURCE_JUSTTCG_FAILED, note="API key not configured")

        if not query.has_number_key:
            return PriceRecord.unavailable(SOURCE_JUSTTCG_FAILED, note="Missing card number or set")

        try:
            set_id = await self.set_resolver.resolve_set_id(self.provider_slug, query.set_name, CATALOG_LANGUAGE)
            if set_id is None:
                return PriceRecord.unavailable(
                    SOURCE_JUSTTCG_FAILED,
                    note=f'Set "{query.set_name}" not found on JustTCG',
                )

            card = await self.find_card(query, set_id)
            if card is None:
                logger.info("JustTCG card not found", set_id=set_id, **query.describe())
                return PriceRecord.unavailable(
                    SOURCE_JUSTTCG_FAILED,
                    note=f"Card #{query.card_number} not found in {query.set_name}",
                )

            variant = select_near_mint_variant(card.get("variants"))
            if variant is None:
                logger.info("No near-mint variant on JustTCG card", card_id=card.get("id"))
                return PriceRecord.unavailable(
                    SOURCE_JUSTTCG_FAILED,
                    note="No Near-Mint variant found",
                    card_name=card.get("name"),
                )

            detail = await self.get_variant(variant["id"])
        except ProviderError as e:
            logger.warning("JustTCG lookup failed", error=str(e), **query.describe())
            return PriceRecord.unavailable(SOURCE_JUSTTCG_FAILED, note=self.failure_note(e))

        if detail is None:
            return PriceRecord.unavailable(
                SOURCE_JUSTTCG_FAILED,
                note="Variant details unavailable",
                card_name=card.get("name"),
            )

        detail_variants = detail.get("variants") if isinstance(detail.get("variants"), list) else []
        priced_variant = next(
            (v for v in detail_variants if isinstance(v, dict) and v.get("id") == variant["id"]),
            None,
        )
        price = coerce_price((priced_variant or {}).get("price"))
        fields = {
            "card_name": detail.get("name") or card.get("name"),
            "card_number": detail.get("number") or card.get("number"),
            "set_name": query.set_name,
        }

        if price is None:
            return PriceRecord.unavailable(SOURCE_JUSTTCG_FAILED, note="Price unavailable", **fields)

        logger.info("JustTCG near-mint price found", variant_id=variant["id"], price=price)
        return PriceRecord(average_price=price, source=SOURCE_JUSTTCG, **fields)
