"""
TCGdex adapter for card data and TCGplayer market prices.

TCGdex is a card database rather than a marketplace, but each card record
embeds the current TCGplayer market prices per finish. No credential is
required.
"""
from typing import Any, Optional

import structlog

from pokeprice.core.config import settings
from pokeprice.core.constants import (
    POCKET_ASSET_MARKER,
    POCKET_SET_ID_PATTERN,
    SOURCE_TCGDEX,
    SOURCE_TCGPLAYER,
    TCGDEX_PRICE_PREFERENCE,
    Language,
    Provider,
)
from pokeprice.core.rate_limit import RateLimiter
from pokeprice.core.request_queue import RequestQueue
from pokeprice.schemas.pricing import PriceRecord, coerce_price
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


def is_pocket_set(raw: dict[str, Any]) -> bool:
    """True for Pokemon TCG Pocket (digital-only) sets."""
    set_id = str(raw.get("id") or "")
    logo = str(raw.get("logo") or "")
    symbol = str(raw.get("symbol") or "")
    return (
        POCKET_ASSET_MARKER in logo
        or POCKET_ASSET_MARKER in symbol
        or "tcgp" in set_id.lower()
        or bool(POCKET_SET_ID_PATTERN.match(set_id))
        or set_id == "A"
    )


def select_tcgplayer_price(pricing: Optional[dict[str, Any]]) -> tuple[Optional[float], Optional[str]]:
    """
    Pick the market price from a TCGdex ``pricing`` object.

    Finishes are tried in preference order, then any other finish that has a
    market price.

    Returns:
        (price, price type label), or (None, None).
    """
    if not isinstance(pricing, dict):
        return None, None
    prices = pricing.get("tcgplayer")
    if not isinstance(prices, dict):
        return None, None

    for finish, label in TCGDEX_PRICE_PREFERENCE:
        variant = prices.get(finish)
        if isinstance(variant, dict):
            price = coerce_price(variant.get("marketPrice"))
            if price is not None:
                return price, label

    for variant in prices.values():
        if isinstance(variant, dict):
            price = coerce_price(variant.get("marketPrice"))
            if price is not None:
                return price, "Fallback Market"

    return None, None


class TCGdexAdapter(ProviderAdapter, SetCatalogSource):
    """
    Adapter for the TCGdex API.

    Serves card identity lookups, set catalogs and the structured
    TCGplayer price used as the first step of strict price resolution.
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
                base_url=settings.tcgdex_base_url,
                rate_limit_requests=settings.tcgdex_rate_limit_requests,
                rate_limit_window_seconds=settings.tcgdex_rate_limit_window_seconds,
                default_block_seconds=settings.default_rate_limit_block_seconds,
                queue_delay_seconds=settings.tcgdex_queue_delay_ms / 1000,
            )
        super().__init__(config, rate_limiter=rate_limiter, queue=queue, transport=transport)
        self.set_resolver = set_resolver or SetResolver()
        self.set_resolver.register(self.provider_slug, self)

    @property
    def provider_name(self) -> str:
        return "TCGdex"

    @property
    def provider_slug(self) -> str:
        return Provider.TCGDEX.value

    async def fetch_set_catalog(self, language: Language) -> list[SetRecord]:
        """Fetch every physical set for ``language``; Pocket sets are dropped."""
        data = await self._request("GET", f"/{language.value}/sets")
        if data is None:
            raise ProviderNotFoundError(self.provider_slug, f"No sets for language {language.value}")
        if not isinstance(data, list):
            raise ProviderUnavailableError(self.provider_slug, "Unexpected sets response")

        records = []
        for raw in data:
            if not isinstance(raw, dict) or not raw.get("id") or not raw.get("name"):
                continue
            if is_pocket_set(raw):
                continue
            card_count = raw.get("cardCount")
            records.append(
                SetRecord(
                    provider=self.provider_slug,
                    id=str(raw["id"]),
                    name=str(raw["name"]),
                    language=language,
                    logo=raw.get("logo"),
                    symbol=raw.get("symbol"),
                    card_count=card_count.get("total") if isinstance(card_count, dict) else None,
                )
            )
        return records

    async def get_card(self, card_id: str, language: Language = Language.ENGLISH) -> Optional[dict[str, Any]]:
        """Full card record, or None if TCGdex does not know the ID."""
        data = await self._request("GET", f"/{language.value}/cards/{card_id}")
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ProviderUnavailableError(self.provider_slug, "Unexpected card response")
        return data

    async def search_cards(self, name: str, language: Language = Language.ENGLISH) -> list[dict[str, Any]]:
        """Brief card records whose name matches ``name``."""
        data = await self._request("GET", f"/{language.value}/cards", params={"name": name})
        if data is None:
            return []
        if not isinstance(data, list):
            raise ProviderUnavailableError(self.provider_slug, "Unexpected search response")
        return [card for card in data if isinstance(card, dict)]

    async def get_set_cards(self, set_id: str, language: Language = Language.ENGLISH) -> list[dict[str, Any]]:
        """Brief card records of one set."""
        data = await self._request("GET", f"/{language.value}/sets/{set_id}")
        if data is None:
            return []
        if not isinstance(data, dict):
            raise ProviderUnavailableError(self.provider_slug, "Unexpected set response")
        return [card for card in data.get("cards") or [] if isinstance(card, dict)]

    async def fetch_structured_price(self, query: CardQuery) -> PriceRecord:
        """
        TCGplayer market price for a card.

        Uses ``query.card_id`` when given, otherwise resolves the set name and
        builds ``<setId>-<cardNumber>``.

        Returns:
            A priced record, or an "N/A" record whose note says why.
        """
        language = query.language
        card_id = query.card_id

        try:
            if not card_id and query.has_number_key:
                set_id = await self.set_resolver.resolve_set_id(self.provider_slug, query.set_name, language)
                if set_id is None:
                    logger.info("TCGdex set not found", set_name=query.set_name, language=language.value)
                    return PriceRecord.unavailable(
                        SOURCE_TCGPLAYER,
                        note=f'Set "{query.set_name}" not found in TCGdex',
                        language=language.value,
                    )
                local_id = query.card_number.split("/")[0].strip()
                card_id = f"{set_id}-{local_id}"
                logger.debug("Constructed TCGdex card ID", card_id=card_id)

            if not card_id:
                return PriceRecord.unavailable(SOURCE_TCGPLAYER, note="Card ID or Set/Number are required.")

            card = await self.get_card(card_id, language)
        except ProviderError as e:
            logger.warning("TCGdex lookup failed", error=str(e), **query.describe())
            return PriceRecord.unavailable(SOURCE_TCGPLAYER, note=self.failure_note(e), language=language.value)

        if card is None:
            logger.info("TCGdex card not found", card_id=card_id, language=language.value)
            return PriceRecord.unavailable(
                SOURCE_TCGPLAYER,
                note=f"Card not found in TCGdex ({card_id})",
                language=language.value,
            )

        price, price_type = select_tcgplayer_price(card.get("pricing"))
        card_set = card.get("set") if isinstance(card.get("set"), dict) else {}
        fields = {
            "card_name": card.get("name"),
            "card_number": card.get("localId"),
            "set_name": card_set.get("name"),
            "language": language.value,
        }

        if price is None:
            logger.info("No TCGplayer market price in TCGdex card", card_id=card_id)
            return PriceRecord.unavailable(SOURCE_TCGPLAYER, note="Price unavailable", **fields)

        logger.info("TCGdex price found", card_id=card_id, price=price, price_type=price_type)
        return PriceRecord(average_price=price, source=SOURCE_TCGDEX, **fields)
