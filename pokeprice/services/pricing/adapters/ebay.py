"""
eBay sold-listings adapter (via the RapidAPI average-selling-price service).

Completed eBay sales are the noisiest price source: titles are free text
and mix graded slabs, bulk lots and neighbouring cards. Listings go through
a strict filter before anything is averaged.
"""
import math
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from pokeprice.core.config import settings
from pokeprice.core.constants import (
    BULK_LISTING_PATTERN,
    GRADING_SCORE_PATTERN,
    GRADING_SERVICE_PATTERN,
    LISTING_BOILERPLATE_PATTERNS,
    LISTING_NUMBER_PATTERNS,
    MAX_EVIDENCE_LISTINGS,
    SOURCE_EBAY,
    Provider,
)
from pokeprice.core.rate_limit import RateLimiter
from pokeprice.core.request_queue import RequestQueue
from pokeprice.schemas.pricing import PriceRecord, SoldListing, coerce_price
from pokeprice.services.normalization import (
    extract_card_name,
    is_known_set,
    normalize_card_number,
    significant_words,
)
from pokeprice.services.pricing.base import AdapterConfig, CardQuery, ProviderAdapter, ProviderError

logger = structlog.get_logger()


@dataclass
class MatchedListing:
    """A listing that survived filtering, with its parsed price."""
    item: dict[str, Any]
    title: str
    price: float


def listing_price(item: dict[str, Any]) -> Optional[float]:
    """Sale price from ``sale_price`` or ``currentPrice.value``."""
    raw = item.get("sale_price")
    if raw in (None, "", 0):
        current = item.get("currentPrice")
        raw = current.get("value") if isinstance(current, dict) else None
    if isinstance(raw, str):
        raw = raw.replace("$", "").replace(",", "").strip()
    return coerce_price(raw)


def is_graded_listing(title: str) -> bool:
    return bool(GRADING_SERVICE_PATTERN.search(title) or GRADING_SCORE_PATTERN.search(title))


def is_bulk_listing(title: str) -> bool:
    return bool(BULK_LISTING_PATTERN.search(title))


def stated_card_number(title: str) -> Optional[str]:
    """
    The card number a title states, normalized.

    Patterns are tried in order and the first hit decides, so an ``N/M``
    number outranks a trailing ``#N``.
    """
    for pattern in LISTING_NUMBER_PATTERNS:
        match = pattern.search(title)
        if match:
            return normalize_card_number(match.group(1))
    return None


def has_conflicting_number(title: str, target: str) -> bool:
    """
    True when the title states a card number other than ``target``.

    Titles with no number at all never conflict.
    """
    stated = stated_card_number(title)
    return stated is not None and stated != normalize_card_number(target)


def matches_set(title: str, set_name: str, ratio: float) -> bool:
    """Full set name in the title, or enough of its significant words."""
    title_lower = title.lower()
    set_lower = set_name.lower().strip()
    if set_lower in title_lower:
        return True
    words = significant_words(set_lower)
    present = [word for word in words if word in title_lower]
    return len(present) >= math.ceil(len(words) * ratio)


def clean_listing_title(title: str) -> str:
    for pattern in LISTING_BOILERPLATE_PATTERNS:
        title = pattern.sub("", title)
    return title.strip()


def filter_listings(
    items: list[dict[str, Any]],
    card_name: str,
    card_number: Optional[str] = None,
    set_name: Optional[str] = None,
    price_ceiling: float = 100_000.0,
    set_word_ratio: float = 0.6,
) -> list[MatchedListing]:
    """
    Keep only raw, single-card sales of the requested card.

    Rejects graded copies, bulk/sealed product, titles missing any
    significant word of the card name, titles stating a different card
    number, titles that do not mention the set, and implausible prices.
    Order is preserved.
    """
    name_words = significant_words(card_name)
    target_number = normalize_card_number(card_number) if card_number else ""
    check_set = is_known_set(set_name)

    matched = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "")
        title_lower = title.lower()

        if is_graded_listing(title):
            logger.debug("Listing excluded: graded", title=title)
            continue

        if is_bulk_listing(title):
            logger.debug("Listing excluded: bulk term", title=title)
            continue

        missing = [word for word in name_words if word not in title_lower]
        if missing:
            logger.debug("Listing excluded: name words missing", title=title, missing=missing)
            continue

        if target_number and has_conflicting_number(title, target_number):
            logger.debug("Listing excluded: conflicting card number", title=title, expected=target_number)
            continue

        if check_set and not matches_set(title, set_name, set_word_ratio):
            logger.debug("Listing excluded: set mismatch", title=title, expected=set_name)
            continue

        price = listing_price(item)
        if price is None or price > price_ceiling:
            logger.debug("Listing excluded: price out of range", title=title, price=item.get("sale_price"))
            continue

        matched.append(MatchedListing(item=item, title=title, price=price))

    return matched


def to_sold_listing(match: MatchedListing) -> SoldListing:
    condition = match.item.get("condition")
    condition_name = condition.get("conditionDisplayName") if isinstance(condition, dict) else condition
    return SoldListing(
        title=clean_listing_title(match.title) or "Unknown",
        sale_price=match.price,
        condition=str(condition_name or "Unknown"),
        date_sold=str(match.item.get("date_sold") or "Unknown"),
        link=str(match.item.get("link") or "#"),
    )


class EbaySoldListingsAdapter(ProviderAdapter):
    """
    Adapter for eBay completed items via RapidAPI.

    Rate limit: 10 requests per minute.
    """

    def __init__(
        self,
        config: AdapterConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        queue: RequestQueue | None = None,
        transport=None,
    ):
        if config is None:
            config = AdapterConfig(
                base_url=settings.ebay_base_url,
                api_key=settings.rapidapi_key,
                requires_api_key=True,
                rate_limit_requests=settings.ebay_rate_limit_requests,
                rate_limit_window_seconds=settings.ebay_rate_limit_window_seconds,
                default_block_seconds=settings.default_rate_limit_block_seconds,
                queue_delay_seconds=settings.pricing_queue_delay_ms / 1000,
                extra={
                    "host": settings.ebay_rapidapi_host,
                    "max_results": settings.ebay_max_results,
                    "price_ceiling": settings.sold_price_ceiling,
                    "set_word_ratio": settings.set_word_match_ratio,
                },
            )
        super().__init__(config, rate_limiter=rate_limiter, queue=queue, transport=transport)

    @property
    def provider_name(self) -> str:
        return "eBay"

    @property
    def provider_slug(self) -> str:
        return Provider.EBAY.value

    def _auth_headers(self) -> dict[str, str]:
        return {
            "X-RapidAPI-Key": self.config.api_key or "",
            "X-RapidAPI-Host": self.config.extra.get("host", settings.ebay_rapidapi_host),
        }

    @staticmethod
    def build_search_query(card_name: str, card_number: Optional[str], set_name: Optional[str]) -> str:
        parts = [card_name]
        if card_number:
            parts.append(card_number.strip())
        if is_known_set(set_name):
            parts.append(set_name.strip())
        return " ".join(part for part in parts if part)

    async def fetch_sold_listings_price(self, query: CardQuery) -> PriceRecord:
        """
        Average recent sale price of raw copies of a card.

        Returns:
            An "eBay" record with the mean of all matching sales and up to five
            of them as evidence, or "N/A" naming the identity that failed.
        """
        if not self.is_configured:
            return PriceRecord.unavailable(SOURCE_EBAY, note="API key not configured")

        card_name = extract_card_name(query.title)
        keywords = self.build_search_query(card_name, query.card_number, query.set_name)

        try:
            data = await self._request(
                "POST",
                "/findCompletedItems",
                json={
                    "keywords": keywords,
                    "max_search_results": self.config.extra.get("max_results", settings.ebay_max_results),
                },
            )
        except ProviderError as e:
            logger.warning("eBay lookup failed", error=str(e), keywords=keywords)
            return PriceRecord.unavailable(SOURCE_EBAY, note=self.failure_note(e), listings=[])

        if isinstance(data, dict):
            items = data.get("products") or data.get("items") or []
        elif isinstance(data, list):
            items = data
        else:
            items = []

        matched = filter_listings(
            items,
            card_name,
            card_number=query.card_number,
            set_name=query.set_name,
            price_ceiling=self.config.extra.get("price_ceiling", settings.sold_price_ceiling),
            set_word_ratio=self.config.extra.get("set_word_ratio", settings.set_word_match_ratio),
        )
        logger.info("eBay listings filtered", keywords=keywords, total=len(items), matched=len(matched))

        if not matched:
            return PriceRecord.unavailable(
                SOURCE_EBAY,
                note=self._no_match_note(card_name, query),
                listings=[],
                filtered_from=len(items),
                matched_cards=0,
            )

        average = round(sum(m.price for m in matched) / len(matched), 2)
        return PriceRecord.from_price(
            average,
            SOURCE_EBAY,
            card_name=card_name,
            card_number=query.card_number,
            set_name=query.set_name if query.has_known_set else None,
            listings=[to_sold_listing(m) for m in matched[:MAX_EVIDENCE_LISTINGS]],
            filtered_from=len(items),
            matched_cards=len(matched),
        )

    @staticmethod
    def _no_match_note(card_name: str, query: CardQuery) -> str:
        note = f"No exact matches found for {card_name}"
        if query.card_number:
            note += f" #{normalize_card_number(query.card_number)}"
        if query.has_known_set:
            note += f" ({query.set_name})"
        return note
