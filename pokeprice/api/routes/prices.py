"""
Card price endpoints.
"""
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter

from pokeprice.api.deps import Engine
from pokeprice.schemas.pricing import PriceQuery, PriceRecord, PriceSearchResponse
from pokeprice.services.pricing.base import CardQuery

router = APIRouter()
logger = structlog.get_logger()


def _card_query(body: PriceQuery) -> CardQuery:
    return CardQuery(
        title=body.title,
        card_id=body.card_id,
        card_number=body.card_number,
        set_name=body.set_name,
        language=body.language,
    )


@router.post("/search", response_model=PriceSearchResponse, response_model_exclude_none=True)
async def search_prices(body: PriceQuery, engine: Engine):
    """
    Prices from every provider for one card.

    Each provider's record is returned as-is; no single price is preferred.
    """
    logger.info("Price search", title=body.title, card_number=body.card_number, set_name=body.set_name)
    bundle = await engine.resolve_all_prices(_card_query(body))
    return PriceSearchResponse(
        title=body.title,
        card_number=body.card_number,
        set_name=body.set_name,
        language=body.language.value,
        ebay=bundle.ebay,
        pokemon_price_tracker=bundle.pokemon_price_tracker,
        tcg_player=bundle.tcg_player,
        last_updated=datetime.now(timezone.utc),
    )


@router.post("/price", response_model=PriceRecord, response_model_exclude_none=True)
async def best_price(body: PriceQuery, engine: Engine):
    """Single TCGplayer price using TCGdex with JustTCG as fallback."""
    return await engine.resolve_price(_card_query(body))
