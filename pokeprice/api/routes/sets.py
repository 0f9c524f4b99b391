"""
Set catalog endpoints.
"""
import structlog
from fastapi import APIRouter, HTTPException, status

from pokeprice.api.deps import Engine
from pokeprice.core.constants import Language
from pokeprice.schemas.pricing import CardSummary, SetResponse
from pokeprice.services.pricing.base import ProviderError

logger = structlog.get_logger()

router = APIRouter()


@router.get("/{language}", response_model=list[SetResponse], response_model_exclude_none=True)
async def list_sets(language: Language, engine: Engine):
    """
    Physical sets for a language (Pocket sets excluded).

    Japanese sets come from Pokemon Price Tracker when it is configured,
    otherwise from TCGdex.
    """
    records = await engine.list_sets(language)
    return [
        SetResponse(
            id=record.id,
            name=record.name,
            logo=record.logo,
            symbol=record.symbol,
            card_count=record.card_count,
        )
        for record in records
    ]


@router.get("/{language}/{set_id}", response_model=list[CardSummary], response_model_exclude_none=True)
async def list_set_cards(language: Language, set_id: str, engine: Engine):
    """Cards of one TCGdex set, without pricing."""
    try:
        cards = await engine.list_set_cards(set_id, language)
    except ProviderError as e:
        logger.warning("Set card listing failed", set_id=set_id, language=language.value, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Card database unavailable")

    if not cards:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Set not found")
    return cards
