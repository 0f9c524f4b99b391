"""
Card search endpoints.
"""
from fastapi import APIRouter, HTTPException, status

from pokeprice.api.deps import Engine
from pokeprice.schemas.pricing import CardSearchRequest, CardSummary

router = APIRouter()


@router.post("/search-cards", response_model=list[CardSummary], response_model_exclude_none=True)
async def search_cards(body: CardSearchRequest, engine: Engine):
    """
    Search cards by name or set.

    With ``includePricing`` every card (up to 100) is priced by all
    providers; results are cached for four hours unless ``refresh`` is set.
    """
    try:
        return await engine.search_cards(
            query=body.query,
            set_id=body.set_id,
            rarity=body.rarity,
            card_type=body.card_type,
            language=body.language,
            include_pricing=body.include_pricing,
            refresh=body.refresh,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
