"""
Exchange rate endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Query

from pokeprice.api.deps import Engine
from pokeprice.services.pricing.currency import convert_usd

router = APIRouter()


@router.get("/exchange-rate")
async def get_exchange_rate(
    engine: Engine,
    refresh: bool = False,
    amount: Optional[float] = Query(None, gt=0, description="USD amount to convert"),
):
    """
    Current USD->INR rate.

    Pass ``amount`` to also get it converted.
    """
    rate = await engine.currency.get_usd_inr_rate(force_refresh=refresh)
    payload = rate.model_dump(by_alias=True, mode="json")
    if amount is not None:
        payload["convertedAmount"] = convert_usd(amount, rate.rate)
    return payload
