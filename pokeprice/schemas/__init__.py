"""
Pydantic schemas for API request/response validation.
"""
from pokeprice.schemas.pricing import (
    CardSearchRequest,
    CardSummary,
    ExchangeRate,
    PriceBundle,
    PriceQuery,
    PriceRecord,
    PriceSearchResponse,
    SetResponse,
    SoldListing,
)

__all__ = [
    "CardSearchRequest",
    "CardSummary",
    "ExchangeRate",
    "PriceBundle",
    "PriceQuery",
    "PriceRecord",
    "PriceSearchResponse",
    "SetResponse",
    "SoldListing",
]
