"""
Pricing Pydantic schemas for API request/response validation.

All models serialize with camelCase keys to match the JSON the frontend
consumes; Python code constructs them with snake_case field names.
"""
import math
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pokeprice.core.constants import NOT_AVAILABLE, Language

PriceValue = Union[Literal["N/A"], float]


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def is_valid_price(value: Any) -> bool:
    """True for positive, finite numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


class SoldListing(CamelModel):
    """One completed sale shown as evidence for a sold-listings average."""
    title: str
    sale_price: float
    condition: str = "Unknown"
    date_sold: str = "Unknown"
    link: str = "#"


class PriceRecord(CamelModel):
    """
    A single provider's answer for one card.

    ``average_price`` is either a positive finite number or the "N/A"
    sentinel. ``source`` names the provider, and for layered lookups the
    path that produced the value.
    """
    average_price: PriceValue
    source: str
    card_name: Optional[str] = None
    card_number: Optional[str] = None
    set_name: Optional[str] = None
    note: Optional[str] = None
    language: Optional[str] = None
    listings: Optional[list[SoldListing]] = None
    filtered_from: Optional[int] = None
    matched_cards: Optional[int] = None

    @field_validator("average_price")
    @classmethod
    def validate_average_price(cls, v: PriceValue) -> PriceValue:
        """Reject zero, negative and non-finite prices."""
        if v == NOT_AVAILABLE:
            return v
        if not is_valid_price(v):
            raise ValueError("averagePrice must be a positive finite number or 'N/A'")
        return v

    @property
    def is_priced(self) -> bool:
        return self.average_price != NOT_AVAILABLE

    @classmethod
    def unavailable(cls, source: str, note: Optional[str] = None, **fields: Any) -> "PriceRecord":
        """Build an "N/A" record."""
        return cls(average_price=NOT_AVAILABLE, source=source, note=note, **fields)

    @classmethod
    def from_price(
        cls,
        price: Any,
        source: str,
        note_if_missing: str = "Price unavailable",
        **fields: Any,
    ) -> "PriceRecord":
        """
        Build a record from a raw provider value.

        Strings are parsed; anything that is not a positive finite number
        yields an "N/A" record carrying ``note_if_missing``.
        """
        value = coerce_price(price)
        if value is None:
            return cls.unavailable(source, note=note_if_missing, **fields)
        return cls(average_price=value, source=source, **fields)


def coerce_price(raw: Any) -> Optional[float]:
    """Parse a provider price field; None unless positive and finite."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if is_valid_price(value) else None


class PriceBundle(CamelModel):
    """Every provider's record for one card, with no preferred winner."""
    ebay: PriceRecord
    pokemon_price_tracker: PriceRecord
    tcg_player: PriceRecord

    @property
    def has_any_price(self) -> bool:
        return any(record.is_priced for record in (self.ebay, self.pokemon_price_tracker, self.tcg_player))


class CardSetSummary(CamelModel):
    """Set reference embedded in a card."""
    id: str
    name: str
    logo: Optional[str] = None
    symbol: Optional[str] = None


class CardSummary(CamelModel):
    """Card identity as returned by the card database, optionally priced."""
    id: str
    local_id: Optional[str] = None
    name: str
    image: Optional[str] = None
    rarity: Optional[str] = None
    types: list[str] = Field(default_factory=list)
    card_set: Optional[CardSetSummary] = Field(None, alias="set")
    pricing: Optional[PriceBundle] = None


class SetResponse(CamelModel):
    """A set from a provider catalog."""
    id: str
    name: str
    logo: Optional[str] = None
    symbol: Optional[str] = None
    card_count: Optional[int] = None


class ExchangeRate(CamelModel):
    """USD conversion rate and where it came from."""
    rate: float
    last_updated: datetime
    from_currency: str = Field("USD", alias="from")
    to_currency: str = Field("INR", alias="to")
    source: str


# Request bodies


class PriceQuery(CamelModel):
    """Card identity to price."""
    title: str = Field(..., min_length=1, max_length=200)
    card_id: Optional[str] = None
    card_number: Optional[str] = Field(None, max_length=20)
    set_name: Optional[str] = Field(None, alias="set", max_length=100)
    language: Language = Language.ENGLISH

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class PriceSearchResponse(CamelModel):
    """All provider prices for one card."""
    title: str
    card_number: Optional[str] = None
    set_name: Optional[str] = Field(None, alias="set")
    language: str
    ebay: PriceRecord
    pokemon_price_tracker: PriceRecord
    tcg_player: PriceRecord
    last_updated: datetime


class CardSearchRequest(CamelModel):
    """Card listing search, optionally enriched with prices."""
    query: Optional[str] = Field(None, max_length=100)
    set_id: Optional[str] = Field(None, alias="set", max_length=50)
    rarity: Optional[str] = Field(None, max_length=50)
    card_type: Optional[str] = Field(None, alias="type", max_length=50)
    language: Language = Language.ENGLISH
    include_pricing: bool = False
    refresh: bool = False
