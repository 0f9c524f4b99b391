"""
Pricing provider adapters.
"""
from pokeprice.services.pricing.adapters.ebay import EbaySoldListingsAdapter
from pokeprice.services.pricing.adapters.justtcg import JustTCGAdapter
from pokeprice.services.pricing.adapters.pokemon_price_tracker import PokemonPriceTrackerAdapter
from pokeprice.services.pricing.adapters.tcgdex import TCGdexAdapter

__all__ = [
    "EbaySoldListingsAdapter",
    "JustTCGAdapter",
    "PokemonPriceTrackerAdapter",
    "TCGdexAdapter",
]
