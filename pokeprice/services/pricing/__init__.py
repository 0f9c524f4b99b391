"""
Pricing services: provider adapters, set resolution and aggregation.
"""
from pokeprice.services.pricing.base import (
    AdapterConfig,
    CardQuery,
    ProviderAdapter,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderNotFoundError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
)
from pokeprice.services.pricing.engine import PriceAggregationEngine
from pokeprice.services.pricing.sets import SetRecord, SetResolver

__all__ = [
    "AdapterConfig",
    "CardQuery",
    "PriceAggregationEngine",
    "ProviderAdapter",
    "ProviderError",
    "ProviderNotConfiguredError",
    "ProviderNotFoundError",
    "ProviderRateLimitedError",
    "ProviderUnavailableError",
    "SetRecord",
    "SetResolver",
]
