"""
Core module containing configuration and shared utilities.
"""
from pokeprice.core.config import settings
from pokeprice.core.constants import (
    Language,
    Provider,
    NOT_AVAILABLE,
    UNKNOWN_SET,
    NORMALIZATION_TABLE_VERSION,
)

__all__ = [
    "settings",
    "Language",
    "Provider",
    "NOT_AVAILABLE",
    "UNKNOWN_SET",
    "NORMALIZATION_TABLE_VERSION",
]
