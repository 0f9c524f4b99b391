"""PokePrice: multi-source Pokemon TCG price aggregation."""

__version__ = "1.0.0"
