"""
Application configuration settings.

All configuration is loaded from environment variables with sensible defaults.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "PokePrice"
    api_debug: bool = True
    log_level: str = ""  # empty: DEBUG when api_debug, INFO otherwise
    api_prefix: str = "/api"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # Card database proxy (TCGdex) - no credential required
    tcgdex_base_url: str = "https://api.tcgdex.net/v2"

    # Aggregator with explicit variants (JustTCG)
    justtcg_base_url: str = "https://api.justtcg.com/v1"
    justtcg_api_key: str = ""  # set via JUSTTCG_API_KEY env var

    # Sold listings provider (eBay via RapidAPI)
    ebay_base_url: str = "https://ebay-average-selling-price.p.rapidapi.com"
    ebay_rapidapi_host: str = "ebay-average-selling-price.p.rapidapi.com"
    rapidapi_key: str = ""  # set via RAPIDAPI_KEY env var

    # Fuzzy price tracker (Pokemon Price Tracker)
    pokemon_price_tracker_base_url: str = "https://www.pokemonpricetracker.com/api/v2"
    pokemon_price_tracker_api_key: str = ""  # set via POKEMON_PRICE_TRACKER_API_KEY env var

    # HTTP
    external_api_timeout: float = 30.0
    user_agent: str = "PokePrice/1.0"

    # Caching
    card_cache_seconds: int = 4 * 60 * 60  # search and card results
    currency_cache_seconds: int = 60 * 60
    result_cache_max_size: int = 1000

    # Request pacing
    tcgdex_queue_delay_ms: int = 50
    pricing_queue_delay_ms: int = 100
    price_tracker_min_interval_seconds: float = 1.0
    batch_stagger_ms: int = 50
    provider_gap_ms: int = 500

    # Provider request budgets (fixed window)
    tcgdex_rate_limit_requests: int = 600
    tcgdex_rate_limit_window_seconds: int = 60
    justtcg_rate_limit_requests: int = 100
    justtcg_rate_limit_window_seconds: int = 60 * 60
    ebay_rate_limit_requests: int = 10
    ebay_rate_limit_window_seconds: int = 60
    price_tracker_rate_limit_requests: int = 20
    price_tracker_rate_limit_window_seconds: int = 60
    default_rate_limit_block_seconds: int = 60 * 60  # 429 without Retry-After

    # Matching heuristics
    # Both thresholds were tuned by hand against live listings; recalibrate
    # against recorded provider responses before changing them.
    ebay_max_results: int = 240
    sold_price_ceiling: float = 100_000.0
    set_word_match_ratio: float = 0.6
    search_result_limit: int = 100

    # Currency
    fallback_usd_inr_rate: float = 88.72

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
