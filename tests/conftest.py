"""
Pytest configuration and fixtures.

Provides fixtures for:
- Fake upstream APIs (one httpx.MockTransport per provider)
- Adapters wired to those fakes with zero queue delay
- A fresh PriceAggregationEngine per test with empty caches
- HTTP client against the FastAPI app using that engine
"""
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient

from pokeprice.api.deps import get_engine
from pokeprice.core.cache import ResultCache
from pokeprice.core.rate_limit import RateLimiter
from pokeprice.core.request_queue import PacingPolicy
from pokeprice.main import app
from pokeprice.services.pricing.adapters import (
    EbaySoldListingsAdapter,
    JustTCGAdapter,
    PokemonPriceTrackerAdapter,
    TCGdexAdapter,
)
from pokeprice.services.pricing.base import AdapterConfig
from pokeprice.services.pricing.currency import CurrencyService, RateSource
from pokeprice.services.pricing.engine import PriceAggregationEngine
from pokeprice.services.pricing.sets import SetResolver

Route = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """
    In-memory stand-in for one provider's HTTP API.

    Routes are keyed by (method, path). Unknown routes answer 404, which the
    adapters treat as "not found". Every request is recorded.
    """

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, payload=None, status: int = 200, headers=None) -> None:
        self.routes[(method, path)] = lambda request: httpx.Response(status, json=payload, headers=headers)

    def route(self, method: str, path: str, handler: Route) -> None:
        self.routes[(method, path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "Not found"})
        return route(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def adapter_config(base_url: str, requires_api_key: bool = True, **overrides) -> AdapterConfig:
    """Adapter config with a credential, a generous budget and no queue delay."""
    values = {
        "base_url": base_url,
        "api_key": "test-key" if requires_api_key else None,
        "requires_api_key": requires_api_key,
        "rate_limit_requests": 1000,
        "rate_limit_window_seconds": 60,
        "queue_delay_seconds": 0,
    }
    values.update(overrides)
    return AdapterConfig(**values)


# -----------------------------------------------------------------------------
# Fake upstream APIs
# -----------------------------------------------------------------------------

@pytest.fixture
def tcgdex_api() -> FakeUpstream:
    return FakeUpstream("https://tcgdex.test")


@pytest.fixture
def justtcg_api() -> FakeUpstream:
    return FakeUpstream("https://justtcg.test")


@pytest.fixture
def ebay_api() -> FakeUpstream:
    return FakeUpstream("https://ebay.test")


@pytest.fixture
def tracker_api() -> FakeUpstream:
    return FakeUpstream("https://tracker.test")


@pytest.fixture
def rates_api() -> FakeUpstream:
    return FakeUpstream("https://rates.test")


# -----------------------------------------------------------------------------
# Adapters
# -----------------------------------------------------------------------------

@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter()


@pytest.fixture
def set_resolver() -> SetResolver:
    return SetResolver()


@pytest.fixture
def tcgdex(tcgdex_api, set_resolver, rate_limiter) -> TCGdexAdapter:
    return TCGdexAdapter(
        adapter_config(tcgdex_api.base_url, requires_api_key=False),
        set_resolver=set_resolver,
        rate_limiter=rate_limiter,
        transport=tcgdex_api.transport,
    )


@pytest.fixture
def justtcg(justtcg_api, set_resolver, rate_limiter) -> JustTCGAdapter:
    return JustTCGAdapter(
        adapter_config(justtcg_api.base_url),
        set_resolver=set_resolver,
        rate_limiter=rate_limiter,
        transport=justtcg_api.transport,
    )


@pytest.fixture
def ebay(ebay_api, rate_limiter) -> EbaySoldListingsAdapter:
    return EbaySoldListingsAdapter(
        adapter_config(
            ebay_api.base_url,
            extra={"host": "ebay.test", "max_results": 240, "price_ceiling": 100_000.0, "set_word_ratio": 0.6},
        ),
        rate_limiter=rate_limiter,
        transport=ebay_api.transport,
    )


@pytest.fixture
def price_tracker(tracker_api, set_resolver, rate_limiter) -> PokemonPriceTrackerAdapter:
    return PokemonPriceTrackerAdapter(
        adapter_config(tracker_api.base_url),
        set_resolver=set_resolver,
        rate_limiter=rate_limiter,
        transport=tracker_api.transport,
        min_interval_seconds=0,
    )


@pytest.fixture
def currency(rates_api) -> CurrencyService:
    sources = (
        RateSource("Primary", f"{rates_api.base_url}/primary", lambda data: data.get("rates", {}).get("INR")),
        RateSource("Secondary", f"{rates_api.base_url}/secondary", lambda data: data.get("inr")),
    )
    return CurrencyService(sources=sources, transport=rates_api.transport)


# -----------------------------------------------------------------------------
# Engine and HTTP client
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(
    tcgdex, justtcg, ebay, price_tracker, set_resolver, rate_limiter, currency
) -> AsyncGenerator[PriceAggregationEngine, None]:
    """Fresh engine with empty caches and no pacing delays."""
    engine = PriceAggregationEngine(
        tcgdex=tcgdex,
        justtcg=justtcg,
        ebay=ebay,
        price_tracker=price_tracker,
        set_resolver=set_resolver,
        cache=ResultCache(duration=4 * 60 * 60, max_size=100),
        rate_limiter=rate_limiter,
        pacing=PacingPolicy.immediate(),
        currency=currency,
    )
    yield engine
    await engine.close()


@pytest_asyncio.fixture
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client bound to the per-test engine."""
    app.dependency_overrides[get_engine] = lambda: engine

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Provider payloads
# -----------------------------------------------------------------------------

@pytest.fixture
def tcgdex_sets() -> list[dict]:
    return [
        {"id": "base1", "name": "Base Set", "logo": "https://assets.tcgdex.net/en/base/base1/logo", "cardCount": {"total": 102}},
        {"id": "base2", "name": "Jungle", "cardCount": {"total": 64}},
        {"id": "swsh7", "name": "Evolving Skies", "cardCount": {"total": 237}},
        {"id": "A1", "name": "Genetic Apex", "logo": "https://assets.tcgdex.net/en/tcgp/A1/logo"},
        {"id": "P-A", "name": "Promos-A", "symbol": "https://assets.tcgdex.net/univ/tcgp/P-A/symbol"},
    ]


@pytest.fixture
def charizard_card() -> dict:
    return {
        "id": "base1-4",
        "localId": "4",
        "name": "Charizard",
        "image": "https://assets.tcgdex.net/en/base/base1/4",
        "rarity": "Rare Holo",
        "types": ["Fire"],
        "set": {"id": "base1", "name": "Base Set"},
        "pricing": {
            "tcgplayer": {
                "holofoil": {"marketPrice": 350.0},
                "normal": {"marketPrice": 120.0},
            }
        },
    }


@pytest.fixture
def make_adapter_config() -> Callable[..., AdapterConfig]:
    """Factory for adapter configs in tests that build their own adapters."""
    return adapter_config


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleeper:
    """Sleeper that records requested waits instead of waiting."""

    def __init__(self, clock: FakeClock | None = None):
        self.waits: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper(clock) -> RecordingSleeper:
    return RecordingSleeper(clock)
