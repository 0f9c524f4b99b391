"""Tests for the price aggregation engine."""
import json
from unittest.mock import AsyncMock, PropertyMock, patch

import httpx
import pytest

from pokeprice.core.constants import (
    SOURCE_EBAY,
    SOURCE_JUSTTCG_FAILED,
    SOURCE_TCGDEX,
    SOURCE_TCGPLAYER,
    Language,
)
from pokeprice.core.request_queue import PacingPolicy
from pokeprice.services.pricing.adapters.justtcg import JustTCGAdapter
from pokeprice.services.pricing.base import CardQuery
from pokeprice.services.pricing.engine import PriceAggregationEngine, filter_cards

CHARIZARD_QUERY = CardQuery(title="Charizard", card_number="4", set_name="Base Set")

BRIEF_CARDS = [
    {"id": "base1-4", "localId": "4", "name": "Charizard", "rarity": "Rare Holo", "types": ["Fire"]},
    {"id": "base4-4", "localId": "4", "name": "Charizard", "rarity": "Rare", "types": ["Fire"]},
    {"id": "ex13-100", "localId": "100", "name": "Dark Charizard", "rarity": "Rare Holo", "types": ["Darkness"]},
]


def justtcg_charizard_without_near_mint(justtcg_api):
    justtcg_api.add("GET", "/sets", {"data": [{"id": "base-set-pokemon", "name": "Base Set"}]})
    justtcg_api.add(
        "GET",
        "/cards",
        {
            "data": [
                {
                    "id": "pokemon-base-set-charizard-holo-rare",
                    "name": "Charizard",
                    "number": "4/102",
                    "variants": [{"id": "pokemon-base-set-charizard-holo-rare-damaged-holofoil", "price": 90.0}],
                }
            ]
        },
    )


def card_calls(api):
    return len(api.calls("GET", "/en/cards"))


class TestResolvePrice:
    """Tests for the strict TCGdex -> JustTCG chain."""

    @pytest.mark.asyncio
    async def test_tcgdex_price_used_first(self, engine, tcgdex_api, justtcg_api, tcgdex_sets, charizard_card):
        tcgdex_api.add("GET", "/en/sets", tcgdex_sets)
        tcgdex_api.add("GET", "/en/cards/base1-4", charizard_card)

        record = await engine.resolve_price(CHARIZARD_QUERY)

        assert record.average_price == 350.0
        assert record.source == SOURCE_TCGDEX
        assert justtcg_api.requests == []

    @pytest.mark.asyncio
    async def test_set_missing_everywhere_ends_not_available(self, engine, tcgdex_api, justtcg_api, tcgdex_sets):
        """Charizard / Base Set: TCGdex has no such set, JustTCG has no near-mint copy."""
        tcgdex_api.add("GET", "/en/sets", [s for s in tcgdex_sets if s["id"] != "base1"])
        justtcg_charizard_without_near_mint(justtcg_api)

        record = await engine.resolve_price(CHARIZARD_QUERY)

        assert record.average_price == "N/A"
        assert record.source == SOURCE_JUSTTCG_FAILED
        assert record.note == "No Near-Mint variant found"
        assert tcgdex_api.calls("GET", "/en/sets")
        assert justtcg_api.calls("GET", "/cards")

    @pytest.mark.asyncio
    async def test_fallback_skipped_without_credential(self, engine, tcgdex_api, justtcg_api, tcgdex_sets):
        tcgdex_api.add("GET", "/en/sets", tcgdex_sets)

        with patch.object(JustTCGAdapter, "is_configured", new_callable=PropertyMock, return_value=False):
            record = await engine.resolve_price(CHARIZARD_QUERY)

        assert record.source == SOURCE_TCGPLAYER
        assert record.note == "Card not found in TCGdex (base1-4)"
        assert justtcg_api.requests == []

    @pytest.mark.asyncio
    async def test_fallback_skipped_without_set_and_number(self, engine, tcgdex_api, justtcg_api, charizard_card):
        charizard_card["pricing"] = None
        tcgdex_api.add("GET", "/en/cards/base1-4", charizard_card)

        record = await engine.resolve_price(CardQuery(title="Charizard", card_id="base1-4"))

        assert record.note == "Price unavailable"
        assert justtcg_api.requests == []

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_not_available(self, engine):
        with patch.object(engine.strict_chain, "resolve", AsyncMock(side_effect=RuntimeError("bug"))):
            record = await engine.resolve_price(CHARIZARD_QUERY)

        assert record.average_price == "N/A"
        assert record.note == "Lookup failed"


class TestResolveAllPrices:
    """Tests for the side-by-side provider bundle."""

    @pytest.mark.asyncio
    async def test_every_provider_reported(
        self, engine, tcgdex_api, ebay_api, tracker_api, tcgdex_sets, charizard_card
    ):
        tcgdex_api.add("GET", "/en/sets", tcgdex_sets)
        tcgdex_api.add("GET", "/en/cards/base1-4", charizard_card)
        ebay_api.add("POST", "/findCompletedItems", {"products": [{"title": "Charizard 4/102 Base Set Holo", "sale_price": 400}]})
        tracker_api.add("GET", "/cards", {"data": [{"name": "Charizard", "cardNumber": "4", "prices": {"market": 380.0}}]})

        bundle = await engine.resolve_all_prices(CHARIZARD_QUERY)

        assert bundle.tcg_player.average_price == 350.0
        assert bundle.ebay.average_price == 400.0
        assert bundle.pokemon_price_tracker.average_price == 380.0

    @pytest.mark.asyncio
    async def test_set_inferred_from_title(self, engine, ebay_api, tracker_api):
        await engine.resolve_all_prices(CardQuery(title="Umbreon VMAX 215/203 Evolving Skies", card_number="215"))

        keywords = json.loads(ebay_api.requests[0].content)["keywords"]
        assert keywords.endswith("215 Evolving Skies")
        assert tracker_api.requests[0].url.params["set"] == "Evolving Skies"

    @pytest.mark.asyncio
    async def test_one_provider_crashing_does_not_sink_the_bundle(
        self, engine, tracker_api
    ):
        tracker_api.add("GET", "/cards", {"data": [{"name": "Pikachu", "cardNumber": "58", "prices": {"market": 3.0}}]})

        with patch.object(engine.ebay, "fetch_sold_listings_price", AsyncMock(side_effect=KeyError("title"))):
            bundle = await engine.resolve_all_prices(CardQuery(title="Pikachu", card_number="58", set_name="Jungle"))

        assert bundle.ebay.source == SOURCE_EBAY
        assert bundle.ebay.note == "Lookup failed"
        assert bundle.pokemon_price_tracker.average_price == 3.0
        assert bundle.tcg_player.average_price == "N/A"


class TestSearchCards:
    """Tests for card listing search and its result cache."""

    @pytest.mark.asyncio
    async def test_query_or_set_required(self, engine):
        with pytest.raises(ValueError):
            await engine.search_cards()
        with pytest.raises(ValueError):
            await engine.search_cards(query="  ", set_id="all")

    @pytest.mark.asyncio
    async def test_identity_search_cached(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS)

        first = await engine.search_cards(query="Charizard")
        second = await engine.search_cards(query="charizard")

        assert [c.id for c in first] == ["base1-4", "base4-4", "ex13-100"]
        assert second == first
        assert card_calls(tcgdex_api) == 1
        assert first[0].pricing.tcg_player.note == "Pricing not loaded"

    @pytest.mark.asyncio
    async def test_any_filter_spellings_share_cache_slot(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS)

        first = await engine.search_cards(query="Charizard")
        await engine.search_cards(query="Charizard", rarity="all", card_type="")
        await engine.search_cards(query="Charizard", rarity="  ALL ", card_type="all")

        assert card_calls(tcgdex_api) == 1
        assert len(engine.cache) == 1
        assert len(first) == 3

    @pytest.mark.asyncio
    async def test_priced_search_served_from_cache(self, engine, tcgdex_api, ebay_api, tracker_api, charizard_card):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS[:1])
        tcgdex_api.add("GET", "/en/cards/base1-4", charizard_card)

        first = await engine.search_cards(query="Charizard", include_pricing=True)
        calls_after_first = [len(api.requests) for api in (tcgdex_api, ebay_api, tracker_api)]
        second = await engine.search_cards(query="Charizard", include_pricing=True)

        assert first[0].pricing.tcg_player.average_price == 350.0
        assert first[0].card_set.name == "Base Set"
        assert second == first
        assert [len(api.requests) for api in (tcgdex_api, ebay_api, tracker_api)] == calls_after_first

    @pytest.mark.asyncio
    async def test_all_unpriced_search_not_cached(self, engine, tcgdex_api, justtcg_api, charizard_card):
        charizard_card["pricing"] = {}
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS[:1])
        tcgdex_api.add("GET", "/en/cards/base1-4", charizard_card)

        first = await engine.search_cards(query="Charizard", include_pricing=True)
        await engine.search_cards(query="Charizard", include_pricing=True)

        assert not first[0].pricing.has_any_price
        assert card_calls(tcgdex_api) == 2
        assert len(justtcg_api.calls("GET", "/sets")) == 2

    @pytest.mark.asyncio
    async def test_pricing_flag_gets_its_own_cache_slot(self, engine, tcgdex_api, charizard_card):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS[:1])
        tcgdex_api.add("GET", "/en/cards/base1-4", charizard_card)

        await engine.search_cards(query="Charizard")
        priced = await engine.search_cards(query="Charizard", include_pricing=True)

        assert card_calls(tcgdex_api) == 2
        assert priced[0].pricing.tcg_player.is_priced

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS)

        await engine.search_cards(query="Charizard")
        await engine.search_cards(query="Charizard", refresh=True)
        await engine.search_cards(query="Charizard")

        assert card_calls(tcgdex_api) == 2

    @pytest.mark.asyncio
    async def test_search_by_set_with_filters(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/en/sets/base1", {"id": "base1", "cards": BRIEF_CARDS})

        cards = await engine.search_cards(set_id="base1", rarity="holo", card_type="fire")

        assert [c.id for c in cards] == ["base1-4"]
        assert card_calls(tcgdex_api) == 0

    @pytest.mark.asyncio
    async def test_result_limit(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS)
        engine.search_limit = 2

        cards = await engine.search_cards(query="Charizard")

        assert len(cards) == 2

    @pytest.mark.asyncio
    async def test_provider_failure_returns_empty_and_is_cached_nowhere(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/en/cards", {"error": "boom"}, status=500)

        assert await engine.search_cards(query="Charizard") == []
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS)
        assert len(await engine.search_cards(query="Charizard")) == 3

    @pytest.mark.asyncio
    async def test_batch_pricing_is_staggered(self, engine, tcgdex_api, sleeper):
        tcgdex_api.add("GET", "/en/cards", BRIEF_CARDS)
        engine.pacing = PacingPolicy(batch_stagger_seconds=0.05, provider_gap_seconds=0, sleeper=sleeper)

        await engine.search_cards(query="Charizard", include_pricing=True)

        assert sorted(sleeper.waits) == [pytest.approx(0.05), pytest.approx(0.1)]

    @pytest.mark.asyncio
    async def test_language_passed_through(self, engine, tcgdex_api):
        tcgdex_api.add("GET", "/ja/cards", [{"id": "sv2a-6", "localId": "006", "name": "リザードンex"}])

        cards = await engine.search_cards(query="リザードン", language=Language.JAPANESE)

        assert cards[0].id == "sv2a-6"


def test_filter_cards():
    assert filter_cards(BRIEF_CARDS, rarity="all", card_type="") == BRIEF_CARDS
    assert [c["id"] for c in filter_cards(BRIEF_CARDS, card_type="Darkness")] == ["ex13-100"]
    assert [c["id"] for c in filter_cards(BRIEF_CARDS, rarity="Rare")] == ["base1-4", "base4-4", "ex13-100"]


def test_search_cache_key_includes_pricing_flag():
    plain = PriceAggregationEngine.search_cache_key("Charizard", None, None, None, Language.ENGLISH, False)
    priced = PriceAggregationEngine.search_cache_key("Charizard", None, None, None, Language.ENGLISH, True)

    assert plain != priced
    assert plain == "search:charizard::::en:false"


@pytest.mark.asyncio
async def test_list_sets(engine, tcgdex_api, tcgdex_sets):
    tcgdex_api.add("GET", "/en/sets", tcgdex_sets)

    sets = await engine.list_sets(Language.ENGLISH)
    await engine.list_sets(Language.ENGLISH)

    assert [s.id for s in sets] == ["base1", "base2", "swsh7"]
    assert len(tcgdex_api.requests) == 1


@pytest.mark.asyncio
async def test_japanese_sets_from_price_tracker(engine, tcgdex_api, tracker_api):
    tracker_api.add(
        "GET",
        "/sets",
        {"data": [{"tcgPlayerId": "m2-inferno-x", "name": "Inferno X"}, {"tcgPlayerId": "sv1s", "name": "Scarlet ex"}]},
    )
    tcgdex_api.add("GET", "/ja/sets", [{"id": "M2", "name": "Inferno X", "logo": "https://assets.tcgdex.net/ja/M/M2/logo"}])

    sets = await engine.list_sets(Language.JAPANESE)

    assert [(s.provider, s.id) for s in sets] == [("pokemonpricetracker", "m2-inferno-x"), ("pokemonpricetracker", "sv1s")]
    assert sets[0].logo == "https://assets.tcgdex.net/ja/M/M2/logo"
    assert sets[1].logo is None


@pytest.mark.asyncio
async def test_japanese_sets_fall_back_to_tcgdex(engine, tcgdex_api, tracker_api):
    tracker_api.add("GET", "/sets", {"error": "boom"}, status=500)
    tcgdex_api.add("GET", "/ja/sets", [{"id": "SV1S", "name": "Scarlet ex"}])

    sets = await engine.list_sets(Language.JAPANESE)

    assert [(s.provider, s.id) for s in sets] == [("tcgdex", "SV1S")]
    assert len(tracker_api.calls("GET", "/sets")) == 1


@pytest.mark.asyncio
async def test_list_set_cards(engine, tcgdex_api):
    tcgdex_api.add("GET", "/en/sets/base1", {"id": "base1", "name": "Base Set", "cards": BRIEF_CARDS[:2]})

    cards = await engine.list_set_cards("base1")

    assert [c.id for c in cards] == ["base1-4", "base4-4"]
    assert all(c.pricing is None for c in cards)


@pytest.mark.asyncio
async def test_create_builds_engine_from_settings():
    engine = PriceAggregationEngine.create(
        pacing=PacingPolicy.immediate(),
        transport=httpx.MockTransport(lambda request: httpx.Response(404)),
    )

    assert engine.tcgdex.is_configured
    assert engine.tcgdex.set_resolver is engine.justtcg.set_resolver
    assert engine.tcgdex.rate_limiter is engine.ebay.rate_limiter
    await engine.close()
