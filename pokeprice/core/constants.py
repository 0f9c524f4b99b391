"""
Core constants and enums for the PokePrice application.

Every matching heuristic used by the pricing adapters is kept here as a named
table so it can be tested and extended without touching the algorithms that
consume it. Bump ``NORMALIZATION_TABLE_VERSION`` whenever a table changes in
a way that alters matching results.
"""
import re
from enum import Enum

NORMALIZATION_TABLE_VERSION = 3


class Language(str, Enum):
    """Card languages supported by every provider's set lookup."""
    ENGLISH = "en"
    JAPANESE = "ja"
    KOREAN = "ko"
    CHINESE = "zh"
    FRENCH = "fr"
    GERMAN = "de"
    SPANISH = "es"
    ITALIAN = "it"
    PORTUGUESE = "pt"


class Provider(str, Enum):
    """External pricing providers, keyed by their rate-limit/queue slug."""
    TCGDEX = "tcgdex"
    JUSTTCG = "justtcg"
    EBAY = "ebay"
    POKEMON_PRICE_TRACKER = "pokemonpricetracker"


# Sentinels
NOT_AVAILABLE = "N/A"
UNKNOWN_SET = "Unknown Set"
UNKNOWN_SET_NAMES = frozenset({"", "unknown", "unknown set"})

# Source labels reported on PriceRecord.source
SOURCE_TCGDEX = "TCGplayer (TCGdex)"
SOURCE_TCGPLAYER = "TCGplayer"
SOURCE_JUSTTCG = "TCGplayer (JustTCG)"
SOURCE_JUSTTCG_FAILED = "JustTCG"
SOURCE_EBAY = "eBay"
SOURCE_POKEMON_PRICE_TRACKER = "Pokemon Price Tracker"


# ---------------------------------------------------------------------------
# Card name normalization
# ---------------------------------------------------------------------------

# "#4/102", "4/102", "#4"
CARD_NUMBER_SUFFIX_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\s*#?\d+/\d+"),
    re.compile(r"\s*#\d+"),
)
TRAILING_NUMBER_PATTERN = re.compile(r"\s+\d+$")

# Grading, finish and rarity qualifiers. Longer phrases first so that
# "Reverse Holo" is consumed before "Holo".
CARD_QUALIFIER_TERMS: tuple[str, ...] = (
    "Reverse Holo",
    "Non-Holo",
    "Cosmo Holo",
    "Ultra Rare",
    "Secret Rare",
    "Hyper Rare",
    "Rainbow Rare",
    "Gold Rare",
    "Amazing Rare",
    "Full Art",
    "Alternate Art",
    "Alt Art",
    "Prism Star",
    "Tag Team",
    "Near Mint",
    "1st Edition",
    "Shadowless",
    "Graded",
    "Holo",
    "Rare",
    "Promo",
    "Foil",
    "VMAX",
    "VSTAR",
    "GX",
    "Break",
    "Shiny",
    "Radiant",
    "Trainer",
    "Energy",
)

# Marketplace noise nouns.
MARKETPLACE_NOISE_TERMS: tuple[str, ...] = (
    "Complete Set",
    "Pokemon",
    "Pokémon",
    "Card",
    "TCG",
    "Sealed",
    "Lot",
    "Bundle",
    "Collection",
    "Booster",
    "Pack",
    "Box",
    "Case",
)

# Separators left dangling once qualifiers are removed ("Charizard - Holo").
DANGLING_SEPARATOR_PATTERN = re.compile(r"(?:(?<=\s)|^)[-–|,:/]+(?=\s|$)")


def build_term_pattern(terms: tuple[str, ...]) -> re.Pattern:
    """Compile a case-insensitive whole-word alternation of ``terms``."""
    ordered = sorted(terms, key=len, reverse=True)
    alternation = "|".join(re.escape(term) for term in ordered)
    return re.compile(rf"(?<![\w-])(?:{alternation})(?![\w-])", re.IGNORECASE)


CARD_QUALIFIER_PATTERN = build_term_pattern(CARD_QUALIFIER_TERMS)
MARKETPLACE_NOISE_PATTERN = build_term_pattern(MARKETPLACE_NOISE_TERMS)


# Known set names, matched against free-text titles. Ambiguous titles resolve
# to the first entry that matches, so named expansions are listed before the
# era patterns that would otherwise swallow them.
SET_TITLE_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        # Scarlet & Violet era
        r"Prismatic Evolutions",
        r"Surging Sparks",
        r"Stellar Crown",
        r"Shrouded Fable",
        r"Twilight Masquerade",
        r"Temporal Forces",
        r"Paldean Fates",
        r"Paradox Rift",
        r"Obsidian Flames",
        r"Paldea Evolved",
        # Sword & Shield era
        r"Crown Zenith",
        r"Silver Tempest",
        r"Lost Origin",
        r"Astral Radiance",
        r"Brilliant Stars",
        r"Fusion Strike",
        r"Celebrations",
        r"Evolving Skies",
        r"Chilling Reign",
        r"Battle Styles",
        r"Shining Fates",
        r"Vivid Voltage",
        r"Champion'?s Path",
        r"Darkness Ablaze",
        r"Rebel Clash",
        # Sun & Moon era
        r"Cosmic Eclipse",
        r"Hidden Fates",
        r"Unified Minds",
        r"Unbroken Bonds",
        r"Team Up",
        # XY era
        r"Evolutions",
        r"Furious Fists",
        # Wizards of the Coast era
        r"Team Rocket",
        r"Base Set 2",
        r"Base Set",
        r"Jungle",
        r"Fossil",
        # Eras, broadest last
        r"Scarlet\s*(?:&|and)?\s*Violet",
        r"Sword\s*(?:&|and)?\s*Shield",
        r"Sun\s*(?:&|and)?\s*Moon",
        r"Black\s*(?:&|and)?\s*White",
        r"\bXY\b",
    )
)


# ---------------------------------------------------------------------------
# Set resolution
# ---------------------------------------------------------------------------

# Trailing descriptor words removed to derive a subset "base name".
SET_DESCRIPTOR_SUFFIX_PATTERN = re.compile(
    r"\s*-?\s*(?:pokemon|tcg|gallery|base|expansion|subset)\s*$",
    re.IGNORECASE,
)

# TCGdex also lists Pokemon TCG Pocket (digital) sets, which never have
# physical-market prices.
POCKET_SET_ID_PATTERN = re.compile(r"^A\d+")
POCKET_ASSET_MARKER = "/tcgp/"


# ---------------------------------------------------------------------------
# Provider-specific matching
# ---------------------------------------------------------------------------

# Card-database proxy: finish preference when reading pricing.tcgplayer.
TCGDEX_PRICE_PREFERENCE: tuple[tuple[str, str], ...] = (
    ("holofoil", "Holofoil Market"),
    ("reverseHolofoil", "Reverse Holofoil Market"),
    ("normal", "Normal Market"),
)

# Aggregator with variants: the only condition treated as authoritative.
NEAR_MINT_VARIANT_PATTERN = re.compile(r"near[-\s_]?mint", re.IGNORECASE)

# Sold listings: professional grading services. TAG and ACE are also words in
# card names ("Tag Team", "ACE SPEC"), so they only count when followed by a
# grade.
GRADING_SERVICE_TERMS: tuple[str, ...] = ("psa", "cgc", "bgs", "sgc")
GRADING_SERVICE_PATTERN = build_term_pattern(GRADING_SERVICE_TERMS)
GRADING_SCORE_PATTERN = re.compile(
    r"\b(?:psa|cgc|bgs|sgc|tag|ace)\s*\d+(?:\.\d)?\b", re.IGNORECASE
)

# Sold listings: bulk/sealed product that never prices a single card.
BULK_LISTING_TERMS: tuple[str, ...] = (
    "lot",
    "bundle",
    "collection",
    "booster",
    "pack",
    "box",
    "sealed",
    "case",
    "complete set",
)
BULK_LISTING_PATTERN = build_term_pattern(BULK_LISTING_TERMS)

# Sold listings: explicit card numbers in titles.
LISTING_NUMBER_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\b(\d+)/\d+\b"),
    re.compile(r"#(\d+)\b"),
    re.compile(r"\bno\.?\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\bnumber\s+(\d+)\b", re.IGNORECASE),
)

# Sold listings: platform boilerplate stripped from evidence titles.
LISTING_BOILERPLATE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"Opens in a new window or tab", re.IGNORECASE),
    re.compile(r"^New Listing", re.IGNORECASE),
)
MAX_EVIDENCE_LISTINGS = 5

# Price tracker: first-word fragment that marks a "Team X's Y" name.
TEAM_QUALIFIER_MARKER = "team"
PRICE_TRACKER_RESULT_LIMIT = 5
