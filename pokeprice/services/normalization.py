"""
Card name and set normalization.

Pure functions that turn free-text marketplace titles into the identity
fields the pricing adapters match on. All term lists live in
``pokeprice.core.constants``.
"""
import re

from pokeprice.core.constants import (
    CARD_NUMBER_SUFFIX_PATTERNS,
    CARD_QUALIFIER_PATTERN,
    DANGLING_SEPARATOR_PATTERN,
    MARKETPLACE_NOISE_PATTERN,
    SET_TITLE_PATTERNS,
    TRAILING_NUMBER_PATTERN,
    UNKNOWN_SET,
    UNKNOWN_SET_NAMES,
)

_WHITESPACE = re.compile(r"\s+")
_LEADING_DIGITS = re.compile(r"^(\d+)")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _strip_once(name: str) -> str:
    for pattern in CARD_NUMBER_SUFFIX_PATTERNS:
        name = pattern.sub(" ", name)
    name = TRAILING_NUMBER_PATTERN.sub("", _collapse(name))
    name = CARD_QUALIFIER_PATTERN.sub(" ", name)
    name = MARKETPLACE_NOISE_PATTERN.sub(" ", name)
    name = DANGLING_SEPARATOR_PATTERN.sub(" ", name)
    return _collapse(name)


def extract_card_name(title: str | None) -> str:
    """
    Isolate the canonical card name from a product title.

    Removes card-number tokens, grading/finish/rarity qualifiers and
    marketplace noise words, then collapses whitespace. Passes repeat until
    nothing changes, so the result is stable under a second application.

    Args:
        title: Free-text title, e.g. "Charizard 4/102 Holo Rare Pokemon Card".

    Returns:
        The cleaned name ("Charizard"), or the trimmed title if stripping
        would leave nothing.
    """
    if not title:
        return ""

    original = _collapse(title)
    name = original
    while True:
        stripped = _strip_once(name)
        if stripped == name:
            break
        name = stripped

    return name or original


def extract_set_from_title(title: str | None) -> str:
    """
    Best-guess set name mentioned in a title.

    Patterns are tried in table order and the first hit is returned as it
    appears in the title. Titles naming two sets resolve to whichever is
    listed first.
    """
    if not title:
        return UNKNOWN_SET

    for pattern in SET_TITLE_PATTERNS:
        match = pattern.search(title)
        if match:
            return match.group(0)

    return UNKNOWN_SET


def normalize_card_number(number: str | None) -> str:
    """
    Canonical comparable form of a card number.

    "004/102" -> "4", "GG44" -> "gg44", "000" -> "0".
    """
    if not number:
        return ""
    head = str(number).strip().split("/")[0].strip().lower()
    if not head:
        return ""
    return head.lstrip("0") or "0"


def numeric_card_number(number: str | None) -> int | None:
    """Leading integer of a card number, or None when it has no digits up front."""
    match = _LEADING_DIGITS.match(normalize_card_number(number))
    if not match:
        return None
    return int(match.group(1))


def card_numbers_match(candidate: str | None, target: str | None) -> bool:
    """
    Compare two card numbers.

    Equal normalized forms always match (covers "GG44" style numbers).
    Otherwise a purely numeric target matches a candidate with the same
    numeric prefix; candidates with no numeric prefix never match.
    """
    left = normalize_card_number(candidate)
    right = normalize_card_number(target)
    if not left or not right:
        return False
    if left == right:
        return True
    if not right.isdigit():
        return False
    candidate_number = numeric_card_number(left)
    return candidate_number is not None and candidate_number == int(right)


def is_known_set(set_name: str | None) -> bool:
    """False for missing names and the "Unknown Set" sentinel."""
    if set_name is None:
        return False
    return set_name.strip().lower() not in UNKNOWN_SET_NAMES


def significant_words(text: str | None) -> list[str]:
    """Lower-cased words longer than two characters."""
    if not text:
        return []
    return [word for word in text.lower().split() if len(word) > 2]
