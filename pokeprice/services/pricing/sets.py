"""
Set name resolution across provider ID spaces.

Each provider publishes its own set catalog per language. Catalogs are
fetched once per (provider, language) and kept for the lifetime of the
resolver; set catalogs only grow, so nothing is invalidated.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import structlog

from pokeprice.core.constants import SET_DESCRIPTOR_SUFFIX_PATTERN, Language
from pokeprice.services.normalization import is_known_set
from pokeprice.services.pricing.base import ProviderError

logger = structlog.get_logger()


@dataclass(frozen=True)
class SetRecord:
    """One set in one provider's catalog."""
    provider: str
    id: str
    name: str
    language: Language = Language.ENGLISH
    logo: Optional[str] = None
    symbol: Optional[str] = None
    card_count: Optional[int] = None


class SetCatalogSource(ABC):
    """Anything that can list a provider's sets for a language."""

    @abstractmethod
    async def fetch_set_catalog(self, language: Language) -> list[SetRecord]:
        """
        Fetch the full set catalog.

        Raises:
            ProviderError: If the catalog could not be fetched.
        """
        pass


def _comparable(name: str) -> str:
    return name.replace('"', "").replace("'", "").strip().lower()


class SetResolver:
    """
    Maps human-readable set names to provider set IDs.

    Ambiguous names resolve to the first catalog entry that matches, in the
    provider's own catalog order.

    Usage:
        resolver = SetResolver({"tcgdex": tcgdex_adapter})
        set_id = await resolver.resolve_set_id("tcgdex", "Base Set", Language.ENGLISH)
    """

    def __init__(self, sources: Optional[dict[str, SetCatalogSource]] = None):
        self._sources: dict[str, SetCatalogSource] = dict(sources or {})
        self._catalogs: dict[tuple[str, Language], list[SetRecord]] = {}
        self._locks: dict[tuple[str, Language], asyncio.Lock] = {}

    def register(self, provider: str, source: SetCatalogSource) -> None:
        """Attach the catalog source for ``provider``."""
        self._sources[provider] = source

    def is_cached(self, provider: str, language: Language) -> bool:
        return (provider, language) in self._catalogs

    async def catalog(self, provider: str, language: Language = Language.ENGLISH) -> list[SetRecord]:
        """
        Return the cached catalog, fetching it on first use.

        Concurrent first callers share a single fetch. A failed fetch returns
        an empty list and is not cached, so the next call retries.
        """
        key = (provider, language)
        cached = self._catalogs.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._catalogs.get(key)
            if cached is not None:
                return cached

            source = self._sources.get(provider)
            if source is None:
                logger.warning("No set catalog source registered", provider=provider)
                return []

            try:
                records = await source.fetch_set_catalog(language)
            except ProviderError as e:
                logger.warning(
                    "Set catalog fetch failed",
                    provider=provider,
                    language=language.value,
                    error=str(e),
                )
                return []

            self._catalogs[key] = records
            logger.info(
                "Set catalog cached",
                provider=provider,
                language=language.value,
                sets=len(records),
            )
            return records

    async def resolve_set_id(
        self,
        provider: str,
        set_name: Optional[str],
        language: Language = Language.ENGLISH,
    ) -> Optional[str]:
        """
        Resolve a set name to the provider's set ID.

        Tries an exact case-insensitive match, then containment in either
        direction. Returns None when nothing matches; callers move on to the
        next provider.
        """
        if not is_known_set(set_name):
            return None

        wanted = _comparable(set_name)
        if not wanted:
            return None

        records = await self.catalog(provider, language)

        for record in records:
            if _comparable(record.name) == wanted:
                logger.debug("Set exact match", provider=provider, set_name=set_name, set_id=record.id)
                return record.id

        for record in records:
            candidate = _comparable(record.name)
            if candidate and (wanted in candidate or candidate in wanted):
                logger.debug("Set partial match", provider=provider, set_name=set_name, set_id=record.id, matched=record.name)
                return record.id

        logger.info("No set match", provider=provider, set_name=set_name, language=language.value)
        return None

    async def find_related_subsets(
        self,
        provider: str,
        set_id: str,
        language: Language = Language.ENGLISH,
    ) -> list[str]:
        """
        IDs of releases that share a lineage with ``set_id``.

        A related set either starts with the origin's full name and is longer
        ("Crown Zenith Galarian Gallery"), or contains the origin's base name
        (the name without a trailing descriptor word) without being equal to it.
        """
        records = await self.catalog(provider, language)
        origin = next((record for record in records if record.id == set_id), None)
        if origin is None or not origin.name:
            return []

        origin_name = origin.name.lower()
        base_name = SET_DESCRIPTOR_SUFFIX_PATTERN.sub("", origin_name).strip()

        related = []
        for record in records:
            if record.id == set_id or not record.name:
                continue
            name = record.name.lower()
            is_extension = name.startswith(origin_name) and name != origin_name
            shares_base = bool(base_name) and base_name in name and name != base_name
            if is_extension or shares_base:
                related.append(record.id)

        if related:
            logger.debug("Related subsets found", provider=provider, set_id=set_id, subsets=related)
        return related
