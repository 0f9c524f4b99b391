"""
Ordered provider fallback.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from pokeprice.core.constants import SOURCE_TCGPLAYER
from pokeprice.core.request_queue import PacingPolicy
from pokeprice.schemas.pricing import PriceRecord
from pokeprice.services.pricing.base import CardQuery

logger = structlog.get_logger()


def _always(query: CardQuery) -> bool:
    return True


@dataclass
class FallbackStep:
    """One provider lookup in a fallback chain."""
    name: str
    run: Callable[[CardQuery], Awaitable[PriceRecord]]
    applies: Callable[[CardQuery], bool] = _always


class FallbackChain:
    """
    Try steps in order until one returns a priced record.

    Each step finishes before the next starts, with the policy's gap in
    between. When no step produces a price, the last "N/A" record is
    returned so its note explains the final failure.
    """

    def __init__(self, steps: list[FallbackStep], pacing: Optional[PacingPolicy] = None):
        self.steps = steps
        self.pacing = pacing or PacingPolicy()

    async def resolve(self, query: CardQuery) -> PriceRecord:
        last: Optional[PriceRecord] = None
        attempted = 0

        for step in self.steps:
            if not step.applies(query):
                logger.debug("Fallback step skipped", step=step.name)
                continue

            if attempted:
                await self.pacing.between_steps()
            attempted += 1

            record = await step.run(query)
            if record.is_priced:
                return record

            logger.debug("Fallback step returned no price", step=step.name, note=record.note)
            last = record

        return last or PriceRecord.unavailable(SOURCE_TCGPLAYER, note="No provider available")
