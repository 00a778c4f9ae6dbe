"""
Lowball price extraction from LLM evaluations.

The language model itself is an external collaborator: callers pass an async
``generate(listing) -> str`` function. This module bounds the fan-out over a
session's listings and parses the "Lowball: $N" token out of each answer.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from .config import config
from .models import Listing
from .store import ListingStore
from .utils import parse_int

logger = logging.getLogger(__name__)

Generate = Callable[[Listing], Awaitable[str]]

LOWBALL_RE = re.compile(r"Lowball:\s*(?:</strong>)?\s*\$([0-9,]+)")


@dataclass
class EvaluationOutcome:
    text: Optional[str] = None
    lowball_price: Optional[int] = None
    error: Optional[str] = None


def parse_lowball(text: Optional[str]) -> Optional[int]:
    """Dollar amount following the "Lowball:" label, e.g. "<strong>Lowball:</strong> $4,200" -> 4200."""
    if not text:
        return None
    m = LOWBALL_RE.search(text)
    if not m:
        return None
    return parse_int(m.group(1))


async def evaluate_listings(
    store: ListingStore,
    session_id: str,
    generate: Generate,
    max_concurrency: Optional[int] = None,
) -> Dict[str, EvaluationOutcome]:
    """
    Evaluate every stored listing of a session concurrently.

    At most ``max_concurrency`` calls run at once (``LLM_MAX_CONCURRENCY`` when
    not given). A failing call is recorded in its outcome and does not affect
    the others. Parsed lowball prices are attached to the stored listings.
    """
    if max_concurrency is None:
        max_concurrency = config.LLM_MAX_CONCURRENCY
    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    listings = store.listings(session_id)

    async def _one(listing: Listing) -> EvaluationOutcome:
        async with semaphore:
            try:
                text = await generate(listing)
            except Exception as e:
                logger.error(f"Error evaluating listing {listing.id}: {e}")
                return EvaluationOutcome(error=str(e))
        price = parse_lowball(text)
        if price is not None:
            store.attach_lowball(session_id, listing.id, price)
        return EvaluationOutcome(text=text, lowball_price=price)

    outcomes = await asyncio.gather(*(_one(lst) for lst in listings))
    logger.info(f">>> Evaluated {len(listings)} listings for session {session_id}")
    return {lst.id: outcome for lst, outcome in zip(listings, outcomes)}
