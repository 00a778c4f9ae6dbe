"""
Search-criteria bounds applied to classified listings.
"""
import logging
from typing import Iterable, List, Optional

from .models import Listing, SearchParams

logger = logging.getLogger(__name__)


def check_constraints(listing: Listing, params: SearchParams) -> Optional[str]:
    """Return why ``listing`` violates ``params``, or None to keep it. Unknown fields never drop."""
    if listing.year is not None and not (params.year_min <= listing.year <= params.year_max):
        return f"year {listing.year} outside range {params.year_min}-{params.year_max}"
    if listing.mileage is not None and listing.mileage > params.max_mileage:
        return f"mileage {listing.mileage} over limit {params.max_mileage}"
    if params.max_price and listing.price is not None and listing.price > params.max_price:
        return f"price ${listing.price} over limit ${params.max_price}"
    return None


def apply_constraints(listings: Iterable[Listing], params: SearchParams) -> List[Listing]:
    kept = []
    for lst in listings:
        reason = check_constraints(lst, params)
        if reason:
            logger.info(f"Skipping - {reason}")
            continue
        kept.append(lst)
    return kept
