"""
API route handlers for scrape runs and session listings.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from miata_scraper.evaluation import parse_lowball
from miata_scraper.exceptions import (
    AuthenticationError,
    InvalidSearchParamsError,
    NavigationError,
    NavigationTimeoutError,
    NoListingsFoundError,
    NoValidListingsError,
    ScraperError,
)
from miata_scraper.progress import ProgressChannel
from miata_scraper.store import ListingStore

from ..config import config
from ..deps import get_progress, get_runner, get_search_params, get_store
from ..models import (
    EvaluationIn, EvaluationOut, ListingOut, ScrapeMoreResponse, ScrapeResponse, SearchRequest
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["listings"])

ERROR_STATUS = [
    (AuthenticationError, 401),
    (InvalidSearchParamsError, 422),
    (NoListingsFoundError, 404),
    (NoValidListingsError, 404),
    (NavigationTimeoutError, 504),
    (NavigationError, 502),
]


def scrape_error(exc: ScraperError) -> HTTPException:
    """Map a run-level scraper failure to an HTTP error."""
    for kind, status in ERROR_STATUS:
        if isinstance(exc, kind):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@router.post("/sessions/{session_id}/scrape", response_model=ScrapeResponse)
async def scrape(
    session_id: str,
    search: SearchRequest,
    progress: ProgressChannel = Depends(get_progress),
    store: ListingStore = Depends(get_store),
    runner=Depends(get_runner),
    search_params: dict = Depends(get_search_params),
):
    """Run a scrape and replace the session's stored listings with its results."""
    params = search.to_params()
    search_params[session_id] = params
    progress.reset(session_id)
    try:
        result = await runner(params, session_id, progress)
    except ScraperError as e:
        logger.error(f"Scrape failed for session {session_id}: {e}")
        raise scrape_error(e)

    store.clear(session_id)
    for listing in result.listings:
        store.put(session_id, listing)
    return ScrapeResponse(
        count=len(result.listings),
        listings=[ListingOut.from_listing(lst) for lst in result.listings],
    )


@router.post("/sessions/{session_id}/scrape-more", response_model=ScrapeMoreResponse)
async def scrape_more(
    session_id: str,
    progress: ProgressChannel = Depends(get_progress),
    store: ListingStore = Depends(get_store),
    runner=Depends(get_runner),
    search_params: dict = Depends(get_search_params),
):
    """Scrape a few more listings with the last search and merge them into the session."""
    previous = search_params.get(session_id)
    if previous is None:
        raise HTTPException(status_code=400, detail="No previous search parameters found")

    params = previous.with_limit(config.SCRAPE_MORE_LIMIT)
    progress.reset(session_id)
    try:
        result = await runner(params, session_id, progress)
    except ScraperError as e:
        logger.error(f"Scrape-more failed for session {session_id}: {e}")
        raise scrape_error(e)

    merged = store.merge(session_id, result.listings)
    return ScrapeMoreResponse(
        results=[ListingOut.from_listing(lst) for lst in result.listings if lst.id in merged.inserted],
        new_count=merged.new_count,
        total_count=merged.total_count,
    )


@router.get("/sessions/{session_id}/listings", response_model=List[ListingOut])
async def get_listings(session_id: str, store: ListingStore = Depends(get_store)):
    """Get every listing stored for a session."""
    return [ListingOut.from_listing(lst) for lst in store.listings(session_id)]


@router.get("/sessions/{session_id}/listings/{listing_id}", response_model=ListingOut)
async def get_listing(session_id: str, listing_id: str, store: ListingStore = Depends(get_store)):
    """Get a specific listing by ID."""
    listing = store.get(session_id, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")
    return ListingOut.from_listing(listing)


@router.post("/sessions/{session_id}/listings/{listing_id}/evaluation", response_model=EvaluationOut)
async def attach_evaluation(
    session_id: str,
    listing_id: str,
    evaluation: EvaluationIn,
    store: ListingStore = Depends(get_store),
):
    """Parse the lowball price out of an LLM evaluation and attach it to the listing."""
    if store.get(session_id, listing_id) is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")

    price = parse_lowball(evaluation.text)
    if price is not None:
        store.attach_lowball(session_id, listing_id, price)
    return EvaluationOut(listing_id=listing_id, lowball_price=price)
