"""
Dependencies handing the process-wide service objects to route handlers.
"""
from fastapi import Request

from miata_scraper.progress import ProgressChannel
from miata_scraper.store import ListingStore


def get_progress(request: Request) -> ProgressChannel:
    return request.app.state.progress


def get_store(request: Request) -> ListingStore:
    return request.app.state.store


def get_runner(request: Request):
    """Coroutine function with the signature of ``miata_scraper.run_scrape``."""
    return request.app.state.scrape_runner


def get_search_params(request: Request) -> dict:
    """Last search parameters used per session, for scrape-more."""
    return request.app.state.search_params
