"""
Facebook Marketplace Miata Scraper Package
"""
from .models import Listing, SearchParams, ProgressEvent, Stage, Transmission
from .exceptions import (
    ScraperError,
    InvalidSearchParamsError,
    AuthenticationError,
    NavigationError,
    NavigationTimeoutError,
    NoListingsFoundError,
    NoValidListingsError,
    PerListingExtractionError,
    ScrapeCancelledError,
)
from .extraction import PageSnapshot, extract_fields
from .classifier import classify, is_vehicle_related, is_parts_only
from .filters import apply_constraints, check_constraints
from .navigation import (
    CancellationToken,
    Credentials,
    NavigationController,
    Pacing,
    ScrapeResult,
    build_search_url,
    run_scrape,
)
from .progress import ProgressChannel
from .store import ListingStore, MergeResult
from .evaluation import evaluate_listings, parse_lowball
from .utils import init_logger, now_iso

__version__ = "1.0.0"

__all__ = [
    "Listing",
    "SearchParams",
    "ProgressEvent",
    "Stage",
    "Transmission",
    "ScraperError",
    "InvalidSearchParamsError",
    "AuthenticationError",
    "NavigationError",
    "NavigationTimeoutError",
    "NoListingsFoundError",
    "NoValidListingsError",
    "PerListingExtractionError",
    "ScrapeCancelledError",
    "PageSnapshot",
    "extract_fields",
    "classify",
    "is_vehicle_related",
    "is_parts_only",
    "apply_constraints",
    "check_constraints",
    "CancellationToken",
    "Credentials",
    "NavigationController",
    "Pacing",
    "ScrapeResult",
    "build_search_url",
    "run_scrape",
    "ProgressChannel",
    "ListingStore",
    "MergeResult",
    "evaluate_listings",
    "parse_lowball",
    "init_logger",
    "now_iso",
]
