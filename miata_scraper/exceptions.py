"""Custom exceptions for the Miata marketplace scraper."""
from typing import Optional


class ScraperError(Exception):
    """Base exception for scraper-related errors."""
    pass


class InvalidSearchParamsError(ScraperError, ValueError):
    """Search criteria rejected before any navigation happens."""
    pass


class AuthenticationError(ScraperError):
    """Login failed, hit a 2FA challenge, or the account is checkpointed."""
    pass


class NavigationError(ScraperError):
    """The browser failed to load the login or search page, or crashed mid-run."""
    pass


class NavigationTimeoutError(NavigationError):
    """The login or search navigation did not finish in time."""
    pass


class NoListingsFoundError(ScraperError):
    """None of the result container selectors matched anything."""

    def __init__(self, message: str, screenshot_path: Optional[str] = None):
        super().__init__(message)
        self.screenshot_path = screenshot_path


class NoValidListingsError(ScraperError):
    """Result links were found but none had the listing URL shape."""
    pass


class PerListingExtractionError(ScraperError):
    """Processing a single listing page failed; the run carries on."""

    def __init__(self, url: str, index: int, cause: BaseException):
        super().__init__(f"listing {index} ({url}) failed: {cause}")
        self.url = url
        self.index = index
        self.cause = cause


class ScrapeCancelledError(ScraperError):
    """The run was cancelled between two listings."""
    pass
