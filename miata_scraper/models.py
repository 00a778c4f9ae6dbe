"""
Data models for the Miata marketplace scraper.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional

from .exceptions import InvalidSearchParamsError
from .utils import now_iso


DESCRIPTION_MAX_CHARS = 500
MAX_IMAGES = 2


class Transmission(str, Enum):
    MANUAL = "Manual"
    AUTOMATIC = "Automatic"
    UNKNOWN = "Unknown"


class Stage(str, Enum):
    """Pipeline stages, in the order a run walks through them."""

    INITIALIZING = "initializing"
    BROWSER_START = "browser_start"
    LOGGING_IN = "logging_in"
    NAVIGATING = "navigating"
    SEARCHING = "searching"
    EXTRACTING = "extracting"
    PROCESSING = "processing"
    COMPLETE = "complete"


@dataclass
class Listing:
    """Represents a Marketplace listing that passed classification and filtering."""

    id: str
    title: str
    url: str
    description: str = ""
    price: Optional[int] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    transmission: Transmission = Transmission.UNKNOWN
    images: List[str] = field(default_factory=list)

    # Attached later by the evaluation collaborator
    lowball_price: Optional[int] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["transmission"] = self.transmission.value
        return data


@dataclass
class SearchParams:
    """User search criteria for one scraping run."""

    zip_code: str = ""
    radius: int = 50
    year_min: int = 1989
    year_max: int = 2025
    max_mileage: int = 500_000
    max_price: Optional[int] = None
    limit: int = 20
    debug: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise InvalidSearchParamsError if the criteria are inconsistent."""
        numeric = {
            "radius": self.radius,
            "year_min": self.year_min,
            "year_max": self.year_max,
            "max_mileage": self.max_mileage,
            "limit": self.limit,
        }
        if self.max_price is not None:
            numeric["max_price"] = self.max_price
        for name, value in numeric.items():
            if value < 0:
                raise InvalidSearchParamsError(f"{name} must be non-negative, got {value}")
        if self.year_min > self.year_max:
            raise InvalidSearchParamsError(
                f"year_min ({self.year_min}) must not exceed year_max ({self.year_max})"
            )

    def with_limit(self, limit: int) -> "SearchParams":
        return SearchParams(**{**asdict(self), "limit": limit})


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    detail: str = ""
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict:
        return {"stage": self.stage.value, "detail": self.detail, "timestamp": self.timestamp}
