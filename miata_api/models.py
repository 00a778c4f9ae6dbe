"""
Pydantic models for API request/response serialization.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from miata_scraper.models import Listing, SearchParams


class SearchRequest(BaseModel):
    """Search criteria posted by the presentation layer."""
    zip_code: str = ""
    radius: int = Field(50, ge=0)
    year_min: int = Field(1989, ge=0)
    year_max: int = Field(2025, ge=0)
    max_mileage: int = Field(500_000, ge=0)
    max_price: Optional[int] = Field(None, ge=0)
    limit: int = Field(20, ge=0)
    debug: bool = False

    @model_validator(mode="after")
    def check_year_range(self):
        if self.year_min > self.year_max:
            raise ValueError("year_min must not exceed year_max")
        return self

    def to_params(self) -> SearchParams:
        return SearchParams(**self.model_dump())


class ListingOut(BaseModel):
    """Output model for listing data."""
    id: str
    title: str
    url: str
    description: str = ""
    price: Optional[int] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    transmission: str = "Unknown"
    images: List[str] = []
    lowball_price: Optional[int] = None

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingOut":
        return cls(**listing.to_dict())


class ScrapeResponse(BaseModel):
    count: int
    listings: List[ListingOut]


class ScrapeMoreResponse(BaseModel):
    """Only the listings the merge actually inserted."""
    results: List[ListingOut]
    new_count: int
    total_count: int


class EvaluationIn(BaseModel):
    """Free text returned by the LLM evaluation service."""
    text: str


class EvaluationOut(BaseModel):
    listing_id: str
    lowball_price: Optional[int] = None
