"""
Tests for lowball parsing and the bounded evaluation fan-out.
"""
import asyncio

from miata_scraper.evaluation import evaluate_listings, parse_lowball
from miata_scraper.models import Listing
from miata_scraper.store import ListingStore


def test_parse_lowball_from_html_evaluation():
    text = (
        "<strong>Pros:</strong>\n• Clean\n\n"
        "<strong>Accurate Price:</strong>> $6,500\n\n"
        "<strong>Lowball:</strong> $4,800\n"
    )
    assert parse_lowball(text) == 4800


def test_parse_lowball_plain_label():
    assert parse_lowball("Lowball: $12,000") == 12000
    assert parse_lowball("Lowball:$900") == 900


def test_parse_lowball_missing():
    assert parse_lowball("Accurate Price: $6,500") is None
    assert parse_lowball("Lowball: around 4k") is None
    assert parse_lowball("") is None
    assert parse_lowball(None) is None


def _store(n):
    store = ListingStore()
    for i in range(n):
        store.put("s1", Listing(id=f"listing_{i}", title=f"Mazda Miata {i}",
                                url=f"https://www.facebook.com/marketplace/item/{i}/", price=5000 + i))
    return store


def test_evaluate_listings_bounds_concurrency_and_attaches_prices():
    store = _store(6)
    state = {"running": 0, "peak": 0}

    async def generate(listing):
        state["running"] += 1
        state["peak"] = max(state["peak"], state["running"])
        await asyncio.sleep(0.01)
        state["running"] -= 1
        if listing.id == "listing_3":
            raise ConnectionError("ollama not running")
        return f"<strong>Lowball:</strong> ${listing.price - 1000:,}"

    outcomes = asyncio.run(evaluate_listings(store, "s1", generate, max_concurrency=2))

    assert state["peak"] <= 2
    assert len(outcomes) == 6
    assert outcomes["listing_3"].error == "ollama not running"
    assert outcomes["listing_3"].lowball_price is None
    assert store.get("s1", "listing_3").lowball_price is None
    assert outcomes["listing_0"].lowball_price == 4000
    assert store.get("s1", "listing_5").lowball_price == 4005
