"""
Session-scoped in-memory listing store.
"""
import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .models import Listing

logger = logging.getLogger(__name__)

ID_STRATEGIES = ("fresh", "url")
DEDUP_MODES = ("id", "url")


def new_listing_id(url: str, index: int, strategy: str = "fresh") -> str:
    """
    Identity for a listing discovered at position ``index`` of a run.

    ``fresh`` ids are unique per run, so the same Marketplace item scraped
    twice gets two ids. ``url`` ids are derived from the item URL and stay
    stable across runs.
    """
    if strategy == "url":
        m = re.search(r"/marketplace/item/(\d+)", url)
        if m:
            return f"listing_{m.group(1)}"
        return "listing_" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
    if strategy != "fresh":
        raise ValueError(f"Unknown listing id strategy: {strategy}")
    return f"listing_{int(time.time() * 1000)}_{index}"


@dataclass
class MergeResult:
    inserted: Dict[str, Listing] = field(default_factory=dict)
    new_count: int = 0
    total_count: int = 0


class ListingStore:
    """
    Mapping session id -> (listing id -> Listing).

    With ``dedup="url"`` merges skip listings whose source URL is already
    stored for the session, even under a different id.
    """

    def __init__(self, dedup: str = "id"):
        if dedup not in DEDUP_MODES:
            raise ValueError(f"Unknown dedup mode: {dedup}")
        self.dedup = dedup
        self._lock = threading.RLock()
        self._sessions: Dict[str, Dict[str, Listing]] = {}

    def put(self, session_id: str, listing: Listing) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, {})[listing.id] = listing

    def merge(self, session_id: str, new_listings: Iterable[Listing]) -> MergeResult:
        """Insert listings not yet stored for the session; existing entries are never overwritten."""
        result = MergeResult()
        with self._lock:
            bucket = self._sessions.setdefault(session_id, {})
            seen_urls = {lst.url for lst in bucket.values()}
            for lst in new_listings:
                if lst.id in bucket:
                    continue
                if self.dedup == "url" and lst.url in seen_urls:
                    continue
                bucket[lst.id] = lst
                seen_urls.add(lst.url)
                result.inserted[lst.id] = lst
            result.new_count = len(result.inserted)
            result.total_count = len(bucket)
        logger.info(f">>> Merged results: {result.new_count} new listings, {result.total_count} total")
        return result

    def get(self, session_id: str, listing_id: str) -> Optional[Listing]:
        with self._lock:
            return self._sessions.get(session_id, {}).get(listing_id)

    def listings(self, session_id: str) -> List[Listing]:
        with self._lock:
            return list(self._sessions.get(session_id, {}).values())

    def count(self, session_id: str) -> int:
        with self._lock:
            return len(self._sessions.get(session_id, {}))

    def attach_lowball(self, session_id: str, listing_id: str, price: int) -> Listing:
        with self._lock:
            listing = self._sessions.get(session_id, {}).get(listing_id)
            if listing is None:
                raise KeyError(listing_id)
            listing.lowball_price = price
            return listing

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
