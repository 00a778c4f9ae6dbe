"""
Domain rules deciding whether an extracted listing is a whole Miata.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 5

MIATA_KEYWORDS = ("miata", "mx-5", "mx5")

PARTS_INDICATORS = (
    "part out", "parting out", "parts only", "for parts",
    "parting", "just parts", "parts car",
)

CAR_INDICATORS = (
    "runs", "drives", "running", "driving", "starts",
    "title", "registered", "insured", "daily driver",
    "project car", "convertible", "complete car",
    "whole car", "entire car", "full car",
    "miles", "mileage", "manual", "automatic",
    "engine runs", "motor runs", "street legal",
)

# A car indicator directly preceded by one of these does not count ("no title").
NEGATIONS = ("no", "not", "non", "without", "never", "doesn't", "doesnt", "does not", "won't", "wont")

_NEGATION_RE = re.compile(
    r"(?:^|[^a-z'])(?:" + "|".join(re.escape(n) for n in NEGATIONS) + r")[\s-]+$"
)


class RejectReason(str, Enum):
    NOT_VEHICLE_RELATED = "Not Miata related"
    PARTS_ONLY = "Parts only"
    INVALID_TITLE = "Invalid title"
    NOT_MIATA = "Not a Miata"


@dataclass(frozen=True)
class Classification:
    accepted: bool
    reason: Optional[RejectReason] = None

    def __bool__(self):
        return self.accepted


ACCEPTED = Classification(True)


def is_vehicle_related(text: Optional[str]) -> bool:
    if not text:
        return False
    lower = text.lower()
    return (
        any(k in lower for k in MIATA_KEYWORDS)
        or "roadster" in lower
        or ("mazda" in lower and ("convertible" in lower or "roadster" in lower))
    )


def _has_unnegated(text: str, phrase: str) -> bool:
    for m in re.finditer(re.escape(phrase), text):
        if not _NEGATION_RE.search(text[:m.start()]):
            return True
    return False


def is_parts_only(title: Optional[str], description: Optional[str]) -> bool:
    """
    True when the text advertises parts rather than a complete car.

    A listing with neither title nor description is treated as parts-only.
    """
    if not title and not description:
        return True
    combined = f"{title or ''} {description or ''}".lower()
    has_parts_words = any(p in combined for p in PARTS_INDICATORS)
    if not has_parts_words:
        return False
    return not any(_has_unnegated(combined, c) for c in CAR_INDICATORS)


def mentions_miata(title: Optional[str], description: Optional[str]) -> bool:
    title_lower = (title or "").lower()
    desc_lower = (description or "").lower()
    return any(k in title_lower or k in desc_lower for k in MIATA_KEYWORDS)


def classify(title: Optional[str], description: Optional[str]) -> Classification:
    """Accept or reject a candidate; rules are checked in order and short-circuit."""
    if not is_vehicle_related(title) and not is_vehicle_related(description):
        return Classification(False, RejectReason.NOT_VEHICLE_RELATED)
    if is_parts_only(title, description):
        return Classification(False, RejectReason.PARTS_ONLY)
    if not title or len(title) < MIN_TITLE_LENGTH:
        return Classification(False, RejectReason.INVALID_TITLE)
    if not mentions_miata(title, description):
        return Classification(False, RejectReason.NOT_MIATA)
    return ACCEPTED
