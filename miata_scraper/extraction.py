"""
Field extraction for Marketplace listing pages.

Facebook's markup has no stable schema, so every field is pulled with an
ordered list of strategies (selectors or regular expressions) and the first
one that yields an acceptable value wins. Extraction never judges a listing
and never raises for a missing field: it returns None and moves on.

The engine works on a ``PageSnapshot`` - the text and image surface of a
loaded page captured with a single ``page.evaluate`` round trip - which keeps
all of the heuristics below free of any browser dependency.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .classifier import is_vehicle_related
from .models import DESCRIPTION_MAX_CHARS, MAX_IMAGES, Transmission
from .utils import clean_text, parse_int, truncate

logger = logging.getLogger(__name__)


TITLE_SELECTORS = [
    'h1[dir="auto"]',
    'span[dir="auto"][role="heading"]',
    '[data-testid*="title"]',
    "h1",
    "h2",
    '[role="heading"]',
    'span[dir="auto"]',
]

DESCRIPTION_SELECTORS = [
    '[data-testid="marketplace_pdp_description"]',
    '[data-testid*="description"]',
    'div[role="main"] div[dir="auto"]',
    'div[role="main"] p',
    'div[role="main"] div:not(:empty)',
    '[role="article"] div[dir="auto"]',
    ".x1lliihq",
    ".x193iq5w",
]

IMAGE_SELECTORS = [
    'img[src*="scontent"]',
    '[data-testid*="image"] img',
    '[role="main"] img',
    'img[alt*="vehicle"], img[alt*="car"], img[alt*="Miata"]',
]

MAX_ELEMENTS_PER_SELECTOR = 400
MIN_IMAGE_SIDE = 100

PRICE_RANGE = (500, 100_000)
YEAR_RANGE = (1989, 2025)
MILEAGE_RANGE = (1_000, 500_000)

SNAPSHOT_SCRIPT = """
({textSelectors, imageSelectors, limit}) => {
  const texts = {};
  for (const sel of textSelectors) {
    texts[sel] = Array.from(document.querySelectorAll(sel)).slice(0, limit)
      .map(el => (el.innerText || '').trim())
      .filter(t => t.length > 0);
  }
  const images = {};
  for (const sel of imageSelectors) {
    images[sel] = Array.from(document.querySelectorAll(sel)).slice(0, limit)
      .map(img => ({src: img.src || '', width: img.naturalWidth || 0, height: img.naturalHeight || 0}));
  }
  return {body: document.body ? document.body.innerText : '', texts, images};
}
"""


@dataclass(frozen=True)
class ImageInfo:
    src: str
    width: int = 0
    height: int = 0


@dataclass
class PageSnapshot:
    """Text and image surface of one loaded listing page."""

    url: str = ""
    body_text: str = ""
    texts: Dict[str, List[str]] = field(default_factory=dict)
    images: Dict[str, List[ImageInfo]] = field(default_factory=dict)

    def texts_for(self, selector: str) -> List[str]:
        return self.texts.get(selector, [])

    def images_for(self, selector: str) -> List[ImageInfo]:
        return self.images.get(selector, [])

    @classmethod
    def from_dict(cls, url: str, raw: dict) -> "PageSnapshot":
        images = {
            sel: [ImageInfo(i.get("src") or "", int(i.get("width") or 0), int(i.get("height") or 0)) for i in items]
            for sel, items in (raw.get("images") or {}).items()
        }
        return cls(
            url=url,
            body_text=raw.get("body") or "",
            texts={sel: list(items) for sel, items in (raw.get("texts") or {}).items()},
            images=images,
        )


async def capture_snapshot(page) -> PageSnapshot:
    """Capture the extraction surface of a loaded page."""
    raw = await page.evaluate(SNAPSHOT_SCRIPT, {
        "textSelectors": TITLE_SELECTORS + [s for s in DESCRIPTION_SELECTORS if s not in TITLE_SELECTORS],
        "imageSelectors": IMAGE_SELECTORS,
        "limit": MAX_ELEMENTS_PER_SELECTOR,
    })
    return PageSnapshot.from_dict(page.url, raw or {})


@dataclass
class CandidateAttributes:
    """Attributes pulled from a page before classification judges them."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    transmission: Transmission = Transmission.UNKNOWN
    images: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class SelectorTextStrategy:
    """First text under ``selector`` that ``accept`` approves."""

    def __init__(self, selector: str, accept: Callable[[str], bool]):
        self.selector = selector
        self.accept = accept

    def try_extract(self, page: PageSnapshot) -> Optional[str]:
        for text in page.texts_for(self.selector):
            text = clean_text(text)
            if text and self.accept(text):
                return text
        return None

    def __repr__(self):
        return f"SelectorTextStrategy({self.selector!r})"


class ImageStrategy:
    """Absolute image URLs under ``selector`` larger than the minimum size."""

    def __init__(self, selector: str, min_side: int = MIN_IMAGE_SIDE):
        self.selector = selector
        self.min_side = min_side

    def try_extract(self, page: PageSnapshot) -> Optional[List[str]]:
        urls = [
            img.src for img in page.images_for(self.selector)
            if img.src.startswith("http") and img.width > self.min_side and img.height > self.min_side
        ]
        return urls or None


class PatternStrategy:
    """
    Scan a text with one regular expression.

    Every match is converted to an int and the first one inside
    ``[minimum, maximum]`` is returned.
    """

    def __init__(
        self,
        pattern: str,
        minimum: int,
        maximum: int,
        convert: Optional[Callable[[re.Match, str], Optional[int]]] = None,
        flags: int = re.IGNORECASE,
    ):
        self.pattern = re.compile(pattern, flags)
        self.minimum = minimum
        self.maximum = maximum
        self.convert = convert or (lambda m, _text: parse_int(m.group(1)))

    def try_extract(self, text: Optional[str]) -> Optional[int]:
        if not text:
            return None
        for m in self.pattern.finditer(text):
            value = self.convert(m, text)
            if value is not None and self.minimum <= value <= self.maximum:
                return value
        return None

    def __repr__(self):
        return f"PatternStrategy({self.pattern.pattern!r})"


def first_success(strategies: Iterable, subject):
    """Return the first non-None value produced by ``strategies``."""
    for strategy in strategies:
        value = strategy.try_extract(subject)
        if value is not None:
            return value
    return None


def _two_digit_year(m: re.Match, _text: str) -> Optional[int]:
    short = int(m.group(1))
    if short >= 89:
        return 1900 + short
    if short <= 25:
        return 2000 + short
    return None


def _mileage_value(m: re.Match, text: str) -> Optional[int]:
    value = parse_int(m.group(1))
    if value is None:
        return None
    # "98k" shorthand, whatever pattern found the number
    if re.match(r"\s*k\b", text[m.end(1):], re.IGNORECASE):
        value *= 1000
    return value


def _title_strategies() -> List[SelectorTextStrategy]:
    relevant = [SelectorTextStrategy(sel, lambda t: len(t) > 3 and is_vehicle_related(t)) for sel in TITLE_SELECTORS]
    anything = [SelectorTextStrategy(sel, lambda t: len(t) > 3) for sel in TITLE_SELECTORS]
    return relevant + anything


TITLE_STRATEGIES = _title_strategies()

IMAGE_STRATEGIES = [ImageStrategy(sel) for sel in IMAGE_SELECTORS]

PRICE_STRATEGIES = [
    PatternStrategy(r"\$([0-9,]+)(?:\.[0-9]{2})?", *PRICE_RANGE),
    PatternStrategy(r"Price[:\s]*\$?([0-9,]+)", *PRICE_RANGE),
    PatternStrategy(r"Asking[:\s]*\$?([0-9,]+)", *PRICE_RANGE),
]

YEAR_STRATEGIES = [
    PatternStrategy(r"\b(19[89][0-9]|20[0-2][0-9])\b", *YEAR_RANGE),
    PatternStrategy(r"['’]([0-9]{2})\b", *YEAR_RANGE, convert=_two_digit_year),
]

_DISTANCE_WORDS = r"(?:away|from|radius|drive|distance|per|mpg|to)\b"

MILEAGE_STRATEGIES = [
    PatternStrategy(r"(?:mileage|odometer|miles)[:\s]*([0-9,]+)(?:\s*(?:miles?|mi)\b)?", *MILEAGE_RANGE,
                    convert=_mileage_value),
    PatternStrategy(r"(?:driven|has)[:\s]*([0-9,]+)\s*(?:miles?|mi)\b", *MILEAGE_RANGE, convert=_mileage_value),
    PatternStrategy(rf"([0-9,]+)\s*(?:miles?|mi)\b(?!\s*{_DISTANCE_WORDS})", *MILEAGE_RANGE,
                    convert=_mileage_value),
    PatternStrategy(r"([0-9,]+)\s*k\s*(?:miles?|mi)\b", *MILEAGE_RANGE, convert=_mileage_value),
]

AUTOMATIC_KEYWORDS = {
    "automatic": 3,
    "auto": 1,
    "a/t": 1,
    "torque converter": 1,
    "slushbox": 1,
    "tiptronic": 1,
    "cvt": 1,
    "continuously variable": 1,
}

MANUAL_KEYWORDS = {
    "manual": 3,
    "stick": 1,
    "stick shift": 1,
    "mt": 1,
    "m/t": 1,
    "5 speed": 1,
    "6 speed": 1,
    "5-speed": 1,
    "6-speed": 1,
    "clutch": 1,
    "manual transmission": 1,
    "standard": 1,
    "row your own": 1,
}

# Longest phrase first so "manual transmission" is one hit, not "manual" plus one.
_TRANSMISSION_RE = re.compile(
    r"(?<![a-z0-9])(?:"
    + "|".join(re.escape(k) for k in sorted({**AUTOMATIC_KEYWORDS, **MANUAL_KEYWORDS}, key=len, reverse=True))
    + r")(?![a-z0-9])"
)


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------

def extract_title(page: PageSnapshot) -> Optional[str]:
    return first_success(TITLE_STRATEGIES, page)


def pick_description(texts: Iterable[str]) -> Optional[str]:
    """Longest text over 20 chars, whitespace collapsed; a later text only wins if it is also over 50."""
    best = None
    for text in texts:
        text = clean_text(text)
        if len(text) <= 20:
            continue
        if best is None or (len(text) > len(best) and len(text) > 50):
            best = text
    return best


def extract_description(page: PageSnapshot) -> Optional[str]:
    texts = (t for sel in DESCRIPTION_SELECTORS for t in page.texts_for(sel))
    return pick_description(texts)


def extract_images(page: PageSnapshot, limit: int = MAX_IMAGES) -> List[str]:
    images: List[str] = []
    for strategy in IMAGE_STRATEGIES:
        for src in strategy.try_extract(page) or []:
            if src not in images:
                images.append(src)
            if len(images) >= limit:
                return images
    return images


def extract_price(text: Optional[str]) -> Optional[int]:
    return first_success(PRICE_STRATEGIES, text)


def extract_year(texts: Sequence[Optional[str]]) -> Optional[int]:
    """Four-digit year, else 'NN; each text is exhausted before the next."""
    for text in texts:
        year = first_success(YEAR_STRATEGIES, text)
        if year is not None:
            return year
    return None


def extract_mileage(texts: Sequence[Optional[str]]) -> Optional[int]:
    for text in texts:
        mileage = first_success(MILEAGE_STRATEGIES, text)
        if mileage is not None:
            return mileage
    return None


def score_transmission(text: Optional[str]) -> Dict[Transmission, int]:
    found = set(_TRANSMISSION_RE.findall((text or "").lower()))
    return {
        Transmission.AUTOMATIC: sum(AUTOMATIC_KEYWORDS[k] for k in found if k in AUTOMATIC_KEYWORDS),
        Transmission.MANUAL: sum(MANUAL_KEYWORDS[k] for k in found if k in MANUAL_KEYWORDS),
    }


def extract_transmission(text: Optional[str]) -> Transmission:
    scores = score_transmission(text)
    auto, manual = scores[Transmission.AUTOMATIC], scores[Transmission.MANUAL]
    if manual > auto:
        return Transmission.MANUAL
    if auto > manual:
        return Transmission.AUTOMATIC
    return Transmission.UNKNOWN


def extract_fields(page: PageSnapshot) -> CandidateAttributes:
    """Run every field extractor over a captured page."""
    title = extract_title(page)
    description = extract_description(page)
    if description:
        description = truncate(description, DESCRIPTION_MAX_CHARS)
    body = page.body_text
    texts = [t for t in (title, description, body) if t]

    candidate = CandidateAttributes(
        title=title,
        description=description,
        price=extract_price(body),
        year=extract_year(texts),
        mileage=extract_mileage(texts),
        transmission=extract_transmission(" ".join(texts)),
        images=extract_images(page),
    )
    logger.debug(
        f"Extracted {page.url}: title={candidate.title!r} price={candidate.price} "
        f"year={candidate.year} mileage={candidate.mileage} transmission={candidate.transmission.value}"
    )
    return candidate
