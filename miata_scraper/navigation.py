"""
Playwright-driven crawl of Marketplace search results.

Manages the browser lifecycle, handles login detection, builds the search
URL, discovers listing URLs and runs every listing page through extraction,
classification and the constraint filter, publishing progress as it goes.
"""
import asyncio
import logging
import os
import random
import re
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncContextManager, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from playwright.async_api import async_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from .classifier import classify
from .config import Config, config as default_config
from .exceptions import (
    AuthenticationError,
    NavigationError,
    NavigationTimeoutError,
    NoListingsFoundError,
    NoValidListingsError,
    PerListingExtractionError,
    ScrapeCancelledError,
    ScraperError,
)
from .extraction import capture_snapshot, extract_fields, PageSnapshot
from .filters import check_constraints
from .models import Listing, SearchParams, Stage
from .store import new_listing_id

logger = logging.getLogger(__name__)


# Constants
MARKETPLACE_BASE = "https://www.facebook.com/marketplace"
LOGIN_URL = "https://www.facebook.com/login"
SEARCH_QUERY = "Miata"
MIN_PRIMARY_URLS = 5
SCREENSHOT_NAME = "debug-marketplace.png"

RESULT_SELECTORS = [
    '[role="main"] [role="article"]',
    '[data-testid="marketplace-search-results"] > div > div',
    ".x9f619.x1n2onr6.x1ja2u2z > div",
    '[aria-label*="Collection of Marketplace items"]',
]

ITEM_URL_RE = re.compile(r"/marketplace/item/\d+")
LONG_ID_RE = re.compile(r"\d{15,}")

HREFS_SCRIPT = "els => els.map(e => e.href)"
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
window.chrome = {runtime: {}};
"""


@dataclass
class Credentials:
    email: str = ""
    password: str = ""

    def __bool__(self):
        return bool(self.email and self.password)


@dataclass
class Pacing:
    """
    Randomized delays between browser actions.

    Typing and clicking at machine speed is an easy automation fingerprint;
    ``Pacing.disabled()`` turns every pause into a no-op for tests.
    """

    action_delay: Tuple[float, float] = (0.1, 0.3)
    keystroke_delay: Tuple[float, float] = (0.005, 0.015)
    enabled: bool = True

    @classmethod
    def disabled(cls) -> "Pacing":
        return cls(enabled=False)

    async def pause(self, low: Optional[float] = None, high: Optional[float] = None) -> None:
        if not self.enabled:
            return
        lo = self.action_delay[0] if low is None else low
        hi = self.action_delay[1] if high is None else high
        await asyncio.sleep(random.uniform(lo, hi))

    async def keystroke(self) -> None:
        await self.pause(*self.keystroke_delay)


class CancellationToken:
    """Checked between listings; may be cancelled from any thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ScrapeResult:
    listings: List[Listing] = field(default_factory=list)
    stored: Dict[str, Listing] = field(default_factory=dict)

    def __iter__(self):
        return iter((self.listings, self.stored))


def build_search_url(params: SearchParams) -> str:
    """Build the Marketplace search URL for the given criteria."""
    query = [("query", SEARCH_QUERY), ("sortBy", "best_match"), ("exact", "false")]
    if params.year_min and params.year_max:
        query += [("minYear", params.year_min), ("maxYear", params.year_max)]
    if params.max_mileage:
        query.append(("maxMileage", params.max_mileage))
    if params.max_price:
        query.append(("maxPrice", params.max_price))
    return f"{MARKETPLACE_BASE}/search?{urlencode(query)}"


def collect_listing_urls(item_hrefs: Iterable[str], marketplace_hrefs: Iterable[str] = ()) -> List[str]:
    """
    Deduplicated listing URLs, in page order.

    Item links are tried first; when they give fewer than five URLs, any
    Marketplace link with an item path or a long numeric id is considered
    too. Only item-shaped URLs survive.
    """
    urls: Dict[str, None] = {}
    for href in item_hrefs:
        if href and "/marketplace/item/" in href and ITEM_URL_RE.search(href):
            urls[href] = None

    if len(urls) < MIN_PRIMARY_URLS:
        for href in marketplace_hrefs:
            if not href:
                continue
            if ITEM_URL_RE.search(href) or ("marketplace" in href and LONG_ID_RE.search(href) and "search" not in href):
                urls[href] = None

    return [u for u in urls if "/marketplace/item/" in u and ITEM_URL_RE.search(u)]


@asynccontextmanager
async def launch_browser_context(
    headless: bool = default_config.HEADLESS,
    storage_state_path: Optional[str] = default_config.STORAGE_STATE,
    user_agent: str = default_config.USER_AGENT,
):
    """Chromium context, closed together with its browser on exit."""
    launch_args = ["--disable-blink-features=AutomationControlled"]
    if headless:
        launch_args += ["--disable-dev-shm-usage", "--no-sandbox", "--disable-gpu"]

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=launch_args)
        logger.info(f">>> Headless mode: {headless}")
        try:
            ctx_kwargs = {}
            if storage_state_path and os.path.exists(storage_state_path):
                ctx_kwargs["storage_state"] = storage_state_path
                logger.info(f">>> Using existing storage state: {storage_state_path}")

            context = await browser.new_context(
                **ctx_kwargs,
                viewport={"width": 1366, "height": 768},
                user_agent=user_agent,
                locale="en-US",
            )
            context.set_default_timeout(30_000)
            context.set_default_navigation_timeout(45_000)
            await context.add_init_script(STEALTH_SCRIPT)
            try:
                yield context
            finally:
                await context.close()
        finally:
            await browser.close()


BrowserFactory = Callable[[], AsyncContextManager]


class NavigationController:
    """Drives one browsing session from the login page to filtered listings."""

    def __init__(
        self,
        progress,
        *,
        config: Config = default_config,
        pacing: Optional[Pacing] = None,
        credentials: Optional[Credentials] = None,
        browser_factory: Optional[BrowserFactory] = None,
        id_strategy: Optional[str] = None,
        debug_dir: Optional[str] = None,
    ):
        self.progress = progress
        self.config = config
        self.pacing = pacing or Pacing()
        self.credentials = credentials if credentials is not None else Credentials(config.FB_EMAIL, config.FB_PASSWORD)
        self.browser_factory = browser_factory or (lambda: launch_browser_context(
            headless=config.HEADLESS,
            storage_state_path=config.STORAGE_STATE,
            user_agent=config.USER_AGENT,
        ))
        self.id_strategy = id_strategy or config.LISTING_ID_STRATEGY
        self.debug_dir = debug_dir or config.DEBUG_DIR

    async def run(
        self,
        params: SearchParams,
        session_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> ScrapeResult:
        params.validate()
        if params.debug:
            logger.info(f">>> DEBUG MODE ENABLED - Will process only first {self.config.DEBUG_MODE_LIMIT} listings")

        def publish(stage: Stage, detail: str) -> None:
            self.progress.publish(session_id, stage, detail)

        publish(Stage.INITIALIZING, "Setting up scraping session...")
        result = ScrapeResult()
        try:
            publish(Stage.BROWSER_START, "Starting browser...")
            async with self.browser_factory() as context:
                page = await context.new_page()
                try:
                    await self._ensure_logged_in(page, publish)
                    await self._open_search(page, params, publish)
                    await self._find_results(page)
                    publish(Stage.SEARCHING, "Extracting listing URLs from search results...")
                    urls = await self._listing_urls(page)
                finally:
                    await page.close()

                limit = self.config.DEBUG_MODE_LIMIT if params.debug else params.limit
                urls = urls[:limit]
                logger.info(f">>> Will scrape {len(urls)} validated URLs")
                publish(Stage.EXTRACTING, f"Found {len(urls)} listings to process. Starting extraction...")

                for i, url in enumerate(urls):
                    if cancel is not None and cancel.cancelled:
                        raise ScrapeCancelledError(f"Scrape cancelled after {i} of {len(urls)} listings")
                    publish(Stage.EXTRACTING, f"Processing listing {i + 1}/{len(urls)}...")
                    try:
                        listing = await self._process_listing(context, url, i, params)
                    except PerListingExtractionError as e:
                        logger.warning(f"Error processing listing {i + 1}: {e.cause}")
                        continue
                    if listing is None:
                        continue
                    result.stored[listing.id] = listing
                    result.listings.append(listing)
        except ScraperError as e:
            logger.error(f">>> Scrape failed for session {session_id}: {e}")
            raise
        except PlaywrightError as e:
            # Browser launch, page creation or a search page read failed outside the listing loop
            logger.error(f">>> Browser failure for session {session_id}: {e}")
            raise NavigationError(f"Browser failure: {e}") from e

        publish(Stage.PROCESSING, f"Processed {len(urls)} listings, {len(result.listings)} kept")
        publish(Stage.COMPLETE, f"Successfully processed {len(result.listings)} listings!")
        logger.info(f">>> Successfully processed {len(result.listings)} listings")
        return result

    async def _ensure_logged_in(self, page, publish) -> None:
        publish(Stage.LOGGING_IN, "Navigating to Facebook login...")
        try:
            await page.goto(LOGIN_URL, wait_until="domcontentloaded", timeout=self.config.LOGIN_TIMEOUT_MS)
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(f"Login navigation timed out: {e}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Login navigation failed: {e}") from e
        await self.pacing.pause(1.0, 2.0)

        logger.info(f">>> Current URL after navigation: {page.url}")
        if "login" not in page.url:
            logger.info(">>> Already logged in, proceeding to Marketplace...")
            return

        if not self.credentials:
            raise AuthenticationError("Not logged in and no credentials were supplied.")
        try:
            await page.wait_for_selector('input[name="email"]', timeout=10_000)
        except PlaywrightError as e:
            raise AuthenticationError("Login form did not appear.") from e

        try:
            await self._human_type(page, 'input[name="email"]', self.credentials.email)
            await self.pacing.pause(0.2, 0.4)
            await self._human_type(page, 'input[name="pass"]', self.credentials.password)
            await self.pacing.pause(0.05, 0.1)

            async with page.expect_navigation(wait_until="domcontentloaded", timeout=self.config.LOGIN_TIMEOUT_MS):
                await page.click('button[name="login"]')
            await self.pacing.pause()

            logger.info(f">>> Post-login URL: {page.url}")
            two_factor = await page.query_selector('input[name="approvals_code"]')
        except PlaywrightError as e:
            raise AuthenticationError(f"Login failed: {e}") from e

        if two_factor:
            raise AuthenticationError("Two-factor authentication detected. Please disable 2FA temporarily.")
        if "login" in page.url or "checkpoint" in page.url:
            raise AuthenticationError("Login failed or account restricted.")
        publish(Stage.LOGGING_IN, "Login successful!")

    async def _human_type(self, page, selector: str, text: str) -> None:
        await page.click(selector)
        await self.pacing.pause(0.025, 0.05)
        for ch in text:
            await page.keyboard.type(ch)
            await self.pacing.keystroke()

    async def _open_search(self, page, params: SearchParams, publish) -> None:
        publish(Stage.NAVIGATING, "Building search URL and navigating to Marketplace...")
        url = build_search_url(params)
        logger.info(f">>> Direct search URL: {url}")
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.SEARCH_TIMEOUT_MS)
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(f"Search navigation timed out: {e}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Search navigation failed: {e}") from e
        await self.pacing.pause(0.2, 0.35)
        publish(Stage.SEARCHING, "Successfully navigated to search results!")

    async def _find_results(self, page) -> None:
        for selector in RESULT_SELECTORS:
            try:
                await page.wait_for_selector(selector, timeout=self.config.SELECTOR_TIMEOUT_MS)
                items = await page.query_selector_all(selector)
            except PlaywrightError as e:
                logger.debug(f"Selector {selector} not found ({e}), trying next...")
                continue
            if items:
                logger.info(f">>> Found {len(items)} items using selector: {selector}")
                return

        screenshot = await self._save_screenshot(page)
        raise NoListingsFoundError(
            "No listings found. The page structure may have changed or there are no Miatas in your area.",
            screenshot_path=screenshot,
        )

    async def _save_screenshot(self, page) -> Optional[str]:
        path = os.path.join(self.debug_dir, SCREENSHOT_NAME)
        try:
            os.makedirs(self.debug_dir, exist_ok=True)
            await page.screenshot(path=path, full_page=True)
        except Exception:
            logger.exception("Failed to capture diagnostic screenshot")
            return None
        logger.info(f">>> Saved diagnostic screenshot to {path}")
        return path

    async def _listing_urls(self, page) -> List[str]:
        item_hrefs = await page.eval_on_selector_all('a[href*="/marketplace/item/"]', HREFS_SCRIPT)
        marketplace_hrefs = await page.eval_on_selector_all('a[href*="marketplace"]', HREFS_SCRIPT)
        logger.debug(f"Found {len(item_hrefs)} item links with /marketplace/item/")
        urls = collect_listing_urls(item_hrefs, marketplace_hrefs)
        logger.info(f">>> Validated {len(urls)} listing URLs")
        if not urls:
            raise NoValidListingsError("No valid listing URLs found.")
        return urls

    async def _process_listing(self, context, url: str, index: int, params: SearchParams) -> Optional[Listing]:
        logger.info(f">>> Processing listing {index + 1}: {url}")
        try:
            snapshot = await self._load_snapshot(context, url)
            return self._judge(snapshot, url, index, params)
        except Exception as e:
            raise PerListingExtractionError(url, index + 1, e) from e

    async def _load_snapshot(self, context, url: str) -> PageSnapshot:
        page = await context.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.LISTING_TIMEOUT_MS)
            await self.pacing.pause(0.1, 0.2)
            await page.wait_for_selector("body", timeout=self.config.BODY_TIMEOUT_MS)
            await self.pacing.pause(0.5, 0.5)
            return await capture_snapshot(page)
        finally:
            await page.close()

    def _judge(self, snapshot: PageSnapshot, url: str, index: int, params: SearchParams) -> Optional[Listing]:
        candidate = extract_fields(snapshot)
        verdict = classify(candidate.title, candidate.description)
        if not verdict:
            logger.info(f"Skipping listing: {verdict.reason.value} ({candidate.title!r})")
            return None

        listing = Listing(
            id=new_listing_id(url, index, self.id_strategy),
            title=candidate.title,
            url=url,
            description=candidate.description or "",
            price=candidate.price,
            year=candidate.year,
            mileage=candidate.mileage,
            transmission=candidate.transmission,
            images=candidate.images,
        )
        reason = check_constraints(listing, params)
        if reason:
            logger.info(f"Skipping - {reason}")
            return None

        logger.info(f">>> Storing listing with ID: {listing.id}")
        return listing


async def run_scrape(
    params: SearchParams,
    session_id: str,
    progress,
    cancel: Optional[CancellationToken] = None,
    **kwargs,
) -> ScrapeResult:
    """
    Main scraping entry point.

    ``progress`` is anything with ``publish(session_id, stage, detail)``,
    normally a ``ProgressChannel``. Extra keyword arguments go to
    ``NavigationController``.
    """
    controller = NavigationController(progress, **kwargs)
    return await controller.run(params, session_id, cancel=cancel)
