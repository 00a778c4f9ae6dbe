"""
Tests for the navigation controller, driven through a fake browser context.
"""
import asyncio
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, urlparse

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from miata_scraper.exceptions import (
    AuthenticationError,
    InvalidSearchParamsError,
    NavigationError,
    NavigationTimeoutError,
    NoListingsFoundError,
    NoValidListingsError,
    ScrapeCancelledError,
)
from miata_scraper.models import SearchParams, Stage, Transmission
from miata_scraper.navigation import (
    LOGIN_URL,
    RESULT_SELECTORS,
    CancellationToken,
    Credentials,
    NavigationController,
    Pacing,
    build_search_url,
    collect_listing_urls,
)
from miata_scraper.progress import ProgressChannel


def item(n):
    return f"https://www.facebook.com/marketplace/item/{n}/"


def page_data(title, description, body):
    return {
        "body": body,
        "texts": {
            'h1[dir="auto"]': [title],
            'div[role="main"] div[dir="auto"]': [description],
        },
        "images": {'img[src*="scontent"]': [{"src": "https://scontent.example/1.jpg", "width": 960, "height": 720}]},
    }


KEEPER = page_data(
    "1991 Mazda Miata MX-5",
    "Runs and drives great, 5-speed manual, clean title, garage kept.",
    "1991 Mazda Miata MX-5 $4,500 Mileage: 120,000 miles",
)
PARTS_CAR = page_data(
    "Miata parts car",
    "Parting out 1992 miata, no title, engine and seats available.",
    "Miata parts car $800",
)
TOO_NEW = page_data(
    "1999 Mazda Miata",
    "Clean roadster, runs great, automatic, cold AC and new tires.",
    "1999 Mazda Miata $5,000 Mileage: 90,000 miles",
)


class FakeKeyboard:
    def __init__(self):
        self.typed = []

    async def type(self, text):
        self.typed.append(text)


class FakePage:
    def __init__(self, context):
        self.context = context
        self.url = "about:blank"
        self.keyboard = FakeKeyboard()
        self.closed = False

    async def goto(self, url, **kwargs):
        self.context.visited.append(url)
        if any(url.startswith(t) for t in self.context.timeouts):
            raise PlaywrightTimeout(f"Timeout exceeded navigating to {url}")
        for prefix, error in self.context.failures.items():
            if url.startswith(prefix):
                raise error
        self.url = self.context.redirects.get(url, url)

    async def wait_for_selector(self, selector, **kwargs):
        if selector == "body" or selector.startswith("input"):
            return object()
        if self.context.result_counts.get(selector, 0) > 0:
            return object()
        raise PlaywrightTimeout(f"Timeout waiting for {selector}")

    async def query_selector_all(self, selector):
        return [object()] * self.context.result_counts.get(selector, 0)

    async def query_selector(self, selector):
        if selector == 'input[name="approvals_code"]' and self.context.two_factor:
            return object()
        return None

    async def eval_on_selector_all(self, selector, script):
        if self.context.hrefs_error is not None:
            raise self.context.hrefs_error
        if "/marketplace/item/" in selector:
            return list(self.context.item_hrefs)
        return list(self.context.marketplace_hrefs)

    async def evaluate(self, script, arg=None):
        raw = self.context.pages.get(self.url, {})
        if isinstance(raw, Exception):
            raise raw
        return raw

    async def screenshot(self, path, full_page=False):
        self.context.screenshots.append(path)

    async def click(self, selector):
        if self.context.click_error is not None:
            raise self.context.click_error

    @asynccontextmanager
    async def expect_navigation(self, **kwargs):
        yield
        self.url = self.context.post_login_url

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, **kwargs):
        self.redirects = {LOGIN_URL: "https://www.facebook.com/"}
        self.result_counts = {RESULT_SELECTORS[0]: 12}
        self.item_hrefs = []
        self.marketplace_hrefs = []
        self.pages = {}
        self.timeouts = []
        self.failures = {}
        self.click_error = None
        self.hrefs_error = None
        self.two_factor = False
        self.post_login_url = "https://www.facebook.com/"
        self.visited = []
        self.screenshots = []
        self.opened = []
        self.entered = False
        self.closed = False
        for key, value in kwargs.items():
            setattr(self, key, value)

    async def new_page(self):
        page = FakePage(self)
        self.opened.append(page)
        return page

    def factory(self):
        @asynccontextmanager
        async def open_context():
            self.entered = True
            try:
                yield self
            finally:
                self.closed = True
        return open_context()


def run(context, params, channel=None, cancel=None, **kwargs):
    channel = channel or ProgressChannel()
    kwargs.setdefault("credentials", Credentials())
    controller = NavigationController(
        channel,
        pacing=Pacing.disabled(),
        browser_factory=context.factory,
        **kwargs,
    )
    return asyncio.run(controller.run(params, "s1", cancel=cancel))


def recorder(channel):
    events = []
    channel.subscribe("s1", events.append)
    return events


def test_run_keeps_only_valid_miatas():
    context = FakeContext(
        item_hrefs=[item(1), item(2), item(3), item(4)],
        pages={
            item(1): KEEPER,
            item(2): PARTS_CAR,
            item(3): RuntimeError("page crashed"),
            item(4): TOO_NEW,
        },
    )
    channel = ProgressChannel()
    events = recorder(channel)
    params = SearchParams(year_min=1989, year_max=1997, max_mileage=200_000)

    result = run(context, params, channel)

    assert len(result.listings) == 1
    listing = result.listings[0]
    assert listing.url == item(1)
    assert listing.title == "1991 Mazda Miata MX-5"
    assert listing.price == 4500
    assert listing.year == 1991
    assert listing.mileage == 120000
    assert listing.transmission == Transmission.MANUAL
    assert result.stored == {listing.id: listing}

    assert all(page.closed for page in context.opened)
    assert context.closed

    stages = []
    for ev in events:
        if not stages or stages[-1] != ev.stage:
            stages.append(ev.stage)
    assert stages == [
        Stage.INITIALIZING, Stage.BROWSER_START, Stage.LOGGING_IN, Stage.NAVIGATING,
        Stage.SEARCHING, Stage.EXTRACTING, Stage.PROCESSING, Stage.COMPLETE,
    ]
    details = [ev.detail for ev in events]
    assert "Processing listing 3/4..." in details
    assert details[-1] == "Successfully processed 1 listings!"


def test_result_unpacks_as_pair():
    context = FakeContext(item_hrefs=[item(1)], pages={item(1): KEEPER})
    listings, stored = run(context, SearchParams())
    assert [lst.id for lst in listings] == list(stored)


def test_debug_mode_caps_listing_count():
    hrefs = [item(n) for n in range(1, 6)]
    context = FakeContext(item_hrefs=hrefs, pages={h: KEEPER for h in hrefs})
    result = run(context, SearchParams(debug=True))
    assert len(result.listings) == 3
    assert [u for u in context.visited if "/item/" in u] == hrefs[:3]


def test_limit_truncates_urls():
    hrefs = [item(n) for n in range(1, 6)]
    context = FakeContext(item_hrefs=hrefs, pages={h: KEEPER for h in hrefs})
    result = run(context, SearchParams(limit=2))
    assert len(result.listings) == 2


def test_invalid_params_fail_before_browser_starts():
    params = SearchParams()
    params.year_min = 2030
    context = FakeContext()
    with pytest.raises(InvalidSearchParamsError):
        run(context, params)
    assert not context.entered


def test_no_result_container_saves_screenshot(tmp_path):
    context = FakeContext(result_counts={})
    with pytest.raises(NoListingsFoundError) as exc_info:
        run(context, SearchParams(), debug_dir=str(tmp_path))
    assert exc_info.value.screenshot_path == str(tmp_path / "debug-marketplace.png")
    assert context.screenshots == [exc_info.value.screenshot_path]
    assert context.closed


def test_no_valid_listing_urls():
    context = FakeContext(
        item_hrefs=[],
        marketplace_hrefs=["https://www.facebook.com/marketplace/category/vehicles"],
    )
    with pytest.raises(NoValidListingsError):
        run(context, SearchParams())
    assert context.closed


def test_login_required_without_credentials():
    context = FakeContext(redirects={LOGIN_URL: LOGIN_URL})
    with pytest.raises(AuthenticationError):
        run(context, SearchParams())
    assert context.closed


def test_login_types_credentials_and_continues():
    context = FakeContext(
        redirects={LOGIN_URL: LOGIN_URL},
        item_hrefs=[item(1)],
        pages={item(1): KEEPER},
    )
    result = run(context, SearchParams(), credentials=Credentials("me@example.com", "hunter2"))
    assert len(result.listings) == 1
    login_page = context.opened[0]
    assert "".join(login_page.keyboard.typed) == "me@example.comhunter2"


def test_two_factor_challenge_fails():
    context = FakeContext(redirects={LOGIN_URL: LOGIN_URL}, two_factor=True)
    with pytest.raises(AuthenticationError, match="Two-factor"):
        run(context, SearchParams(), credentials=Credentials("me@example.com", "pw"))
    assert context.closed


def test_checkpoint_after_login_fails():
    context = FakeContext(
        redirects={LOGIN_URL: LOGIN_URL},
        post_login_url="https://www.facebook.com/checkpoint/1501092823525282/",
    )
    with pytest.raises(AuthenticationError):
        run(context, SearchParams(), credentials=Credentials("me@example.com", "pw"))


def test_search_navigation_timeout():
    context = FakeContext(timeouts=["https://www.facebook.com/marketplace/search"])
    with pytest.raises(NavigationTimeoutError):
        run(context, SearchParams())
    assert context.closed


def test_login_click_timeout_is_authentication_error():
    context = FakeContext(
        redirects={LOGIN_URL: LOGIN_URL},
        click_error=PlaywrightTimeout("Timeout 30000ms exceeded waiting for button"),
    )
    with pytest.raises(AuthenticationError, match="Login failed"):
        run(context, SearchParams(), credentials=Credentials("me@example.com", "pw"))
    assert context.closed


def test_unresolvable_login_page_is_navigation_error():
    context = FakeContext(failures={LOGIN_URL: PlaywrightError("net::ERR_NAME_NOT_RESOLVED")})
    with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED") as exc_info:
        run(context, SearchParams())
    assert not isinstance(exc_info.value, NavigationTimeoutError)
    assert context.closed


def test_search_page_network_error_is_navigation_error():
    context = FakeContext(
        failures={"https://www.facebook.com/marketplace/search": PlaywrightError("net::ERR_CONNECTION_RESET")},
    )
    with pytest.raises(NavigationError):
        run(context, SearchParams())


def test_browser_error_reading_result_links_is_navigation_error():
    context = FakeContext(hrefs_error=PlaywrightError("Target page, context or browser has been closed"))
    with pytest.raises(NavigationError, match="Browser failure"):
        run(context, SearchParams())
    assert all(page.closed for page in context.opened)
    assert context.closed


def test_cancellation_between_listings():
    hrefs = [item(n) for n in range(1, 4)]
    context = FakeContext(item_hrefs=hrefs, pages={h: KEEPER for h in hrefs})
    channel = ProgressChannel()
    cancel = CancellationToken()

    def cancel_after_first(event):
        if event.detail.startswith("Processing listing 1/"):
            cancel.cancel()

    channel.subscribe("s1", cancel_after_first)
    with pytest.raises(ScrapeCancelledError):
        run(context, SearchParams(), channel, cancel=cancel)
    assert [u for u in context.visited if "/item/" in u] == hrefs[:1]
    assert context.closed
    assert channel.latest("s1").stage != Stage.COMPLETE


def test_collect_listing_urls_prefers_item_links():
    hrefs = [item(n) for n in range(1, 6)] + [item(1)]
    assert collect_listing_urls(hrefs, ["https://www.facebook.com/marketplace/item/99/"]) == hrefs[:5]


def test_collect_listing_urls_falls_back_and_validates():
    marketplace = [
        "https://www.facebook.com/marketplace/item/555/?ref=search",
        "https://www.facebook.com/marketplace/123456789012345678",
        "https://www.facebook.com/marketplace/search?query=123456789012345678",
        "",
    ]
    urls = collect_listing_urls([item(1), "https://www.facebook.com/marketplace/item/abc/"], marketplace)
    assert urls == [item(1), "https://www.facebook.com/marketplace/item/555/?ref=search"]


def test_build_search_url():
    url = build_search_url(SearchParams(year_min=1990, year_max=1997, max_mileage=150_000, max_price=8000))
    parsed = urlparse(url)
    assert parsed.path == "/marketplace/search"
    query = parse_qs(parsed.query)
    assert query["query"] == ["Miata"]
    assert query["minYear"] == ["1990"]
    assert query["maxYear"] == ["1997"]
    assert query["maxMileage"] == ["150000"]
    assert query["maxPrice"] == ["8000"]


def test_build_search_url_omits_unset_price():
    query = parse_qs(urlparse(build_search_url(SearchParams(max_price=0))).query)
    assert "maxPrice" not in query
