"""Pytest configuration and shared fixtures.

The browser engine is replaced by small in-memory doubles so no test ever
launches Playwright or touches the network.
"""

import asyncio
from typing import Callable, List, Optional

import pytest

from product_scraper.scrapers.base import Availability, ProductRecord
from product_scraper.scrapers.factory import ExtractorFactory
from product_scraper.scrapers.register_extractors import register_all_extractors


PRODUCT_HTML = """
<html>
<head>
  <title>HRX Men Running T-shirt | Myntra</title>
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "HRX Men Running T-shirt",
    "brand": {"@type": "Brand", "name": "HRX by Hrithik Roshan"},
    "description": "Lightweight rapid-dry running tee",
    "image": ["https://assets.example.com/1.jpg", "https://assets.example.com/2.jpg"],
    "offers": {"@type": "Offer", "price": "2499.00", "priceCurrency": "INR",
               "availability": "https://schema.org/InStock"}
  }
  </script>
</head>
<body><h1>HRX Men Running T-shirt</h1></body>
</html>
"""


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


# ============================================================================
# CLOCK / SLEEP DOUBLES
# ============================================================================

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays and returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


# ============================================================================
# BROWSER ENGINE DOUBLES
# ============================================================================

class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class FakePage:
    """Stands in for playwright Page."""

    def __init__(self, html: str = PRODUCT_HTML, title: str = "Product", status: int = 200):
        self.html = html
        self.title_text = title
        self.status = status
        self.goto_error: Optional[BaseException] = None
        self.evaluate_error: Optional[BaseException] = None
        self.closed = False
        self.visited: List[str] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        return FakeResponse(self.status)

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def evaluate(self, script):
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return "complete"

    async def title(self):
        return self.title_text

    async def content(self):
        return self.html

    def is_closed(self) -> bool:
        return self.closed


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False
        self.route_pattern = None
        self.options = {}

    async def route(self, pattern, handler):
        self.route_pattern = pattern

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True
        self.page.closed = True


class FakeBrowser:
    def __init__(self, page_factory: Callable[[], FakePage]):
        self.page_factory = page_factory
        self.contexts: List[FakeContext] = []
        self.connected = True
        self.closed = False
        self._handlers = {}

    def on(self, event, handler):
        self._handlers.setdefault(event, []).append(handler)

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(self.page_factory())
        context.options = options
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True
        self.connected = False

    def crash(self):
        """Simulate the browser process dying."""
        self.connected = False
        for handler in self._handlers.get("disconnected", []):
            handler(self)


class FakeDriver:
    def __init__(self):
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeLauncher:
    """Engine launcher returning FakeBrowser instances."""

    def __init__(self, page_factory: Callable[[], FakePage] = FakePage, fail: bool = False):
        self.page_factory = page_factory
        self.fail = fail
        self.calls = 0
        self.browsers: List[FakeBrowser] = []
        self.drivers: List[FakeDriver] = []

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        browser = FakeBrowser(self.page_factory)
        driver = FakeDriver()
        self.browsers.append(browser)
        self.drivers.append(driver)
        return browser, driver


# ============================================================================
# EXECUTOR DOUBLES
# ============================================================================

class ScriptedExecutor:
    """Fetch executor that replays a script of outcomes.

    Each script item is either an exception instance (raised) or a
    ProductRecord (returned). The last item repeats once the script runs out.
    """

    def __init__(self, outcomes, requires_session: bool = False, delay: float = 0.0):
        self.outcomes = list(outcomes)
        self.requires_session = requires_session
        self.delay = delay
        self.calls = 0
        self.sessions = []
        self.closed = False

    async def fetch(self, request, session=None):
        self.calls += 1
        self.sessions.append(session)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(self.calls - 1, len(self.outcomes) - 1)]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self):
        self.closed = True


def make_record(title: str = "HRX Men Running T-shirt", price: str = "2499", key: str = "12345678") -> ProductRecord:
    return ProductRecord(
        title=title,
        brand="HRX",
        price=price,
        availability=Availability.IN_STOCK,
        images=["https://assets.example.com/1.jpg"],
        sizes=["S", "M", "L"],
        site="myntra",
        source_id=key,
    )


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def extractor_factory() -> ExtractorFactory:
    factory = ExtractorFactory()
    register_all_extractors(factory)
    return factory
