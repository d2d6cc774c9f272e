"""Fetch executors: one attempt at turning a FetchRequest into a ProductRecord.

BrowserFetchExecutor drives a pooled Playwright session. HttpFetchExecutor
is the lightweight fallback that needs no browser. Neither retries on its
own; failures are raised as classified FetchError subclasses for the
RetryController to act on.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Sequence

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from product_scraper.core.exceptions import (
    BotBlockedError,
    HttpStatusError,
    NavigationError,
    NavigationTimeoutError,
    SessionBrokenError,
)
from product_scraper.scrapers.base import FetchRequest, ProductRecord
from product_scraper.scrapers.factory import ExtractorFactory
from product_scraper.scrapers.utils.user_agents import get_random_user_agent

logger = structlog.get_logger(__name__)


# Page titles of block/CAPTCHA interstitials (matched lower-case)
BLOCKED_TITLE_MARKERS = (
    "access denied",
    "captcha",
    "robot check",
    "are you a robot",
    "attention required",
    "just a moment",
    "request blocked",
    "pardon our interruption",
)

# Body phrases specific enough not to appear on normal product pages
BLOCKED_CONTENT_MARKERS = (
    "enter the characters you see below",
    "sorry, we just need to make sure you're not a robot",
    "verify you are human",
    "our systems have detected unusual traffic",
    "please enable cookies and reload the page",
)

# Playwright error fragments meaning the session itself is gone
_SESSION_GONE_MARKERS = ("target closed", "has been closed", "browser has been closed", "crashed", "disconnected")


def detect_block_marker(title: str, html: str) -> Optional[str]:
    """Return the bot-block marker found in a page, or None."""
    title_lower = (title or "").lower()
    for marker in BLOCKED_TITLE_MARKERS:
        if marker in title_lower:
            return marker
    head = (html or "")[:200_000].lower()
    for marker in BLOCKED_CONTENT_MARKERS:
        if marker in head:
            return marker
    return None


class BaseFetchExecutor(ABC):
    """One fetch attempt against a target."""

    requires_session: bool = False

    def __init__(self, extractors: ExtractorFactory):
        self.extractors = extractors

    @abstractmethod
    async def fetch(self, request: FetchRequest, session=None) -> ProductRecord:
        """Fetch and extract one product page.

        Raises:
            TransientFetchError: On a failure worth retrying
            TerminalFetchError: On a failure that retrying cannot fix
        """
        pass

    async def aclose(self) -> None:
        """Release resources held by the executor."""


class BrowserFetchExecutor(BaseFetchExecutor):
    """Fetches a product page through a pooled browser session."""

    requires_session = True

    def __init__(
        self,
        extractors: ExtractorFactory,
        navigation_timeout: float = 45.0,
        wait_conditions: Sequence[str] = ("domcontentloaded",),
        jitter_max: float = 1.0,
        content_wait: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize browser executor.

        Args:
            extractors: Extractor registry keyed by site id
            navigation_timeout: Seconds allowed for page.goto()
            wait_conditions: page.goto wait_until values, one picked per attempt
            jitter_max: Upper bound of the random pre-navigation delay
            content_wait: Seconds to wait for the extractor's ready selector
            sleep: Sleep coroutine, injectable for tests
        """
        super().__init__(extractors)
        self.navigation_timeout = navigation_timeout
        self.wait_conditions = list(wait_conditions) or ["domcontentloaded"]
        self.jitter_max = jitter_max
        self.content_wait = content_wait
        self._sleep = sleep

    async def fetch(self, request: FetchRequest, session=None) -> ProductRecord:
        extractor = self.extractors.get(request.site)
        page = session.page

        if self.jitter_max > 0:
            await self._sleep(random.uniform(0, self.jitter_max))

        wait_until = random.choice(self.wait_conditions)
        logger.info(
            "navigating",
            url=request.url,
            session_id=session.id,
            wait_until=wait_until,
            correlation_id=request.correlation_id,
        )

        try:
            response = await page.goto(
                request.url,
                wait_until=wait_until,
                timeout=self.navigation_timeout * 1000,
            )
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(
                f"Navigation to {request.url} timed out after {self.navigation_timeout}s ({wait_until})"
            ) from e
        except PlaywrightError as e:
            raise self._classify(request.url, e) from e

        if response is None or not response.ok:
            raise NavigationError(request.url, None if response is None else response.status)

        if extractor.wait_selector:
            try:
                await page.wait_for_selector(extractor.wait_selector, timeout=self.content_wait * 1000)
            except PlaywrightTimeoutError:
                logger.debug("wait_selector_timed_out", url=request.url, selector=extractor.wait_selector)
            except PlaywrightError as e:
                raise self._classify(request.url, e) from e

        try:
            # Scroll to trigger lazily loaded sections
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight / 2)")
            title = await page.title()
            html = await page.content()
        except PlaywrightError as e:
            raise self._classify(request.url, e) from e

        marker = detect_block_marker(title, html)
        if marker:
            raise BotBlockedError(request.url, marker)

        return extractor.extract(html, request.url)

    @staticmethod
    def _classify(url: str, error: PlaywrightError):
        message = str(error)
        if any(marker in message.lower() for marker in _SESSION_GONE_MARKERS):
            return SessionBrokenError(f"Session lost while loading {url}: {message}")
        return NavigationError(url, reason=message.splitlines()[0] if message else "Navigation failed")


DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class HttpFetchExecutor(BaseFetchExecutor):
    """Plain HTTP GET fallback, no browser involved.

    Follows redirects up to ``max_redirects`` hops and rejects any
    non-2xx final status without retrying internally.
    """

    requires_session = False

    def __init__(
        self,
        extractors: ExtractorFactory,
        timeout: float = 30.0,
        max_redirects: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(extractors)
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=DEFAULT_HEADERS,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def fetch(self, request: FetchRequest, session=None) -> ProductRecord:
        extractor = self.extractors.get(request.site)
        client = self._get_client()
        logger.info("http_fetching", url=request.url, correlation_id=request.correlation_id)

        try:
            response = await client.get(request.url, headers={"User-Agent": get_random_user_agent()})
        except httpx.TooManyRedirects as e:
            raise NavigationError(request.url, reason=f"Too many redirects (max {self.max_redirects})") from e
        except httpx.TimeoutException as e:
            raise NavigationTimeoutError(f"HTTP request to {request.url} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise NavigationError(request.url, reason=str(e) or type(e).__name__) from e

        if not response.is_success:
            raise HttpStatusError(request.url, response.status_code)

        html = response.text
        marker = detect_block_marker(_html_title(html), html)
        if marker:
            raise BotBlockedError(request.url, marker)

        return extractor.extract(html, request.url)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _html_title(html: str) -> str:
    lower = html.lower()
    start = lower.find("<title")
    if start == -1:
        return ""
    start = lower.find(">", start)
    end = lower.find("</title>", start)
    if start == -1 or end == -1:
        return ""
    return html[start + 1:end].strip()
