"""Playwright session pool with a lazily launched shared browser.

One browser process is shared by every session. Each session is an
isolated browser context with a single page, configured with a rotated
identity and request interception. Idle sessions are kept for reuse up
to a fixed capacity and probed for liveness before being handed out.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
from playwright.async_api import async_playwright

from product_scraper.core.exceptions import EngineUnavailableError, SessionBrokenError
from product_scraper.scrapers.utils.user_agents import IdentityProfile, IdentityRotator

logger = structlog.get_logger(__name__)


# Resource types never needed to read product data
BLOCKED_RESOURCE_TYPES = frozenset(["image", "font", "media", "stylesheet"])

# URL fragments of analytics/ads endpoints
BLOCKED_URL_MARKERS = (
    "google-analytics",
    "googletagmanager",
    "doubleclick",
    "facebook",
    "analytics",
    "tracker",
    "advertisement",
    "hotjar",
)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

# Returns (browser, driver); driver.stop() is awaited after the browser closes
EngineLauncher = Callable[[], Awaitable[Tuple[Any, Any]]]


@dataclass
class BrowserSession:
    """A checked-out or idle browsing session (context + page)."""

    id: str
    context: Any
    page: Any
    identity: IdentityProfile
    engine: Any  # Browser the context belongs to
    created_at: float = field(default_factory=time.time)
    alive: bool = True
    uses: int = 0


async def _intercept_request(route) -> None:
    """Abort heavy or tracking requests, let everything else through."""
    request = route.request
    url = request.url.lower()
    try:
        if request.resource_type in BLOCKED_RESOURCE_TYPES or any(
            marker in url for marker in BLOCKED_URL_MARKERS
        ):
            await route.abort()
        else:
            await route.continue_()
    except Exception as e:
        # Page closed while the request was in flight
        logger.debug("route_handling_failed", url=url, error=str(e))


class SessionPool:
    """Owns the shared browser and a bounded set of reusable sessions.

    - acquire() lends a live idle session or creates a new one
    - release() returns a session, destroying it if the idle set is full
    - invalidate() destroys a session a fetch found unusable
    - shutdown() closes everything; the next acquire() relaunches

    At most ``max_sessions`` sessions are checked out at once and at most
    ``max_idle`` are kept idle.
    """

    def __init__(
        self,
        max_sessions: int = 5,
        max_idle: int = 5,
        headless: bool = True,
        block_resources: bool = True,
        probe_timeout: float = 5.0,
        launcher: Optional[EngineLauncher] = None,
        identities: Optional[List[IdentityProfile]] = None,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        if max_idle < 0:
            raise ValueError("max_idle must not be negative")

        self._max_sessions = max_sessions
        self._max_idle = max_idle
        self._headless = headless
        self._block_resources = block_resources
        self._probe_timeout = probe_timeout
        self._launcher = launcher or self._launch_chromium
        self._identities = IdentityRotator(identities)

        self._slots = asyncio.Semaphore(max_sessions)
        self._idle: List[BrowserSession] = []
        self._in_use: Dict[str, BrowserSession] = {}
        self._browser = None
        self._driver = None
        self._launching: Optional[asyncio.Future] = None
        self.launch_count = 0
        self.logger = logger.bind(service="session_pool")

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    @property
    def engine_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> BrowserSession:
        """Lend a session, waiting for a free slot if all are checked out.

        Raises:
            EngineUnavailableError: If the browser cannot be launched
            SessionBrokenError: If a new context could not be opened
        """
        await self._slots.acquire()
        try:
            session = await self._reuse_idle()
            if session is None:
                session = await self._create_session()
        except BaseException:
            self._slots.release()
            raise

        session.uses += 1
        self._in_use[session.id] = session
        return session

    async def release(self, session: BrowserSession) -> None:
        """Return a session to the idle set, or destroy it if the set is full."""
        if self._in_use.pop(session.id, None) is None:
            self.logger.warning("session_release_ignored", session_id=session.id)
            return
        self._slots.release()

        if not session.alive or session.engine is not self._browser:
            await self._destroy(session, reason="stale")
        elif len(self._idle) < self._max_idle:
            self._idle.append(session)
        else:
            await self._destroy(session, reason="pool_full")

    async def invalidate(self, session: BrowserSession, reason: str = "invalidated") -> None:
        """Destroy a checked-out session instead of returning it."""
        if self._in_use.pop(session.id, None) is None:
            self.logger.warning("session_invalidate_ignored", session_id=session.id)
            return
        self._slots.release()
        await self._destroy(session, reason=reason)

    async def shutdown(self) -> None:
        """Close idle sessions, the browser and the Playwright driver.

        Errors are logged and swallowed. Sessions still checked out are
        marked dead and destroyed when they come back.
        """
        idle, self._idle = self._idle, []
        for session in idle:
            await self._destroy(session, reason="shutdown")
        for session in self._in_use.values():
            session.alive = False

        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                self.logger.warning("engine_close_failed", error=str(e))
        await self._stop_driver()
        self.logger.info("session_pool_shutdown", closed_sessions=len(idle))

    def stats(self) -> Dict[str, Any]:
        return {
            "engine": "connected" if self.engine_connected else "disconnected",
            "idle": self.idle_count,
            "in_use": self.in_use_count,
            "max_sessions": self._max_sessions,
            "max_idle": self._max_idle,
            "launches": self.launch_count,
        }

    async def _reuse_idle(self) -> Optional[BrowserSession]:
        while self._idle:
            session = self._idle.pop()
            if await self._is_alive(session):
                self.logger.debug("session_reused", session_id=session.id, uses=session.uses)
                return session
            await self._destroy(session, reason="probe_failed")
        return None

    async def _is_alive(self, session: BrowserSession) -> bool:
        """Liveness probe: engine connected, page open and responsive."""
        if not session.alive or session.engine is not self._browser:
            return False
        if not self.engine_connected or session.page.is_closed():
            return False
        try:
            await asyncio.wait_for(
                session.page.evaluate("() => document.readyState"),
                timeout=self._probe_timeout,
            )
        except Exception:
            return False
        return True

    async def _create_session(self) -> BrowserSession:
        browser = await self._ensure_engine()
        identity = self._identities.next()

        try:
            context = await browser.new_context(
                user_agent=identity.user_agent,
                viewport=identity.viewport,
                locale=identity.locale,
                timezone_id=identity.timezone_id,
                java_script_enabled=True,
            )
        except Exception as e:
            raise SessionBrokenError(f"Failed to open browser context: {e}") from e

        try:
            if self._block_resources:
                await context.route("**/*", _intercept_request)
            page = await context.new_page()
        except Exception as e:
            await self._close_quietly(context)
            raise SessionBrokenError(f"Failed to open page: {e}") from e

        session = BrowserSession(
            id=uuid.uuid4().hex[:8],
            context=context,
            page=page,
            identity=identity,
            engine=browser,
        )
        self.logger.info(
            "session_created",
            session_id=session.id,
            viewport=identity.viewport,
            idle=self.idle_count,
            in_use=self.in_use_count,
        )
        return session

    async def _ensure_engine(self):
        """Return the shared browser, launching it if needed.

        Concurrent callers share a single in-flight launch.
        """
        if self.engine_connected:
            return self._browser

        if self._launching is None or self._launching.done():
            self._launching = asyncio.ensure_future(self._launch())
        launching = self._launching
        try:
            return await asyncio.shield(launching)
        finally:
            if launching.done() and self._launching is launching:
                self._launching = None

    async def _launch(self):
        await self._stop_driver()
        self.logger.info("engine_launching", headless=self._headless)
        try:
            browser, driver = await self._launcher()
        except Exception as e:
            self.logger.error("engine_launch_failed", error=str(e))
            raise EngineUnavailableError(f"Failed to launch browser: {e}") from e

        browser.on("disconnected", lambda *_: self._on_disconnected(browser))
        self._browser = browser
        self._driver = driver
        self.launch_count += 1
        self.logger.info("engine_started", launch_count=self.launch_count)
        return browser

    async def _launch_chromium(self) -> Tuple[Any, Any]:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=self._headless, args=BROWSER_ARGS)
        except Exception:
            await playwright.stop()
            raise
        return browser, playwright

    def _on_disconnected(self, browser) -> None:
        """Drop every reference to a browser that went away."""
        if browser is not self._browser:
            return
        self.logger.warning("engine_disconnected", idle_dropped=len(self._idle))
        self._browser = None
        for session in self._idle:
            session.alive = False
        self._idle = []
        for session in self._in_use.values():
            if session.engine is browser:
                session.alive = False

    async def _stop_driver(self) -> None:
        driver, self._driver = self._driver, None
        if driver is None:
            return
        try:
            await driver.stop()
        except Exception as e:
            self.logger.warning("driver_stop_failed", error=str(e))

    async def _destroy(self, session: BrowserSession, reason: str) -> None:
        session.alive = False
        await self._close_quietly(session.context)
        self.logger.debug("session_destroyed", session_id=session.id, reason=reason)

    async def _close_quietly(self, context) -> None:
        try:
            await context.close()
        except Exception as e:
            self.logger.debug("context_close_failed", error=str(e))
