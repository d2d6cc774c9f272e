"""Scraper orchestration service.

This service is the single entry point for "get me this product". It ties
the extractor registry, result cache, fetch scheduler, session pool and
retry controllers together:

    cache hit -> return
    miss -> scheduler admits -> retry controller drives the browser fetch
         -> (engine unavailable) HTTP fallback -> cache put -> return
"""

import asyncio
from typing import Any, Dict, Optional

import structlog

from product_scraper.config import Settings
from product_scraper.core.exceptions import (
    EngineUnavailableError,
    ExtractorNotFoundError,
    InvalidTargetError,
)
from product_scraper.scrapers.base import FetchRequest, FetchResult
from product_scraper.scrapers.factory import ExtractorFactory
from product_scraper.scrapers.fetcher import BrowserFetchExecutor, HttpFetchExecutor
from product_scraper.scrapers.register_extractors import build_extractor_factory
from product_scraper.scrapers.scheduler import FetchScheduler
from product_scraper.scrapers.utils.rate_limiter import DomainPacer
from product_scraper.scrapers.utils.retry import RetryController
from product_scraper.scrapers.utils.session_pool import SessionPool
from product_scraper.services.cache_service import ResultCache
from product_scraper.services.result_store import build_result_store

logger = structlog.get_logger(__name__)


class ScraperService:
    """Service for fetching product data with caching, queueing and retries.

    Every public operation returns a FetchResult; failures are reported as
    values and never raised to the caller.
    """

    def __init__(
        self,
        extractors: ExtractorFactory,
        cache: ResultCache,
        scheduler: FetchScheduler,
        browser_retry: Optional[RetryController] = None,
        http_retry: Optional[RetryController] = None,
        pool: Optional[SessionPool] = None,
        fetch_mode: str = "auto",
        max_attempts: int = 3,
        deadline: float = 90.0,
        default_site: str = "generic",
    ):
        """Initialize scraper service.

        Args:
            extractors: Extractor registry keyed by site id
            cache: Result cache consulted before and filled after each fetch
            scheduler: FIFO admission queue for browser fetches
            browser_retry: Retry controller wrapping the browser executor
            http_retry: Retry controller wrapping the HTTP fallback executor
            pool: Session pool, shut down with the service
            fetch_mode: "browser", "http" or "auto" (browser, HTTP when the engine is unavailable)
            max_attempts: Attempts per request
            deadline: Seconds allowed for one request, retries included
            default_site: Site id used when the caller gives none
        """
        if fetch_mode in ("browser", "auto") and browser_retry is None:
            raise ValueError(f"fetch_mode '{fetch_mode}' needs a browser retry controller")
        if fetch_mode == "http" and http_retry is None:
            raise ValueError("fetch_mode 'http' needs an HTTP retry controller")

        self.extractors = extractors
        self.cache = cache
        self.scheduler = scheduler
        self.browser_retry = browser_retry
        self.http_retry = http_retry
        self.pool = pool
        self.fetch_mode = fetch_mode
        self.max_attempts = max_attempts
        self.deadline = deadline
        self.default_site = default_site
        self._inflight: Dict[str, asyncio.Task] = {}
        self._pool_reset: Optional[asyncio.Task] = None
        self.logger = logger.bind(service="scraper_service")

    async def scrape_product(self, site_id: Optional[str], url_or_id: Optional[str]) -> FetchResult:
        """Return current product data for a URL or bare product id.

        Args:
            site_id: Extractor to use, None for the default site
            url_or_id: Product page URL or site-specific product id

        Returns:
            FetchResult; ``cached`` is set when served from the cache
        """
        site_id = site_id or self.default_site
        try:
            extractor = self.extractors.get(site_id)
            url = extractor.build_url(url_or_id)
            extractor.validate_url(url)
            key = extractor.derive_key(url)
        except (ExtractorNotFoundError, InvalidTargetError) as e:
            self.logger.warning("invalid_scrape_target", site_id=site_id, target=url_or_id, error=e.message)
            return FetchResult.failure(InvalidTargetError.category, e.message)

        entry = self.cache.get(key)
        if entry is not None:
            self.logger.info("serving_cached_result", key=key, site_id=site_id)
            return FetchResult(success=True, record=entry.record, cached=True)

        inflight = self._inflight.get(key)
        if inflight is not None:
            self.logger.info("joining_inflight_request", key=key, site_id=site_id)
            return await asyncio.shield(inflight)

        request = FetchRequest(
            url=url,
            key=key,
            site=site_id,
            deadline=self.deadline,
            max_attempts=self.max_attempts,
        )
        task = asyncio.ensure_future(self._fetch_and_store(request))
        self._inflight[key] = task
        task.add_done_callback(lambda done: self._forget_inflight(key, done))
        return await asyncio.shield(task)

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _fetch_and_store(self, request: FetchRequest) -> FetchResult:
        log = self.logger.bind(correlation_id=request.correlation_id, key=request.key, site_id=request.site)
        log.info("scrape_started", url=request.url, fetch_mode=self.fetch_mode)

        if self.fetch_mode == "http":
            result = await self.http_retry.execute(request)
        else:
            result = await self._fetch_with_browser(request)
            if (
                self.fetch_mode == "auto"
                and self.http_retry is not None
                and not result.success
                and result.error == EngineUnavailableError.category
            ):
                log.warning("falling_back_to_http", details=result.details)
                browser_attempts = result.attempts
                result = await self.http_retry.execute(request)
                result.attempts = browser_attempts + result.attempts

        if result.success:
            await self.cache.put(request.key, result.record)
            log.info("scrape_completed", attempts=len(result.attempts))
        else:
            log.warning("scrape_failed", error=result.error, details=result.details, attempts=len(result.attempts))
        return result

    async def _fetch_with_browser(self, request: FetchRequest) -> FetchResult:
        try:
            return await self.scheduler.run(lambda: self.browser_retry.execute(request), domain=request.domain)
        except asyncio.TimeoutError:
            return FetchResult.failure("timeout", f"Request for {request.url} was not completed in time")
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise
            return FetchResult.failure("fetch failed", "Request was dropped from the queue")

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        """Event-loop exception handler.

        Logs the stray fault and closes the browser in the background; the
        pool relaunches it on the next request and the service keeps running.
        """
        exception = context.get("exception")
        self.logger.error(
            "unhandled_loop_exception",
            message=context.get("message"),
            error=str(exception) if exception else None,
            exc_info=exception,
        )
        if self.pool is None or loop.is_closed():
            return
        if self._pool_reset is not None and not self._pool_reset.done():
            self.logger.debug("pool_reset_already_pending")
            return
        self._pool_reset = loop.create_task(self.pool.shutdown())

    def stats(self) -> Dict[str, Any]:
        return {
            "fetch_mode": self.fetch_mode,
            "queue_pending": self.scheduler.pending(),
            "inflight": len(self._inflight),
            "pool": self.pool.stats() if self.pool else None,
            "cache": self.cache.stats(),
        }

    async def shutdown(self) -> None:
        """Stop the queue, close the browser, HTTP client and durable store."""
        await self.scheduler.stop()
        if self._pool_reset is not None:
            await asyncio.gather(self._pool_reset, return_exceptions=True)
        if self.pool is not None:
            await self.pool.shutdown()
        for retry in (self.browser_retry, self.http_retry):
            if retry is not None:
                await retry.executor.aclose()
        if self.cache.store is not None:
            try:
                await self.cache.store.close()
            except Exception as e:
                self.logger.warning("store_close_failed", error=str(e))
        self.logger.info("scraper_service_shutdown")


def build_scraper_service(settings: Settings) -> ScraperService:
    """Wire a ScraperService from application settings."""
    extractors = build_extractor_factory(settings)
    store = build_result_store(settings.CACHE_BACKEND, settings.CACHE_DIR, settings.REDIS_URL)
    cache = ResultCache(ttl_seconds=settings.CACHE_TTL_SECONDS, store=store)
    scheduler = FetchScheduler(
        DomainPacer(min_delay=settings.RATE_LIMIT_DELAY_SECONDS),
        concurrency=settings.SCHEDULER_CONCURRENCY,
        item_timeout=settings.REQUEST_DEADLINE_SECONDS + settings.NAVIGATION_TIMEOUT_SECONDS,
    )

    pool = None
    browser_retry = None
    if settings.FETCH_MODE in ("browser", "auto"):
        pool = SessionPool(
            max_sessions=settings.MAX_SESSIONS,
            max_idle=settings.IDLE_POOL_SIZE,
            headless=settings.HEADLESS,
            probe_timeout=settings.SESSION_PROBE_TIMEOUT_SECONDS,
        )
        browser_executor = BrowserFetchExecutor(
            extractors,
            navigation_timeout=settings.NAVIGATION_TIMEOUT_SECONDS,
            wait_conditions=settings.get_wait_conditions(),
            jitter_max=settings.FETCH_JITTER_MAX_SECONDS,
        )
        browser_retry = RetryController(browser_executor, pool=pool, backoff=settings.RETRY_BACKOFF_SECONDS)

    http_retry = None
    if settings.FETCH_MODE in ("http", "auto"):
        http_executor = HttpFetchExecutor(
            extractors,
            timeout=settings.NAVIGATION_TIMEOUT_SECONDS,
            max_redirects=settings.HTTP_MAX_REDIRECTS,
        )
        http_retry = RetryController(http_executor, backoff=settings.RETRY_BACKOFF_SECONDS)

    return ScraperService(
        extractors=extractors,
        cache=cache,
        scheduler=scheduler,
        browser_retry=browser_retry,
        http_retry=http_retry,
        pool=pool,
        fetch_mode=settings.FETCH_MODE,
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        deadline=settings.REQUEST_DEADLINE_SECONDS,
        default_site=settings.DEFAULT_SITE,
    )
