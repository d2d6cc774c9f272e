"""Tests for the scraper orchestration service."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from conftest import FakeClock, FakeLauncher, RecordingSleep, ScriptedExecutor, make_record
from product_scraper.config import Settings
from product_scraper.core.exceptions import EngineUnavailableError, NavigationError
from product_scraper.scrapers.factory import ExtractorFactory
from product_scraper.scrapers.fetcher import HttpFetchExecutor
from product_scraper.scrapers.scheduler import FetchScheduler
from product_scraper.scrapers.scraper_service import ScraperService, build_scraper_service
from product_scraper.scrapers.utils.rate_limiter import DomainPacer
from product_scraper.scrapers.utils.retry import RetryController
from product_scraper.scrapers.utils.session_pool import SessionPool
from product_scraper.services.cache_service import ResultCache

PRODUCT_URL = "https://www.myntra.com/products/99887766"


def make_service(
    extractor_factory: ExtractorFactory,
    clock: FakeClock,
    browser_executor=None,
    http_executor=None,
    fetch_mode: str = "browser",
    item_timeout=None,
    pool=None,
) -> ScraperService:
    sleep = RecordingSleep()
    return ScraperService(
        extractors=extractor_factory,
        cache=ResultCache(ttl_seconds=3600, clock=clock),
        scheduler=FetchScheduler(DomainPacer(min_delay=0), item_timeout=item_timeout),
        browser_retry=RetryController(browser_executor, backoff=2.0, sleep=sleep) if browser_executor else None,
        http_retry=RetryController(http_executor, backoff=2.0, sleep=sleep) if http_executor else None,
        pool=pool,
        fetch_mode=fetch_mode,
        max_attempts=3,
        deadline=30.0,
        default_site="myntra",
    )


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor([make_record(key="99887766")])


@pytest_asyncio.fixture
async def service(extractor_factory: ExtractorFactory, clock: FakeClock, executor: ScriptedExecutor):
    service = make_service(extractor_factory, clock, browser_executor=executor)
    yield service
    await service.shutdown()


class TestCaching:
    """Tests for cache hits, misses and expiry through the service."""

    async def test_second_request_within_ttl_is_cached(
        self, service: ScraperService, executor: ScriptedExecutor, clock: FakeClock
    ):
        """Test a repeat request inside the TTL never reaches the fetcher."""
        first = await service.scrape_product("myntra", PRODUCT_URL)
        clock.advance(1800)
        second = await service.scrape_product("myntra", PRODUCT_URL)

        assert first.success is True
        assert first.cached is False
        assert second.success is True
        assert second.cached is True
        assert second.record == first.record
        assert executor.calls == 1

    async def test_request_after_ttl_fetches_again(
        self, service: ScraperService, executor: ScriptedExecutor, clock: FakeClock
    ):
        await service.scrape_product("myntra", PRODUCT_URL)
        clock.advance(3600)
        result = await service.scrape_product("myntra", PRODUCT_URL)

        assert result.cached is False
        assert executor.calls == 2

    async def test_bare_id_and_tracking_url_share_an_entry(self, service: ScraperService, executor: ScriptedExecutor):
        """Test equivalent targets map to the same cache key."""
        await service.scrape_product("myntra", "99887766")
        result = await service.scrape_product("myntra", PRODUCT_URL + "?utm_source=app#reviews")

        assert result.cached is True
        assert executor.calls == 1
        assert service.cache.get("99887766") is not None

    async def test_failures_are_not_cached(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        executor = ScriptedExecutor([NavigationError(PRODUCT_URL, 503)])
        service = make_service(extractor_factory, clock, browser_executor=executor)
        try:
            first = await service.scrape_product("myntra", PRODUCT_URL)
            second = await service.scrape_product("myntra", PRODUCT_URL)
        finally:
            await service.shutdown()

        assert first.success is False
        assert first.error == "exhausted retries"
        assert second.cached is False
        assert executor.calls == 6
        assert service.cache.entries() == []

    async def test_default_site_used_when_missing(self, service: ScraperService, executor: ScriptedExecutor):
        result = await service.scrape_product(None, "99887766")

        assert result.success is True
        assert executor.calls == 1


class TestInvalidInput:
    """Tests for targets rejected before any fetch."""

    @pytest.mark.parametrize(
        "site, target, details",
        [
            ("myntra", "", "URL parameter is required"),
            ("myntra", None, "URL parameter is required"),
            ("ajio", PRODUCT_URL, "No extractor registered for site 'ajio'"),
            ("myntra", "https://www.amazon.in/dp/B0CX23V2ZK", "Invalid Myntra URL"),
        ],
    )
    async def test_invalid_targets(self, service: ScraperService, executor: ScriptedExecutor, site, target, details):
        result = await service.scrape_product(site, target)

        assert result.success is False
        assert result.error == "invalid input"
        assert details in result.details
        assert executor.calls == 0

    async def test_invalid_input_envelope(self, service: ScraperService):
        result = await service.scrape_product("myntra", "")

        assert result.to_dict() == {
            "success": False,
            "error": "invalid input",
            "details": "URL parameter is required",
        }


class TestFetchModes:
    """Tests for browser, HTTP and auto fallback routing."""

    async def test_auto_falls_back_to_http_when_engine_unavailable(
        self, extractor_factory: ExtractorFactory, clock: FakeClock
    ):
        browser = ScriptedExecutor([EngineUnavailableError("Executable doesn't exist")])
        http = ScriptedExecutor([make_record(title="From HTTP", key="99887766")])
        service = make_service(
            extractor_factory, clock, browser_executor=browser, http_executor=http, fetch_mode="auto"
        )
        try:
            result = await service.scrape_product("myntra", PRODUCT_URL)
        finally:
            await service.shutdown()

        assert result.success is True
        assert result.record.title == "From HTTP"
        assert browser.calls == 1
        assert http.calls == 1
        assert [a.error for a in result.attempts] == ["engine unavailable", None]
        assert service.cache.get("99887766") is not None

    async def test_auto_does_not_fall_back_on_other_errors(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        browser = ScriptedExecutor([NavigationError(PRODUCT_URL, 503)])
        http = ScriptedExecutor([make_record()])
        service = make_service(
            extractor_factory, clock, browser_executor=browser, http_executor=http, fetch_mode="auto"
        )
        try:
            result = await service.scrape_product("myntra", PRODUCT_URL)
        finally:
            await service.shutdown()

        assert result.error == "exhausted retries"
        assert http.calls == 0

    async def test_browser_mode_reports_engine_unavailable(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        browser = ScriptedExecutor([EngineUnavailableError("Executable doesn't exist")])
        service = make_service(extractor_factory, clock, browser_executor=browser, fetch_mode="browser")
        try:
            result = await service.scrape_product("myntra", PRODUCT_URL)
        finally:
            await service.shutdown()

        assert result.success is False
        assert result.error == "engine unavailable"

    async def test_http_mode_skips_browser(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        http = ScriptedExecutor([make_record()])
        service = make_service(extractor_factory, clock, http_executor=http, fetch_mode="http")
        try:
            result = await service.scrape_product("myntra", PRODUCT_URL)
        finally:
            await service.shutdown()

        assert result.success is True
        assert http.calls == 1
        assert http.closed is True

    def test_missing_retry_controller_is_rejected(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        with pytest.raises(ValueError):
            make_service(extractor_factory, clock, fetch_mode="browser")
        with pytest.raises(ValueError):
            make_service(extractor_factory, clock, browser_executor=ScriptedExecutor([]), fetch_mode="http")


class TestConcurrency:
    """Tests for coalescing and queue timeouts."""

    async def test_concurrent_requests_for_same_key_share_one_fetch(
        self, extractor_factory: ExtractorFactory, clock: FakeClock
    ):
        executor = ScriptedExecutor([make_record(key="99887766")], delay=0.05)
        service = make_service(extractor_factory, clock, browser_executor=executor)
        try:
            results = await asyncio.gather(
                service.scrape_product("myntra", PRODUCT_URL),
                service.scrape_product("myntra", "99887766"),
                service.scrape_product("myntra", PRODUCT_URL + "?utm=x"),
            )
        finally:
            await service.shutdown()

        assert executor.calls == 1
        assert all(r.success for r in results)
        assert service.stats()["inflight"] == 0

    async def test_queue_timeout_is_reported(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        """Test a job exceeding the scheduler bound yields a timeout failure."""
        executor = ScriptedExecutor([make_record()], delay=5.0)
        service = make_service(extractor_factory, clock, browser_executor=executor, item_timeout=0.05)
        try:
            result = await service.scrape_product("myntra", PRODUCT_URL)
        finally:
            await service.shutdown()

        assert result.success is False
        assert result.error == "timeout"


class TestLifecycle:
    """Tests for stats, loop fault handling and shutdown."""

    async def test_stats(self, service: ScraperService):
        await service.scrape_product("myntra", PRODUCT_URL)

        stats = service.stats()

        assert stats["fetch_mode"] == "browser"
        assert stats["queue_pending"] == 0
        assert stats["pool"] is None
        assert stats["cache"]["entries"] == 1

    async def test_loop_exception_shuts_pool_down(
        self, extractor_factory: ExtractorFactory, clock: FakeClock, launcher: FakeLauncher
    ):
        """Test a stray loop fault closes the browser and the service keeps serving."""
        pool = SessionPool(max_sessions=1, launcher=launcher)
        session = await pool.acquire()
        await pool.release(session)
        executor = ScriptedExecutor([make_record(key="99887766")])
        service = make_service(extractor_factory, clock, browser_executor=executor, pool=pool)
        try:
            loop = asyncio.get_running_loop()
            service.handle_loop_exception(loop, {"message": "Task exception was never retrieved",
                                                 "exception": RuntimeError("boom")})
            await asyncio.sleep(0.01)

            assert launcher.browsers[0].closed is True
            assert pool.engine_connected is False

            result = await service.scrape_product("myntra", PRODUCT_URL)
            assert result.success is True
        finally:
            await service.shutdown()

    async def test_burst_of_loop_faults_resets_pool_once(
        self, extractor_factory: ExtractorFactory, clock: FakeClock, launcher: FakeLauncher
    ):
        """Test repeated faults while a reset is pending start only one reset."""
        pool = SessionPool(max_sessions=1, launcher=launcher)
        executor = ScriptedExecutor([make_record()])
        service = make_service(extractor_factory, clock, browser_executor=executor, pool=pool)
        loop = asyncio.get_running_loop()
        context = {"message": "Task exception was never retrieved", "exception": RuntimeError("boom")}
        try:
            with patch.object(pool, "shutdown", AsyncMock()) as shutdown:
                for _ in range(3):
                    service.handle_loop_exception(loop, context)
                await asyncio.sleep(0)
                assert shutdown.await_count == 1

                service.handle_loop_exception(loop, context)
                await asyncio.sleep(0)
                assert shutdown.await_count == 2
        finally:
            await service.shutdown()

    async def test_shutdown_closes_executors(self, extractor_factory: ExtractorFactory, clock: FakeClock):
        browser = ScriptedExecutor([make_record()])
        http = ScriptedExecutor([make_record()])
        service = make_service(
            extractor_factory, clock, browser_executor=browser, http_executor=http, fetch_mode="auto"
        )

        await service.shutdown()

        assert browser.closed is True
        assert http.closed is True
        assert not service.scheduler.is_running()


class TestBuildScraperService:
    """Tests for wiring from settings."""

    async def test_http_mode_has_no_pool(self):
        settings = Settings(FETCH_MODE="http", CACHE_BACKEND="memory", DEFAULT_SITE="amazon")
        service = build_scraper_service(settings)
        try:
            assert service.pool is None
            assert service.browser_retry is None
            assert isinstance(service.http_retry.executor, HttpFetchExecutor)
            assert service.default_site == "amazon"
            assert service.cache.store is None
        finally:
            await service.shutdown()

    async def test_auto_mode_builds_both_paths(self):
        settings = Settings(FETCH_MODE="auto", CACHE_BACKEND="memory", MAX_SESSIONS=2)
        service = build_scraper_service(settings)
        try:
            assert service.pool.stats()["max_sessions"] == 2
            assert service.browser_retry.pool is service.pool
            assert service.http_retry is not None
            assert service.scheduler.item_timeout == settings.REQUEST_DEADLINE_SECONDS + settings.NAVIGATION_TIMEOUT_SECONDS
        finally:
            await service.shutdown()
