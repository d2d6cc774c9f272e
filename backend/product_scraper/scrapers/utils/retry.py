"""Retry controller with progressive backoff and a request deadline."""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from product_scraper.core.exceptions import FetchError, TransientFetchError
from product_scraper.scrapers.base import FetchAttempt, FetchRequest, FetchResult, ProductRecord
from product_scraper.scrapers.utils.session_pool import SessionPool

logger = structlog.get_logger(__name__)


class RetryController:
    """Runs a fetch executor until it succeeds, gives up, or runs out of time.

    Each attempt borrows a session from the pool (for executors that need
    one), releases it on success and invalidates it on failure so the next
    attempt starts clean. Only TransientFetchError is retried; the wait
    before attempt n+1 is n * backoff seconds. The whole loop is bounded by
    the request's deadline.

    execute() never raises: every outcome is a FetchResult.
    """

    def __init__(
        self,
        executor,
        pool: Optional[SessionPool] = None,
        backoff: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize retry controller.

        Args:
            executor: Fetch executor (see product_scraper.scrapers.fetcher)
            pool: Session pool, required when the executor needs sessions
            backoff: Base delay in seconds between attempts
            sleep: Sleep coroutine used between attempts, injectable for tests
        """
        if executor.requires_session and pool is None:
            raise ValueError(f"{type(executor).__name__} needs a session pool")
        self.executor = executor
        self.pool = pool
        self.backoff = backoff
        self._sleep = sleep
        self.logger = logger.bind(service="retry_controller")

    async def execute(self, request: FetchRequest) -> FetchResult:
        """Fetch one product, retrying transient failures.

        Args:
            request: What to fetch, with its deadline and attempt budget

        Returns:
            FetchResult with the record on success, or error/details
        """
        log = self.logger.bind(
            correlation_id=request.correlation_id,
            key=request.key,
            site=request.site,
        )
        attempts: List[FetchAttempt] = []

        try:
            record = await asyncio.wait_for(
                self._attempt_loop(request, attempts, log),
                timeout=request.deadline,
            )
        except asyncio.TimeoutError:
            log.warning("request_deadline_exceeded", deadline=request.deadline, attempts=len(attempts))
            return FetchResult.failure(
                "timeout",
                f"Scraping operation timed out after {request.deadline}s",
                attempts,
            )
        except TransientFetchError as e:
            log.error("retries_exhausted", attempts=len(attempts), error=str(e))
            return FetchResult.failure("exhausted retries", f"{e.category}: {e}", attempts)
        except FetchError as e:
            log.warning("fetch_aborted", error_category=e.category, error=str(e))
            return FetchResult.failure(e.category, str(e), attempts)
        except Exception as e:
            log.error("fetch_unexpected_error", error=str(e), exc_info=True)
            return FetchResult.failure("fetch failed", str(e) or type(e).__name__, attempts)

        log.info("fetch_succeeded", attempts=len(attempts))
        return FetchResult.ok(record, attempts)

    async def _attempt_loop(self, request: FetchRequest, attempts: List[FetchAttempt], log) -> ProductRecord:
        def log_retry(retry_state: RetryCallState) -> None:
            log.warning(
                "fetch_attempt_retrying",
                attempt=retry_state.attempt_number,
                max_attempts=request.max_attempts,
                next_delay=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(retry_state.outcome.exception()),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(request.max_attempts),
            wait=wait_incrementing(start=self.backoff, increment=self.backoff),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        record = None
        async for attempt in retrying:
            with attempt:
                record = await self._run_attempt(request, attempt.retry_state.attempt_number, attempts)
        return record

    async def _run_attempt(self, request: FetchRequest, number: int, attempts: List[FetchAttempt]) -> ProductRecord:
        attempt = FetchAttempt(number=number, started_at=time.time())
        attempts.append(attempt)
        started = time.monotonic()
        session = None

        try:
            if self.executor.requires_session:
                session = await self.pool.acquire()
            record = await self.executor.fetch(request, session)
        except BaseException as e:
            attempt.elapsed = time.monotonic() - started
            if isinstance(e, FetchError):
                attempt.error = e.category
            elif isinstance(e, asyncio.CancelledError):
                attempt.error = "cancelled"
            else:
                attempt.error = type(e).__name__
            if session is not None:
                await self.pool.invalidate(session, reason=attempt.error)
            raise

        attempt.elapsed = time.monotonic() - started
        attempt.success = True
        if session is not None:
            await self.pool.release(session)
        return record
