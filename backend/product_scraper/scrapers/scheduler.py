"""FIFO admission queue for outbound product fetches.

Every browser fetch goes through a single FetchScheduler. Jobs are
admitted in submission order by a fixed number of worker tasks, and each
job runs inside the DomainPacer so fetches to one domain stay serialized
and spaced apart.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import structlog

from product_scraper.scrapers.utils.rate_limiter import DomainPacer

logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass
class _QueueItem:
    job: Job
    domain: str
    future: asyncio.Future
    enqueued_at: float = field(default_factory=time.monotonic)


class FetchScheduler:
    """Bounded-concurrency FIFO scheduler.

    This scheduler:
    - Admits jobs strictly in submission order
    - Runs at most ``concurrency`` jobs at a time
    - Paces jobs per domain through the DomainPacer, and with a single
      worker also spaces consecutive jobs across domains
    - Resolves each job's future with its own result or exception,
      so one failing job never stops the queue
    """

    def __init__(
        self,
        pacer: DomainPacer,
        concurrency: int = 1,
        item_timeout: Optional[float] = None,
    ):
        """Initialize fetch scheduler.

        Args:
            pacer: Per-domain pacing gate
            concurrency: Number of jobs allowed in flight
            item_timeout: Upper bound in seconds for a single job, None for no bound
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.pacer = pacer
        self.concurrency = concurrency
        self.item_timeout = item_timeout
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self.logger = logger.bind(service="fetch_scheduler")

    def start(self) -> None:
        """Start the worker tasks. Must be called from a running event loop."""
        if self.is_running():
            self.logger.warning("scheduler_already_running")
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"fetch-worker-{index}")
            for index in range(self.concurrency)
        ]
        self.logger.info("scheduler_started", concurrency=self.concurrency)

    async def stop(self) -> None:
        """Cancel the workers and every job still waiting in the queue."""
        if not self.is_running():
            return

        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if not item.future.done():
                item.future.cancel()
                dropped += 1
        self.logger.info("scheduler_stopped", dropped=dropped)

    def is_running(self) -> bool:
        return bool(self._workers) and not all(w.done() for w in self._workers)

    def pending(self) -> int:
        """Number of jobs waiting for admission."""
        return self._queue.qsize() if self._queue is not None else 0

    def submit(self, job: Job, domain: str = "*") -> asyncio.Future:
        """Enqueue a job and return a future for its result.

        Args:
            job: Zero-argument coroutine function performing the fetch
            domain: Pacing key, normally the target hostname

        Returns:
            Future resolved with the job's return value or exception
        """
        if not self.is_running():
            self.start()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_QueueItem(job=job, domain=domain or "*", future=future))
        self.logger.debug("job_enqueued", domain=domain, pending=self.pending())
        return future

    async def run(self, job: Job, domain: str = "*") -> Any:
        """Submit a job and wait for its turn and its result."""
        return await self.submit(job, domain)

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item.future.cancelled():
                    self.logger.debug("job_skipped_cancelled", domain=item.domain)
                    continue
                await self._process(item, index)
            finally:
                self._queue.task_done()

    async def _process(self, item: _QueueItem, index: int) -> None:
        async with self.pacer.pace(item.domain, global_gap=self.concurrency == 1):
            self.logger.debug(
                "job_admitted",
                worker=index,
                domain=item.domain,
                waited_seconds=round(time.monotonic() - item.enqueued_at, 3),
            )
            try:
                if self.item_timeout is not None:
                    result = await asyncio.wait_for(item.job(), timeout=self.item_timeout)
                else:
                    result = await item.job()
            except asyncio.CancelledError:
                item.future.cancel()
                raise
            except Exception as e:
                self.logger.warning(
                    "job_failed",
                    worker=index,
                    domain=item.domain,
                    error=str(e) or type(e).__name__,
                )
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)

        if self.pending():
            self.logger.debug("queue_continuing", pending=self.pending())
