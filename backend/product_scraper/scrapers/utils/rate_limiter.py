"""Per-domain request pacing."""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class _DomainSlot:
    """Serialization lock and last completion time for one domain."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.last_finished: Optional[float] = None


class DomainPacer:
    """Per-domain pacing with a minimum delay between fetches.

    Fetches to the same domain run one at a time, and each one starts at
    least ``min_delay`` seconds after the previous one on that domain
    finished. Different domains do not wait on each other unless the caller
    asks for a global gap, which a single-worker scheduler does so that
    every fetch starts at least ``min_delay`` after the previous one.
    """

    def __init__(
        self,
        min_delay: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize pacer.

        Args:
            min_delay: Seconds between the end of one fetch and the start of the next
            clock: Monotonic clock, injectable for tests
            sleep: Sleep coroutine, injectable for tests
        """
        if min_delay < 0:
            raise ValueError("min_delay must not be negative")
        self.min_delay = min_delay
        self._clock = clock
        self._sleep = sleep
        self._slots: Dict[str, _DomainSlot] = {}
        self._custom_delays: Dict[str, float] = {}
        self._last_finished_any: Optional[float] = None

    def _get_slot(self, domain: str) -> _DomainSlot:
        """Get or create the slot for a domain."""
        if domain not in self._slots:
            self._slots[domain] = _DomainSlot()
        return self._slots[domain]

    def get_delay(self, domain: str) -> float:
        return self._custom_delays.get(domain, self.min_delay)

    def set_custom_delay(self, domain: str, delay: float) -> None:
        """Override the pacing delay for one domain.

        Args:
            domain: Domain name (e.g., "www.myntra.com")
            delay: Seconds between fetches to that domain
        """
        self._custom_delays[domain] = delay

    @asynccontextmanager
    async def pace(self, domain: str, global_gap: bool = False) -> AsyncIterator[None]:
        """Hold the domain for the duration of one fetch.

        Waits for the domain to be free and for its pacing delay to
        elapse. With ``global_gap`` the fetch also waits ``min_delay``
        after the previous fetch to any domain finished. The completion
        time is recorded on exit, including when the fetch raised.
        """
        slot = self._get_slot(domain)
        async with slot.lock:
            wait_time = 0.0
            if slot.last_finished is not None:
                wait_time = slot.last_finished + self.get_delay(domain) - self._clock()
            if global_gap and self._last_finished_any is not None:
                wait_time = max(wait_time, self._last_finished_any + self.min_delay - self._clock())
            if wait_time > 0:
                logger.debug("pacing_wait", domain=domain, wait_seconds=round(wait_time, 3))
                await self._sleep(wait_time)
            try:
                yield
            finally:
                slot.last_finished = self._clock()
                self._last_finished_any = slot.last_finished
