"""Tests for the retry controller."""

import pytest

from conftest import FakeLauncher, RecordingSleep, ScriptedExecutor, make_record
from product_scraper.core.exceptions import (
    BotBlockedError,
    InvalidTargetError,
    NavigationError,
    NavigationTimeoutError,
)
from product_scraper.scrapers.base import FetchRequest
from product_scraper.scrapers.utils.retry import RetryController
from product_scraper.scrapers.utils.session_pool import SessionPool

URL = "https://www.myntra.com/products/12345678"


def make_request(max_attempts: int = 3, deadline: float = 30.0) -> FetchRequest:
    return FetchRequest(url=URL, key="12345678", site="myntra", deadline=deadline, max_attempts=max_attempts)


class TestRetryController:
    """Tests for attempt bounding, backoff and classification."""

    async def test_success_on_first_attempt(self, recording_sleep: RecordingSleep):
        """Test a successful fetch returns the record after one attempt."""
        executor = ScriptedExecutor([make_record()])
        controller = RetryController(executor, backoff=2.0, sleep=recording_sleep)

        result = await controller.execute(make_request())

        assert result.success is True
        assert result.record.title == "HRX Men Running T-shirt"
        assert len(result.attempts) == 1
        assert result.attempts[0].success is True
        assert recording_sleep.delays == []

    async def test_transient_failure_then_success(self, recording_sleep: RecordingSleep):
        """Test a transient failure is retried after backoff."""
        executor = ScriptedExecutor([NavigationError(URL, 503), make_record()])
        controller = RetryController(executor, backoff=2.0, sleep=recording_sleep)

        result = await controller.execute(make_request())

        assert result.success is True
        assert executor.calls == 2
        assert [a.error for a in result.attempts] == ["navigation failed", None]
        assert recording_sleep.delays == [2.0]

    async def test_success_stops_remaining_attempts(self, recording_sleep: RecordingSleep):
        """Test a success on attempt 2 of 4 makes no further attempts."""
        executor = ScriptedExecutor([BotBlockedError(URL, "captcha"), make_record(), KeyError("unreachable")])
        controller = RetryController(executor, backoff=1.0, sleep=recording_sleep)

        result = await controller.execute(make_request(max_attempts=4))

        assert result.success is True
        assert executor.calls == 2
        assert len(result.attempts) == 2

    async def test_attempts_bounded_with_linear_backoff(self, recording_sleep: RecordingSleep):
        """Test retries stop at max_attempts with n * backoff waits."""
        executor = ScriptedExecutor([NavigationTimeoutError("Navigation timed out")])
        controller = RetryController(executor, backoff=2.0, sleep=recording_sleep)

        result = await controller.execute(make_request(max_attempts=3))

        assert result.success is False
        assert result.error == "exhausted retries"
        assert "navigation timeout" in result.details
        assert executor.calls == 3
        assert len(result.attempts) == 3
        assert recording_sleep.delays == [2.0, 4.0]

    async def test_terminal_error_is_not_retried(self, recording_sleep: RecordingSleep):
        """Test a terminal error stops after a single attempt."""
        executor = ScriptedExecutor([InvalidTargetError("Invalid URL: 'nope'")])
        controller = RetryController(executor, sleep=recording_sleep)

        result = await controller.execute(make_request())

        assert result.success is False
        assert result.error == "invalid input"
        assert executor.calls == 1
        assert recording_sleep.delays == []

    async def test_unexpected_exception_becomes_failure_value(self, recording_sleep: RecordingSleep):
        """Test an unclassified exception is reported, not raised."""
        executor = ScriptedExecutor([KeyError("price")])
        controller = RetryController(executor, sleep=recording_sleep)

        result = await controller.execute(make_request())

        assert result.success is False
        assert result.error == "fetch failed"
        assert executor.calls == 1

    async def test_deadline_cancels_remaining_attempts(self):
        """Test the request deadline ends the request with a timeout."""
        executor = ScriptedExecutor([make_record()], delay=5.0)
        controller = RetryController(executor)

        result = await controller.execute(make_request(deadline=0.05))

        assert result.success is False
        assert result.error == "timeout"
        assert "timed out" in result.details
        assert result.attempts[0].error == "cancelled"

    def test_session_executor_needs_pool(self):
        """Test a browser executor without a pool is rejected."""
        with pytest.raises(ValueError):
            RetryController(ScriptedExecutor([make_record()], requires_session=True))


class TestRetryWithSessions:
    """Tests for session borrowing around attempts."""

    async def test_session_released_after_success(self, launcher: FakeLauncher, recording_sleep: RecordingSleep):
        """Test a successful attempt returns its session to the pool."""
        pool = SessionPool(max_sessions=1, launcher=launcher)
        executor = ScriptedExecutor([make_record()], requires_session=True)
        controller = RetryController(executor, pool=pool, sleep=recording_sleep)

        result = await controller.execute(make_request())

        assert result.success is True
        assert executor.sessions[0] is not None
        assert pool.in_use_count == 0
        assert pool.idle_count == 1

    async def test_failed_attempt_gets_fresh_session(self, launcher: FakeLauncher, recording_sleep: RecordingSleep):
        """Test a failing session is destroyed and the retry uses a new one."""
        pool = SessionPool(max_sessions=1, launcher=launcher)
        executor = ScriptedExecutor(
            [BotBlockedError(URL, "access denied"), make_record()],
            requires_session=True,
        )
        controller = RetryController(executor, pool=pool, backoff=0.5, sleep=recording_sleep)

        result = await controller.execute(make_request())

        first, second = executor.sessions
        assert result.success is True
        assert first.id != second.id
        assert first.context.closed is True
        assert pool.in_use_count == 0

    async def test_deadline_invalidates_checked_out_session(self, launcher: FakeLauncher):
        """Test a session held when the deadline fires is not leaked."""
        pool = SessionPool(max_sessions=1, launcher=launcher)
        executor = ScriptedExecutor([make_record()], requires_session=True, delay=5.0)
        controller = RetryController(executor, pool=pool)

        result = await controller.execute(make_request(deadline=0.05))

        assert result.error == "timeout"
        assert pool.in_use_count == 0
        assert executor.sessions[0].context.closed is True

    async def test_engine_unavailable_is_terminal(self, recording_sleep: RecordingSleep):
        """Test a browser that cannot launch fails fast with its own category."""
        launcher = FakeLauncher(fail=True)
        pool = SessionPool(max_sessions=1, launcher=launcher)
        executor = ScriptedExecutor([make_record()], requires_session=True)
        controller = RetryController(executor, pool=pool, sleep=recording_sleep)

        result = await controller.execute(make_request())

        assert result.success is False
        assert result.error == "engine unavailable"
        assert launcher.calls == 1
        assert executor.calls == 0
        assert recording_sleep.delays == []
