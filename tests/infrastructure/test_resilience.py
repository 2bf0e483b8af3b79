"""Tests for resilience infrastructure components."""

import threading
import time
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import pytest

from asana_cli.exceptions import OperationCancelledError
from asana_cli.infrastructure import (
    CancellationToken,
    RateLimitState,
    RetryPolicy,
    RetryState,
    parse_retry_after,
)


class TestRetryPolicy:
    """Tests for RetryPolicy and explicit RetryState."""

    def test_backoff_doubles_until_cap(self) -> None:
        policy = RetryPolicy(backoff_factor=0.5, max_backoff_seconds=3.0, jitter_seconds=0)
        delays = [policy.compute_backoff(attempt) for attempt in range(5)]
        assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]

    def test_server_hint_overrides_backoff(self) -> None:
        policy = RetryPolicy(backoff_factor=0.5, jitter_seconds=0)
        assert policy.compute_backoff(2, retry_after=12.0) == 12.0

    def test_jitter_stays_within_bounds(self) -> None:
        policy = RetryPolicy(backoff_factor=1.0, jitter_seconds=0.25)
        for _ in range(20):
            delay = policy.compute_backoff(0)
            assert 1.0 <= delay <= 1.25

    def test_advance_counts_attempts_and_carries_delay(self) -> None:
        policy = RetryPolicy(max_retries=2, backoff_factor=1.0, jitter_seconds=0)
        state = RetryState()

        assert policy.can_retry(state)
        state = policy.advance(state)
        assert state == RetryState(attempt=1, next_delay=1.0)

        state = policy.advance(state, retry_after=5.0)
        assert state == RetryState(attempt=2, next_delay=5.0)
        assert policy.can_retry(state) is False

    def test_zero_retries_never_retries(self) -> None:
        assert RetryPolicy(max_retries=0).can_retry(RetryState()) is False


class TestParseRetryAfter:
    """Tests for Retry-After parsing."""

    def test_numeric_seconds(self) -> None:
        assert parse_retry_after({"Retry-After": "12"}) == 12

    def test_fractional_seconds(self) -> None:
        assert parse_retry_after({"Retry-After": "0.5"}) == 0.5

    def test_http_date(self) -> None:
        future = datetime.now(UTC) + timedelta(seconds=30)
        header = format_datetime(future)
        value = parse_retry_after({"Retry-After": header})
        assert value is not None
        assert 0 <= value <= 30

    @pytest.mark.parametrize("value", ["not-a-date", "-3", "nan", "inf", ""])
    def test_invalid_header_returns_none(self, value: str) -> None:
        assert parse_retry_after({"Retry-After": value}) is None

    def test_missing_header_returns_none(self) -> None:
        assert parse_retry_after({}) is None
        assert parse_retry_after(None) is None


class TestRateLimitState:
    """Tests for RateLimitState diagnostics."""

    def test_ignores_responses_without_rate_limit_headers(self) -> None:
        state = RateLimitState(limit=100, remaining=5)
        state.update_from_headers({"Content-Type": "application/json"})
        assert state.limit == 100
        assert state.remaining == 5

    def test_records_retry_after(self) -> None:
        state = RateLimitState()
        state.update_from_headers({"Retry-After": "30"})
        assert state.retry_after == 30.0

    def test_failure_counter_resets_on_success(self) -> None:
        state = RateLimitState()
        state.record_failure()
        state.record_failure()
        assert state.consecutive_failures == 2
        state.record_success()
        assert state.consecutive_failures == 0

    def test_concurrent_failures_are_all_counted(self) -> None:
        state = RateLimitState()

        def fail_many() -> None:
            for _ in range(500):
                state.record_failure()

        threads = [threading.Thread(target=fail_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert state.consecutive_failures == 2000


class TestCancellationToken:
    """Tests for the cancellation token used as retry scheduler."""

    def test_sleep_returns_after_delay_when_not_cancelled(self) -> None:
        token = CancellationToken()
        started = time.monotonic()
        token.sleep(0.01)
        assert time.monotonic() - started >= 0.005

    def test_cancel_wakes_sleeping_thread(self) -> None:
        token = CancellationToken()
        errors: list[BaseException] = []

        def sleeper() -> None:
            try:
                token.sleep(30)
            except OperationCancelledError as exc:
                errors.append(exc)

        thread = threading.Thread(target=sleeper)
        started = time.monotonic()
        thread.start()
        token.cancel()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert time.monotonic() - started < 5

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(OperationCancelledError):
            token.raise_if_cancelled()

    def test_zero_sleep_still_observes_cancellation(self) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError):
            token.sleep(0)
