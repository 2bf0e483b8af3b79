"""Resilience utilities for infrastructure.

Usage example:
    from asana_cli.infrastructure.resilience import CancellationToken, RetryPolicy, RetryState

    policy = RetryPolicy(max_retries=3, backoff_factor=0.5)
    token = CancellationToken()
    state = RetryState()
    if policy.can_retry(state):
        state = policy.advance(state)
        token.sleep(state.next_delay)
"""

from __future__ import annotations

import math
import random
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import override

import requests

from ..exceptions import OperationCancelledError
from ..protocols import Sleeper


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Parse a Retry-After header (seconds or HTTP date) into seconds."""
    if not headers:
        return None
    value = headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        if not math.isfinite(seconds) or seconds < 0:
            return None
        return seconds
    try:
        dt = parsedate_to_datetime(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        delta = (dt - datetime.now(UTC)).total_seconds()
        return max(0.0, float(int(delta)))
    except (AttributeError, OverflowError, TypeError, ValueError):
        return None


def _header_int(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class RetryState:
    """Explicit retry progress: attempts made so far and the delay before the next one."""

    attempt: int = 0
    next_delay: float = 0.0


@dataclass
class RetryPolicy:
    """Retry policy for transient failures."""

    max_retries: int = 3
    backoff_factor: float = 0.5
    max_backoff_seconds: float = 60.0
    jitter_seconds: float = 0.1
    retry_statuses: tuple[int, ...] = (429, 500, 502, 503, 504)
    retry_exceptions: tuple[type[Exception], ...] = (requests.Timeout, requests.ConnectionError)

    def compute_backoff(self, attempt: int, retry_after: float | None = None) -> float:
        """Compute the delay for `attempt`; a server hint is honoured as given."""
        if retry_after is not None:
            return float(retry_after)
        base = min(self.max_backoff_seconds, self.backoff_factor * (2**attempt))
        if self.jitter_seconds > 0:
            base += random.uniform(0.0, self.jitter_seconds)
        return float(base)

    def can_retry(self, state: RetryState) -> bool:
        return state.attempt < self.max_retries

    def advance(self, state: RetryState, retry_after: float | None = None) -> RetryState:
        """Return the state for the next attempt, carrying the delay to wait first."""
        return RetryState(
            attempt=state.attempt + 1,
            next_delay=self.compute_backoff(state.attempt, retry_after),
        )


@dataclass
class RateLimitState:
    """Latest rate-limit metadata reported by the API, kept for diagnostics.

    Shared by concurrent requests, so every mutation happens under a lock.
    """

    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None
    retry_after: float | None = None
    consecutive_failures: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def update_from_headers(self, headers: Mapping[str, str] | None) -> None:
        if not headers:
            return
        limit = _header_int(headers, "X-RateLimit-Limit")
        remaining = _header_int(headers, "X-RateLimit-Remaining")
        reset = _header_int(headers, "X-RateLimit-Reset")
        retry_after = parse_retry_after(headers)
        if limit is None and remaining is None and reset is None and retry_after is None:
            return
        with self._lock:
            self.limit = limit
            self.remaining = remaining
            self.reset = reset
            self.retry_after = retry_after

    def record_failure(self) -> None:
        with self._lock:
            self.consecutive_failures += 1

    def record_success(self) -> None:
        with self._lock:
            self.consecutive_failures = 0

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "limit": self.limit,
                "remaining": self.remaining,
                "reset": self.reset,
                "retry_after": self.retry_after,
                "consecutive_failures": self.consecutive_failures,
            }


class CancellationToken(Sleeper):
    """Process-wide cancellation flag that doubles as the retry scheduler.

    `sleep` waits on an event, so a cancel wakes every sleeping retry at once
    instead of letting it run out its backoff.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()

    @override
    def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        if self._event.wait(seconds):
            raise OperationCancelledError()
