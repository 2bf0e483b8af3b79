"""Concrete infrastructure implementations and shared helpers."""

from .cache import CacheEntry, CachingTransport, DiskCache, MemoryCache, ResponseCache
from .http import DEFAULT_API_BASE_URL, RequestsTransport
from .pagination import fetch_page, is_offset_expired, paginate
from .resilience import (
    CancellationToken,
    RateLimitState,
    RetryPolicy,
    RetryState,
    parse_retry_after,
)

__all__ = [
    "DEFAULT_API_BASE_URL",
    "CacheEntry",
    "CachingTransport",
    "CancellationToken",
    "DiskCache",
    "MemoryCache",
    "RateLimitState",
    "RequestsTransport",
    "ResponseCache",
    "RetryPolicy",
    "RetryState",
    "fetch_page",
    "is_offset_expired",
    "paginate",
    "parse_retry_after",
]
