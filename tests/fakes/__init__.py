"""Exports for test fakes."""

from .clock import FakeClock
from .config import FakeScopeDefaults
from .resilience import RecordingSleeper
from .transport import FakeTransport, PagedSource, list_page

__all__ = [
    "FakeClock",
    "FakeScopeDefaults",
    "FakeTransport",
    "PagedSource",
    "RecordingSleeper",
    "list_page",
]
