"""Protocol definitions for dependency injection.

These protocols define the abstract interfaces that the API access layer and the
task pipeline depend on, enabling isolated unit testing with fake implementations.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from .types import ApiResponse, RequestDescriptor


@runtime_checkable
class Transport(Protocol):
    """Abstract transport executing one API request."""

    def send(self, request: RequestDescriptor) -> ApiResponse:
        """Execute the request and return the parsed response.

        Raises:
            TransportError: On network failures after retries are exhausted.
            RateLimitExceeded: When rate-limit retries are exhausted.
            ClientError: On non-retryable 4xx responses.
        """
        ...


@runtime_checkable
class Cache(Protocol):
    """Abstract read-through response cache."""

    def get_or_fetch(
        self,
        request: RequestDescriptor,
        fetch: Callable[[], dict[str, object]],
    ) -> dict[str, object]:
        """Return a fresh cached payload or call `fetch` and store its result."""
        ...

    def peek(self, request: RequestDescriptor) -> dict[str, object] | None:
        """Return a fresh cached payload without fetching, or None."""
        ...

    def invalidate(self, principal: str, resource_id: str) -> int:
        """Drop cached entries of `principal` whose path names `resource_id`."""
        ...


@runtime_checkable
class Sleeper(Protocol):
    """Scheduling primitive used to wait between retry attempts."""

    def sleep(self, seconds: float) -> None:
        """Suspend the calling operation for `seconds`."""
        ...


@runtime_checkable
class TokenProvider(Protocol):
    """Resolves the active Personal Access Token."""

    def personal_access_token(self) -> str:
        """Return the token used for the Authorization header."""
        ...


@runtime_checkable
class ScopeDefaults(Protocol):
    """Configuration provider for default listing scope values."""

    @property
    def default_workspace(self) -> str | None: ...

    @property
    def default_project(self) -> str | None: ...

    @property
    def default_assignee(self) -> str | None: ...
