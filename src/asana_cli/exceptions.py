"""Custom exceptions for the Asana CLI.

Every error raised by the API access layer derives from `AsanaCliError`, so the
CLI can turn any failure into an actionable message and a non-zero exit code.
"""

from __future__ import annotations


class AsanaCliError(Exception):
    """Base exception for all asana-cli errors."""

    pass


class TransportError(AsanaCliError):
    """Raised when a request fails at the network level (connection, timeout).

    Transient failures are retried by the transport; this surfaces only after the
    retry budget is exhausted or for non-retryable network failures.
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Network error while requesting {path}: {reason}")


class ServerError(TransportError):
    """Raised when the API keeps answering with 5xx after all retries."""

    def __init__(self, path: str, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(path, f"server error {status}: {message}")


class RateLimitExceeded(AsanaCliError):
    """Raised when rate-limit retries are exhausted (429 Too Many Requests)."""

    def __init__(self, retry_after: float, body: str = "") -> None:
        self.retry_after = retry_after
        self.body = body
        super().__init__(
            f"Rate limit exceeded. Retry after {retry_after:g} seconds."
        )


class ClientError(AsanaCliError):
    """Raised for non-retryable 4xx responses."""

    def __init__(
        self, status: int, message: str, details: dict[str, object] | None = None
    ) -> None:
        self.status = status
        self.message = message
        self.details = details
        super().__init__(f"HTTP {status}: {message}")


class AuthenticationError(ClientError):
    """Raised when the API rejects the credential (401/403).

    This is a fatal error - retrying with the same token cannot succeed.
    """

    def __str__(self) -> str:
        return (
            f"Authentication failed (HTTP {self.status}): {self.message}\n"
            "Please check that ASANA_PAT holds a valid Personal Access Token.\n"
            "Create a new token at: https://app.asana.com/0/my-apps"
        )


class InvalidResponseError(AsanaCliError):
    """Raised when a response body is not the JSON envelope the API promises."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Invalid response from {path}: {reason}")


class CursorExpired(AsanaCliError):
    """Raised when the server rejects a pagination offset as invalid or expired.

    Never retried: resuming from a stale cursor risks skipping or duplicating items.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(
            f"Pagination cursor for {path} expired or is invalid ({message}). "
            "Re-run the command to restart the listing."
        )


class SubtaskFetchFailed(AsanaCliError):
    """Raised when expanding the subtasks of one parent task fails."""

    def __init__(self, parent_gid: str, cause: BaseException) -> None:
        self.parent_gid = parent_gid
        self.cause = cause
        super().__init__(f"Failed to fetch subtasks of task {parent_gid}: {cause}")


class CacheIOError(AsanaCliError):
    """Raised by the disk cache for unreadable entries; callers degrade to a miss."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Unreadable cache entry {path}: {reason}")


class OfflineCacheMiss(AsanaCliError):
    """Raised in offline mode when a read has no fresh cached response."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Offline mode enabled and no cached response available for {path}."
        )


class OperationCancelledError(AsanaCliError):
    """Raised when the user interrupts an operation; partial results are discarded."""

    def __init__(self, message: str = "Operation cancelled.") -> None:
        super().__init__(message)


class MissingTokenError(AsanaCliError):
    """Raised when no Personal Access Token is configured."""

    def __init__(self) -> None:
        super().__init__(
            "No Asana Personal Access Token configured.\n"
            "Set ASANA_PAT in your environment or .env file."
        )


class MissingScopeError(AsanaCliError):
    """Raised when a task listing has neither an explicit nor a default scope."""

    def __init__(self) -> None:
        super().__init__(
            "Task listing needs a workspace, project or section.\n"
            "Pass --workspace/--project/--section or set ASANA_WORKSPACE / ASANA_PROJECT."
        )


class ConfigFileNotFoundError(AsanaCliError):
    """Raised when a requested config file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Config file not found: {path}")


class ConfigFileParseError(AsanaCliError):
    """Raised when a config file is not valid TOML."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Config file {path} is not valid TOML: {reason}")


class ConfigFileValidationError(AsanaCliError):
    """Raised when a config file fails schema validation."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Config file {path} is invalid: {reason}")
