"""HTTP transport for the Asana REST API.

Usage example:
    import requests

    from asana_cli.credentials import StaticTokenProvider
    from asana_cli.infrastructure.http import RequestsTransport
    from asana_cli.infrastructure.resilience import CancellationToken, RetryPolicy
    from asana_cli.types import RequestDescriptor

    transport = RequestsTransport(
        session=requests.Session(),
        token_provider=StaticTokenProvider("0/abc..."),
        retry_policy=RetryPolicy(max_retries=3),
        sleeper=CancellationToken(),
    )
    response = transport.send(RequestDescriptor.get("/users/me"))
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import override

import requests

from .. import __version__
from ..exceptions import (
    AuthenticationError,
    ClientError,
    InvalidResponseError,
    RateLimitExceeded,
    ServerError,
    TransportError,
)
from ..observability import get_logger
from ..protocols import Sleeper, TokenProvider, Transport
from ..types import ApiResponse, ErrorResponseIO, RequestDescriptor
from .resilience import CancellationToken, RateLimitState, RetryPolicy, RetryState, parse_retry_after
from .validation import IncomingDataError, validate_as

logger = get_logger("asana_cli.infrastructure.http")

DEFAULT_API_BASE_URL = "https://app.asana.com/api/1.0"


def _response_details(response: requests.Response) -> str:
    """Return a compact body summary for error reporting."""
    try:
        body = response.text
    except (UnicodeDecodeError, ValueError, requests.RequestException):
        body = "<unreadable>"
    body = " ".join(body.split())
    if len(body) > 300:
        body = body[:300] + "..."
    return body


def _parse_error_body(response: requests.Response) -> tuple[str, dict[str, object] | None]:
    """Extract a human message and the structured payload from an error response."""
    text = _response_details(response) or response.reason or "unknown error"
    try:
        payload = response.json()
    except ValueError:
        return text, None
    if not isinstance(payload, dict):
        return text, None
    try:
        body = validate_as(ErrorResponseIO, payload)
    except IncomingDataError:
        return text, payload
    messages = [entry["message"] for entry in body.get("errors", []) if entry.get("message")]
    if messages:
        return "; ".join(messages), payload
    return text, payload


def _parse_success_body(path: str, response: requests.Response) -> dict[str, object]:
    if response.status_code == 204 or not response.content:
        return {}
    try:
        payload: object = response.json()
    except ValueError as exc:
        raise InvalidResponseError(path, "body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidResponseError(path, "expected a JSON object")
    if "data" not in payload and "errors" not in payload:
        raise InvalidResponseError(path, "missing required `data` or `errors` field")
    return payload


class RequestsTransport(Transport):
    """Requests-backed transport with credential injection and retry/backoff.

    Error handling:
    - 401/403 raise AuthenticationError immediately (fatal)
    - 429 waits for the Retry-After hint (or exponential backoff) and retries
    - 5xx and connection/timeout failures retry with capped exponential backoff
    - Other 4xx raise ClientError immediately with the parsed error body
    - Every response updates RateLimitState for diagnostics
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_API_BASE_URL,
        retry_policy: RetryPolicy | None = None,
        sleeper: Sleeper | None = None,
        rate_limit: RateLimitState | None = None,
        timeout_seconds: float = 30.0,
        connect_timeout_seconds: float = 10.0,
    ) -> None:
        self.session = session
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleeper = sleeper or CancellationToken()
        self.rate_limit = rate_limit or RateLimitState()
        self.timeout_seconds = timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token_provider.personal_access_token()}",
            "Accept": "application/json",
            "User-Agent": f"asana-cli/{__version__}",
        }

    def _check_cancelled(self) -> None:
        if isinstance(self.sleeper, CancellationToken):
            self.sleeper.raise_if_cancelled()

    def _wait(self, state: RetryState, request: RequestDescriptor, reason: str) -> None:
        logger.warning(
            "%s on %s %s; retrying in %.2fs (attempt %d/%d)",
            reason,
            request.method,
            request.path,
            state.next_delay,
            state.attempt,
            self.retry_policy.max_retries,
        )
        self.sleeper.sleep(state.next_delay)

    @override
    def send(self, request: RequestDescriptor) -> ApiResponse:
        """Execute `request`, retrying transient failures within the retry budget.

        Raises:
            AuthenticationError: If the API returns 401/403.
            RateLimitExceeded: If 429 responses outlast the retry budget.
            ServerError: If 5xx responses outlast the retry budget.
            TransportError: If connection failures/timeouts outlast the retry budget.
            ClientError: For other 4xx responses.
            OperationCancelledError: If the operation was cancelled.
        """
        url = self.build_url(request.path)
        body = json.dumps(dict(request.body)) if request.body is not None else None
        state = RetryState()
        while True:
            self._check_cancelled()
            headers = self._headers()
            if body is not None:
                headers["Content-Type"] = "application/json"
            try:
                r = self.session.request(
                    request.method.upper(),
                    url,
                    params=list(request.query) or None,
                    data=body,
                    headers=headers,
                    timeout=(self.connect_timeout_seconds, self.timeout_seconds),
                )
            except self.retry_policy.retry_exceptions as exc:
                self.rate_limit.record_failure()
                if self.retry_policy.can_retry(state):
                    state = self.retry_policy.advance(state)
                    self._wait(state, request, type(exc).__name__)
                    continue
                raise TransportError(request.path, str(exc)) from exc
            except requests.RequestException as exc:
                self.rate_limit.record_failure()
                raise TransportError(request.path, str(exc)) from exc

            response_headers: Mapping[str, str] = getattr(r, "headers", None) or {}
            self.rate_limit.update_from_headers(response_headers)
            status = r.status_code

            if status == 429:
                self.rate_limit.record_failure()
                retry_after = parse_retry_after(response_headers)
                if self.retry_policy.can_retry(state):
                    state = self.retry_policy.advance(state, retry_after)
                    self._wait(state, request, "Rate limited")
                    continue
                details = _response_details(r)
                logger.warning("Rate limit response: %s", details)
                suggested = self.retry_policy.compute_backoff(state.attempt, retry_after)
                raise RateLimitExceeded(suggested, details)

            if status in (401, 403):
                self.rate_limit.record_failure()
                message, payload = _parse_error_body(r)
                raise AuthenticationError(status, message, payload)

            if status >= 500:
                self.rate_limit.record_failure()
                if status in self.retry_policy.retry_statuses and self.retry_policy.can_retry(
                    state
                ):
                    state = self.retry_policy.advance(state)
                    self._wait(state, request, f"Server error {status}")
                    continue
                message, _ = _parse_error_body(r)
                raise ServerError(request.path, status, message)

            if status >= 400:
                self.rate_limit.record_failure()
                message, payload = _parse_error_body(r)
                raise ClientError(status, message, payload)

            self.rate_limit.record_success()
            payload = _parse_success_body(request.path, r)
            logger.debug("%s %s -> %d", request.method, request.path, status)
            return ApiResponse(status=status, payload=payload, headers=dict(response_headers))
