"""Offset-based pagination over Asana list endpoints.

Usage example:
    from asana_cli.infrastructure.pagination import paginate
    from asana_cli.types import RequestDescriptor

    request = RequestDescriptor.get("/tasks", {"project": "1200"})
    for item in paginate(transport, request, limit=50):
        print(item["gid"])
"""

from __future__ import annotations

from collections.abc import Iterator

from ..exceptions import ClientError, CursorExpired, InvalidResponseError
from ..observability import get_logger
from ..protocols import Transport
from ..types import ListResponseIO, Page, RequestDescriptor
from .validation import IncomingDataError, validate_as

logger = get_logger("asana_cli.infrastructure.pagination")

MAX_PAGE_SIZE = 100


def _mentions_expired_offset(text: str) -> bool:
    lowered = text.lower()
    return "offset" in lowered and ("expired" in lowered or "invalid" in lowered)


def is_offset_expired(error: ClientError) -> bool:
    """Check whether a 400 response rejects the pagination offset."""
    if error.status != 400:
        return False
    details = error.details or {}
    errors = details.get("errors")
    if isinstance(errors, list):
        for entry in errors:
            if isinstance(entry, dict) and _mentions_expired_offset(str(entry.get("message", ""))):
                return True
    return _mentions_expired_offset(error.message)


def fetch_page(transport: Transport, request: RequestDescriptor) -> Page:
    """Fetch one page and split it into items and the continuation cursor.

    Raises:
        CursorExpired: If the server rejects the request's offset.
        InvalidResponseError: If the body is not a list envelope.
    """
    try:
        response = transport.send(request)
    except ClientError as exc:
        if request.query_value("offset") is not None and is_offset_expired(exc):
            raise CursorExpired(request.path, exc.message) from exc
        raise
    try:
        envelope = validate_as(ListResponseIO, response.payload)
    except IncomingDataError as exc:
        raise InvalidResponseError(request.path, "expected a list envelope") from exc
    next_page = envelope.get("next_page") or {}
    return Page(items=list(envelope.get("data", [])), next_cursor=next_page.get("offset") or None)


def paginate(
    transport: Transport,
    request: RequestDescriptor,
    limit: int | None = None,
    *,
    page_size: int = MAX_PAGE_SIZE,
) -> Iterator[dict[str, object]]:
    """Yield items of a list endpoint lazily, one page request at a time.

    The next page is only requested once the consumer has pulled every item of
    the current one. Iteration stops at the last page or after exactly `limit`
    items; transport errors propagate to the consumer.
    """
    if limit is not None and limit <= 0:
        return
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))
    emitted = 0
    cursor: str | None = None
    pages = 0
    while True:
        wanted = page_size if limit is None else min(page_size, limit - emitted)
        page_request = request.with_query(limit=str(wanted))
        if cursor is not None:
            page_request = page_request.with_query(offset=cursor)
        page = fetch_page(transport, page_request)
        pages += 1
        for item in page.items:
            yield item
            emitted += 1
            if limit is not None and emitted >= limit:
                logger.debug("Stopped %s at limit %d after %d pages", request.path, limit, pages)
                return
        if page.is_last:
            logger.debug("Fetched %d items from %s in %d pages", emitted, request.path, pages)
            return
        cursor = page.next_cursor
