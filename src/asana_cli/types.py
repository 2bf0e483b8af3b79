"""Typed request/response contracts shared by the API access layer."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Self, TypedDict

READ_METHODS = frozenset({"GET"})


@dataclass(frozen=True)
class RequestDescriptor:
    """Identity of one API request.

    `principal` is a fingerprint of the credential, never the raw token; it is
    part of the canonical form so cached responses never cross credentials.
    Reads with `cacheable` unset always go to the network.
    """

    method: str
    path: str
    query: tuple[tuple[str, str], ...] = ()
    principal: str = ""
    body: Mapping[str, object] | None = field(default=None, compare=False, hash=False)
    cacheable: bool = field(default=True, compare=False)

    @classmethod
    def get(
        cls,
        path: str,
        query: Mapping[str, str] | None = None,
        *,
        principal: str = "",
        cacheable: bool = True,
    ) -> Self:
        pairs = tuple((query or {}).items())
        return cls(
            method="GET", path=path, query=pairs, principal=principal, cacheable=cacheable
        )

    @property
    def is_read(self) -> bool:
        return self.method.upper() in READ_METHODS

    def canonical(self) -> str:
        """Return the stable string form used as cache key."""
        return json.dumps(
            [
                self.method.upper(),
                "/" + self.path.strip("/"),
                sorted(self.query),
                self.principal,
            ],
            separators=(",", ":"),
        )

    def with_query(self, **params: str) -> Self:
        """Return a copy with the given query parameters set (replacing existing keys)."""
        kept = tuple((k, v) for k, v in self.query if k not in params)
        return replace(self, query=kept + tuple(params.items()))

    def query_value(self, key: str) -> str | None:
        for k, v in self.query:
            if k == key:
                return v
        return None

    def path_segments(self) -> tuple[str, ...]:
        return tuple(part for part in self.path.split("/") if part)


@dataclass(frozen=True)
class ApiResponse:
    """A successful API response with its parsed JSON payload."""

    status: int
    payload: dict[str, object]
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Page:
    """One page of a list endpoint; `next_cursor` is None on the last page."""

    items: list[dict[str, object]]
    next_cursor: str | None = None

    @property
    def is_last(self) -> bool:
        return self.next_cursor is None


class NextPageIO(TypedDict, total=False):
    """Asana `next_page` metadata."""

    offset: str | None
    path: str | None
    uri: str | None


class ListResponseIO(TypedDict, total=False):
    """Asana list envelope."""

    data: list[dict[str, object]]
    next_page: NextPageIO | None


class ErrorEntryIO(TypedDict, total=False):
    message: str
    help: str
    phrase: str


class ErrorResponseIO(TypedDict, total=False):
    errors: list[ErrorEntryIO]


class WorkspaceRefIO(TypedDict, total=False):
    gid: str
    name: str | None


class UserIO(TypedDict, total=False):
    """The authenticated user (`GET /users/me`)."""

    gid: str
    name: str | None
    email: str | None
    workspaces: list[WorkspaceRefIO]
