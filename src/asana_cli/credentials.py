"""Credential resolution and principal fingerprinting."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import override

from .exceptions import MissingTokenError
from .protocols import TokenProvider


def principal_for(token: str) -> str:
    """Return a stable, non-reversible identity for a token.

    Used to partition cached responses per credential without ever writing the
    token itself to disk.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class StaticTokenProvider(TokenProvider):
    """Token provider that always returns the same Personal Access Token."""

    token: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.token.strip():
            raise MissingTokenError()

    @override
    def personal_access_token(self) -> str:
        return self.token

    @property
    def principal(self) -> str:
        return principal_for(self.token)

    def __str__(self) -> str:
        return "<redacted token>"
