"""Response cache implementations for infrastructure.

Usage example:
    from pathlib import Path

    from asana_cli.infrastructure.cache import CachingTransport, DiskCache, ResponseCache

    with ResponseCache(disk=DiskCache(Path("~/.cache/asana-cli").expanduser())) as cache:
        transport = CachingTransport(inner=requests_transport, cache=cache)
        transport.send(RequestDescriptor.get("/users/me", principal=principal))
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Self, TypedDict, override

from ..exceptions import CacheIOError, OfflineCacheMiss
from ..observability import get_logger
from ..protocols import Cache, Transport
from ..types import ApiResponse, RequestDescriptor
from .validation import IncomingDataError, validate_json_as

logger = get_logger("asana_cli.infrastructure.cache")

DEFAULT_TTL_SECONDS = 300.0
_ANONYMOUS = "anonymous"


class CacheEntryIO(TypedDict):
    """Persisted cache entry shape."""

    payload: dict[str, object]
    fetched_at: float
    ttl_seconds: float
    path: str
    query: list[tuple[str, str]]
    principal: str


@dataclass(frozen=True)
class CacheEntry:
    """One cached response; replaced wholesale on refresh, never mutated."""

    payload: dict[str, object]
    fetched_at: float
    ttl_seconds: float
    path: str = ""
    query: tuple[tuple[str, str], ...] = ()
    principal: str = ""

    def is_fresh(self, now: float) -> bool:
        return now < self.fetched_at + self.ttl_seconds

    def names_resource(self, resource_id: str) -> bool:
        if resource_id in [part for part in self.path.split("/") if part]:
            return True
        return any(resource_id in value.split(",") for _, value in self.query)

    def to_json(self) -> str:
        record: CacheEntryIO = {
            "payload": self.payload,
            "fetched_at": self.fetched_at,
            "ttl_seconds": self.ttl_seconds,
            "path": self.path,
            "query": list(self.query),
            "principal": self.principal,
        }
        return json.dumps(record, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | bytes) -> Self:
        record = validate_json_as(CacheEntryIO, text)
        return cls(
            payload=record["payload"],
            fetched_at=record["fetched_at"],
            ttl_seconds=record["ttl_seconds"],
            path=record["path"],
            query=tuple(tuple(pair) for pair in record["query"]),
            principal=record["principal"],
        )


def _empty_entries() -> dict[str, CacheEntry]:
    return {}


@dataclass
class MemoryCache:
    """Process-local cache tier; checked before the disk tier."""

    _entries: dict[str, CacheEntry] = field(default_factory=_empty_entries)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def remove_where(self, predicate: Callable[[CacheEntry], bool]) -> int:
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if predicate(entry)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class DiskCache:
    """File-based cache tier, one directory per credential principal.

    Each access opens, reads or writes, and closes a single file; writes go
    through a temporary file and an atomic rename.
    """

    cache_dir: Path

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)

    def open(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _principal_dir(self, principal: str) -> Path:
        return self.cache_dir / (principal or _ANONYMOUS)

    def _path(self, principal: str, key: str) -> Path:
        h = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._principal_dir(principal) / f"{h}.json"

    def get(self, principal: str, key: str) -> CacheEntry | None:
        """Return the stored entry, None if absent.

        Raises:
            CacheIOError: If the file exists but cannot be read or parsed.
        """
        p = self._path(principal, key)
        try:
            raw = p.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheIOError(str(p), str(exc)) from exc
        try:
            return CacheEntry.from_json(raw)
        except IncomingDataError as exc:
            raise CacheIOError(str(p), "corrupt entry") from exc

    def set(self, principal: str, key: str, entry: CacheEntry) -> None:
        p = self._path(principal, key)
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=p.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(entry.to_json())
            os.replace(tmp_name, p)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def discard(self, principal: str, key: str) -> None:
        self._path(principal, key).unlink(missing_ok=True)

    def entries(self, principal: str | None = None) -> Iterator[tuple[Path, CacheEntry | None]]:
        """Yield (file, entry) pairs; unreadable files yield None as entry."""
        if principal is None:
            roots = [d for d in self.cache_dir.glob("*") if d.is_dir()]
        else:
            roots = [self._principal_dir(principal)]
        for root in roots:
            for p in sorted(root.glob("*.json")):
                try:
                    yield p, CacheEntry.from_json(p.read_bytes())
                except (OSError, IncomingDataError):
                    yield p, None

    def clear(self) -> int:
        removed = 0
        for p, _ in self.entries():
            p.unlink(missing_ok=True)
            removed += 1
        return removed


class ResponseCache(Cache):
    """TTL-bound read-through cache with a memory tier in front of a disk tier.

    Cache failures never fail a request: unreadable disk entries are dropped and
    treated as misses, and disk write failures are logged and ignored.
    """

    def __init__(
        self,
        *,
        disk: DiskCache | None = None,
        memory: MemoryCache | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.disk = disk
        self.memory = memory if memory is not None else MemoryCache()
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def open(self) -> Self:
        if self.disk is not None:
            try:
                self.disk.open()
            except OSError as exc:
                logger.warning("Disk cache unavailable at %s: %s", self.disk.cache_dir, exc)
                self.disk = None
        return self

    def close(self) -> None:
        """Prune expired disk entries and drop the memory tier."""
        if self.disk is not None:
            now = self.clock()
            try:
                for p, entry in self.disk.entries():
                    if entry is None or not entry.is_fresh(now):
                        p.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to prune disk cache: %s", exc)
        self.memory.clear()

    def __enter__(self) -> Self:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _discard(self, request: RequestDescriptor, key: str) -> None:
        if self.disk is None:
            return
        try:
            self.disk.discard(request.principal, key)
        except OSError as exc:
            logger.warning("Failed to drop cache entry for %s: %s", request.path, exc)

    def _lookup(self, request: RequestDescriptor, key: str) -> CacheEntry | None:
        now = self.clock()
        entry = self.memory.get(key)
        if entry is not None and entry.is_fresh(now):
            logger.debug("Cache hit (memory) for %s", request.path)
            return entry
        if self.disk is None:
            return None
        try:
            entry = self.disk.get(request.principal, key)
        except CacheIOError as exc:
            logger.warning("%s; treating as a miss", exc)
            self._discard(request, key)
            return None
        if entry is None:
            return None
        if not entry.is_fresh(now):
            self._discard(request, key)
            return None
        logger.debug("Cache hit (disk) for %s", request.path)
        self.memory.set(key, entry)
        return entry

    @override
    def peek(self, request: RequestDescriptor) -> dict[str, object] | None:
        entry = self._lookup(request, request.canonical())
        return None if entry is None else entry.payload

    @override
    def get_or_fetch(
        self,
        request: RequestDescriptor,
        fetch: Callable[[], dict[str, object]],
    ) -> dict[str, object]:
        key = request.canonical()
        entry = self._lookup(request, key)
        if entry is not None:
            return entry.payload

        payload = fetch()
        entry = CacheEntry(
            payload=payload,
            fetched_at=self.clock(),
            ttl_seconds=self.ttl_seconds,
            path=request.path,
            query=request.query,
            principal=request.principal,
        )
        self.memory.set(key, entry)
        if self.disk is not None:
            try:
                self.disk.set(request.principal, key, entry)
            except OSError as exc:
                logger.warning("Failed to persist cache entry for %s: %s", request.path, exc)
        return payload

    @override
    def invalidate(self, principal: str, resource_id: str) -> int:
        def matches(entry: CacheEntry) -> bool:
            return entry.principal == principal and entry.names_resource(resource_id)

        removed = self.memory.remove_where(matches)
        if self.disk is not None:
            try:
                for p, entry in self.disk.entries(principal):
                    if entry is None or entry.names_resource(resource_id):
                        p.unlink(missing_ok=True)
                        removed += 1
            except OSError as exc:
                logger.warning("Failed to invalidate disk cache for %s: %s", resource_id, exc)
        if removed:
            logger.debug("Invalidated %d cache entries for %s", removed, resource_id)
        return removed

    def clear(self) -> int:
        removed = len(self.memory)
        self.memory.clear()
        if self.disk is not None:
            removed += self.disk.clear()
        return removed


class CachingTransport(Transport):
    """Transport decorator routing reads through the response cache.

    Writes bypass the cache and invalidate cached reads naming the same
    resource ids. In offline mode a read miss raises instead of going to the
    network. Reads marked not cacheable skip the cache.
    """

    def __init__(self, *, inner: Transport, cache: Cache, offline: bool = False) -> None:
        self.inner = inner
        self.cache = cache
        self.offline = offline

    @override
    def send(self, request: RequestDescriptor) -> ApiResponse:
        if request.is_read and not request.cacheable:
            if self.offline:
                raise OfflineCacheMiss(request.path)
            return self.inner.send(request)
        if request.is_read:
            if self.offline:
                payload = self.cache.peek(request)
                if payload is None:
                    raise OfflineCacheMiss(request.path)
                return ApiResponse(status=200, payload=payload)
            payload = self.cache.get_or_fetch(request, lambda: self.inner.send(request).payload)
            return ApiResponse(status=200, payload=payload)

        response = self.inner.send(request)
        for resource_id in _resource_ids(request):
            self.cache.invalidate(request.principal, resource_id)
        return response


def _resource_ids(request: RequestDescriptor) -> list[str]:
    """Return the numeric gids named in a write request's path and body."""
    ids = [part for part in request.path_segments() if part.isdigit()]
    body = request.body or {}
    data = body.get("data")
    if isinstance(data, dict):
        for key in ("parent", "projects", "workspace"):
            value = data.get(key)
            if isinstance(value, str) and value.isdigit():
                ids.append(value)
            elif isinstance(value, list):
                ids.extend(v for v in value if isinstance(v, str) and v.isdigit())
    return ids
