"""In-memory relationship cache with targeted invalidation and stampede protection."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, order=True)
class RecordRef:
    """A record a cached value was derived from."""
    collection: str
    record_id: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.record_id}"


Fingerprint = frozenset  # frozenset[RecordRef]

ComputeFn = Callable[[], Awaitable[tuple[Any, "frozenset[RecordRef]"]]]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached value with metadata."""
    key: str
    value: Any
    created_at: float
    expires_at: float
    fingerprint: frozenset[RecordRef] = frozenset()

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def ttl_seconds(self) -> float:
        return self.expires_at - self.created_at


@dataclass
class _InFlight:
    """One shared computation for a cold key, reference-counted by its waiters."""
    task: asyncio.Future | None = None
    waiters: int = 0
    stale: bool = False
    invalidated: set[RecordRef] = field(default_factory=set)
    invalidated_collections: set[str] = field(default_factory=set)

    def superseded(self, fingerprint: frozenset[RecordRef]) -> bool:
        if self.stale:
            return True
        return any(
            ref in self.invalidated or ref.collection in self.invalidated_collections
            for ref in fingerprint
        )


@dataclass
class RelationshipCache:
    """
    Thread-safe cache of resolved relationship values.

    - TTL-based expiration, then LRU eviction once over capacity
    - Reverse index from contributing record to dependent keys, so
      invalidate(collection, record_id) drops exactly the affected entries
    - get_or_compute collapses concurrent misses on one key into a single
      shared computation
    """
    # Maximum entries
    max_size: int = 10000

    # Default TTL
    default_ttl_seconds: float = 300.0

    # Monotonic clock (injectable for tests)
    clock: Callable[[], float] = time.monotonic

    # Internal storage
    _store: OrderedDict[str, CacheEntry] = field(default_factory=OrderedDict, init=False)
    _dependents: dict[RecordRef, set[str]] = field(default_factory=dict, init=False)
    _in_flight: dict[str, _InFlight] = field(default_factory=dict, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    # Stats
    _hits: int = field(default=0, init=False)
    _misses: int = field(default=0, init=False)
    _evictions: int = field(default=0, init=False)
    _expirations: int = field(default=0, init=False)
    _invalidations: int = field(default=0, init=False)
    _coalesced: int = field(default=0, init=False)

    @staticmethod
    def make_key(
        collection: str,
        record_id: str,
        property: str,
        options: dict[str, Any] | None = None,
    ) -> str:
        """Hash of (collection, record id, property, resolver options)."""
        payload = json.dumps(
            [collection, str(record_id), property, options or {}],
            sort_keys=True,
            default=str,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Any | None:
        """
        Get a value from cache.

        Returns None if not found or expired; use get_entry to tell a
        cached None apart from a miss.
        """
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: str) -> CacheEntry | None:
        """Get the full cache entry if present and unexpired."""
        with self._lock:
            return self._lookup(key)

    def set(
        self,
        key: str,
        value: Any,
        fingerprint: frozenset[RecordRef] = frozenset(),
        ttl_seconds: float | None = None,
    ) -> CacheEntry:
        """Store a value with the set of records it was derived from."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        now = self.clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl,
            fingerprint=frozenset(fingerprint),
        )

        with self._lock:
            self._remove(key)
            self._store[key] = entry
            for ref in entry.fingerprint:
                self._dependents.setdefault(ref, set()).add(key)
            self._evict_if_needed(now)
        return entry

    def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        with self._lock:
            return self._remove(key)

    def invalidate(self, collection: str, record_id: str) -> int:
        """Drop every entry derived from this record. Returns count removed."""
        ref = RecordRef(collection, str(record_id))
        with self._lock:
            keys = list(self._dependents.get(ref, ()))
            for key in keys:
                self._remove(key)
            self._invalidations += len(keys)
            for flight in self._detach_in_flight():
                flight.invalidated.add(ref)

        if keys:
            logger.debug(f"Invalidated {len(keys)} entries for {ref}")
        return len(keys)

    def invalidate_collection(self, collection: str) -> int:
        """Drop every entry derived from any record of a collection."""
        with self._lock:
            keys: set[str] = set()
            for ref, dependent_keys in self._dependents.items():
                if ref.collection == collection:
                    keys.update(dependent_keys)
            for key in keys:
                self._remove(key)
            self._invalidations += len(keys)
            for flight in self._detach_in_flight():
                flight.invalidated_collections.add(collection)

        if keys:
            logger.debug(f"Invalidated {len(keys)} entries for collection {collection}")
        return len(keys)

    def clear(self) -> None:
        """Clear all entries. In-flight computations will not be stored."""
        with self._lock:
            self._store.clear()
            self._dependents.clear()
            for flight in self._detach_in_flight():
                flight.stale = True

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count removed."""
        with self._lock:
            return self._purge_expired(self.clock())

    async def get_or_compute(
        self,
        key: str,
        compute: ComputeFn,
        ttl_seconds: float | None = None,
    ) -> tuple[Any, bool]:
        """
        Get from cache or compute once for all concurrent callers.

        `compute` returns (value, fingerprint). Returns (value, from_cache).

        A caller that is cancelled stops waiting without affecting other
        waiters; the shared computation is cancelled only when its last
        waiter leaves. Nothing is stored unless the computation succeeds.
        """
        with self._lock:
            entry = self._lookup(key)
            if entry is not None:
                return entry.value, True

            flight = self._in_flight.get(key)
            if flight is None:
                flight = _InFlight()
                flight.task = asyncio.ensure_future(self._run(key, flight, compute, ttl_seconds))
                self._in_flight[key] = flight
            else:
                self._coalesced += 1
            flight.waiters += 1

        cancelled = False
        try:
            value = await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            self._leave(key, flight, cancelled)
        return value, False

    async def _run(
        self,
        key: str,
        flight: _InFlight,
        compute: ComputeFn,
        ttl_seconds: float | None,
    ) -> Any:
        try:
            value, fingerprint = await compute()
            with self._lock:
                if flight.superseded(fingerprint):
                    logger.debug(f"Result for {key[:12]} invalidated while computing; not cached")
                else:
                    self.set(key, value, fingerprint, ttl_seconds)
            return value
        finally:
            with self._lock:
                if self._in_flight.get(key) is flight:
                    del self._in_flight[key]

    def _leave(self, key: str, flight: _InFlight, cancelled: bool) -> None:
        with self._lock:
            flight.waiters -= 1
            abandon = cancelled and flight.waiters == 0 and not flight.task.done()
            if abandon and self._in_flight.get(key) is flight:
                del self._in_flight[key]
        if abandon:
            flight.task.cancel()
            logger.debug(f"Abandoned computation for {key[:12]}: no waiters left")

    def _detach_in_flight(self) -> list[_InFlight]:
        """
        Unregister running computations (caller holds lock).

        Current waiters keep awaiting their shared task; the next caller
        for the same key starts a fresh computation that sees the change.
        """
        flights = list(self._in_flight.values())
        self._in_flight.clear()
        return flights

    def _lookup(self, key: str) -> CacheEntry | None:
        """Lookup with stats and LRU touch (caller holds lock)."""
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self.clock()):
            self._remove(key)
            self._expirations += 1
            self._misses += 1
            return None
        self._store.move_to_end(key)
        self._hits += 1
        return entry

    def _remove(self, key: str) -> bool:
        """Remove an entry and its reverse-index links (caller holds lock)."""
        entry = self._store.pop(key, None)
        if entry is None:
            return False
        for ref in entry.fingerprint:
            keys = self._dependents.get(ref)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._dependents[ref]
        return True

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, e in self._store.items() if e.is_expired(now)]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)
        return len(expired)

    def _evict_if_needed(self, now: float) -> None:
        """Expired entries go first, then least recently used (caller holds lock)."""
        if len(self._store) <= self.max_size:
            return
        self._purge_expired(now)
        while len(self._store) > self.max_size:
            oldest = next(iter(self._store))
            self._remove(oldest)
            self._evictions += 1

    @property
    def size(self) -> int:
        """Current number of entries."""
        return len(self._store)

    @property
    def in_flight(self) -> int:
        """Computations new callers can join."""
        with self._lock:
            return len(self._in_flight)

    @property
    def stats(self) -> dict:
        """Cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0

            return {
                "size": self.size,
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "invalidations": self._invalidations,
                "coalesced": self._coalesced,
                "in_flight": len(self._in_flight),
                "hit_rate_percent": round(hit_rate, 2),
            }
