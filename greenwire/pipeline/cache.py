"""Time-bounded response cache keyed by request fingerprint.

Entries are checked lazily: an expired entry is deleted by the ``get`` that
finds it. Without ``max_entries`` the cache has no size bound beyond TTL
expiry, so long-lived processes issuing many distinct GETs should set one.
"""

from __future__ import annotations

import collections
import dataclasses as dc
import threading
import typing as typ

from greenwire.common.time import monotonic_ms

if typ.TYPE_CHECKING:
    from greenwire.common.time import Clock


@dc.dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached response value and the clock reading when it was stored."""

    value: object
    stored_at_ms: float


@dc.dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of cache occupancy."""

    size: int
    keys: tuple[str, ...]
    evictions: int


class ResponseCache:
    """TTL cache with optional least-recently-used size cap.

    Parameters
    ----------
    ttl_ms
        Validity window; an entry is served while ``now - stored_at < ttl``.
    max_entries
        Optional size cap. When exceeded, the least recently used entry is
        evicted.
    clock
        Millisecond clock; defaults to the monotonic clock.

    """

    def __init__(
        self,
        ttl_ms: float,
        *,
        max_entries: int | None = None,
        clock: Clock = monotonic_ms,
    ) -> None:
        """Create an empty cache."""
        if max_entries is not None and max_entries < 1:
            msg = f"max_entries must be positive, got: {max_entries}"
            raise ValueError(msg)
        self._ttl_ms = ttl_ms
        self._max_entries = max_entries
        self._clock = clock
        self._entries: collections.OrderedDict[str, CacheEntry] = (
            collections.OrderedDict()
        )
        self._evictions = 0
        # Read-then-delete in ``get`` must not interleave with writers.
        self._lock = threading.Lock()

    @property
    def ttl_ms(self) -> float:
        """Validity window in milliseconds."""
        return self._ttl_ms

    def get(self, key: str) -> object | None:
        """Return the live value for ``key`` or ``None``.

        An expired entry is removed before returning ``None``.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at_ms >= self._ttl_ms:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: object) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at_ms=self._clock())
            self._entries.move_to_end(key)
            if self._max_entries is None:
                return
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        """Return current size and keys; expired entries not yet read count."""
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                keys=tuple(self._entries),
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        """Return the number of stored entries."""
        return len(self._entries)
