"""
Result cache injected into the extraction service.
"""

import hashlib
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import structlog

from .types import ExtractionOptions, ExtractionResult


logger = structlog.get_logger(__name__)


class ExtractionCache(Protocol):
    """Key/value store for extraction results with per-entry TTL."""

    def get(self, key: str) -> Optional[ExtractionResult]:
        ...

    def set(self, key: str, value: ExtractionResult, ttl: Optional[float] = None) -> None:
        ...


def make_cache_key(text: str, options: Optional[ExtractionOptions] = None) -> str:
    """
    Build the cache key of one extraction.

    Args:
        text: Normalized document text
        options: Per-call options; only fields that change the output count

    Returns:
        Hex sha256 digest
    """
    fields = options.cache_fields() if options is not None else ()
    digest = hashlib.sha256()
    digest.update(text.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(repr(fields).encode("utf-8"))
    return digest.hexdigest()


class InMemoryExtractionCache:
    """
    Process-local LRU cache with per-entry expiry.

    Entries expire ``ttl`` seconds after they are set (monotonic clock).
    When full, the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 256,
        default_ttl: Optional[float] = 3600.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize in-memory cache.

        Args:
            max_entries: Entries kept before LRU eviction
            default_ttl: Seconds an entry lives when ``set`` gets no TTL; None never expires
            clock: Monotonic time source
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Optional[float], ExtractionResult]]" = OrderedDict()

        self.logger = logger.bind(component="InMemoryExtractionCache")
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0, "expirations": 0}

    def get(self, key: str) -> Optional[ExtractionResult]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        expires_at, value = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            return None

        self._entries.move_to_end(key)
        self._stats["hits"] += 1
        return value

    def set(self, key: str, value: ExtractionResult, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl is not None and ttl <= 0:
            return

        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = (expires_at, value)
        self._entries.move_to_end(key)
        self._stats["sets"] += 1

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._stats["evictions"] += 1
            self.logger.debug("Cache entry evicted", key=evicted[:12])

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Hit, miss and eviction counters."""
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hit_rate": self._stats["hits"] / lookups if lookups else 0.0,
        }
