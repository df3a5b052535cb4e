"""
Response Cache

LRU cache of provider responses keyed by the serialized message array.
Entries expire after ttl_seconds. Cache hits never reach the network
and never consume rate quota.
"""

import time
from collections import OrderedDict
from typing import Callable, Optional

import structlog

from src.models.provider import ProviderResponse


logger = structlog.get_logger(__name__)


class ResponseCache:
    """TTL + LRU response cache with hit/miss counters."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 100,
        clock: Optional[Callable[[], float]] = None,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[str, tuple[float, ProviderResponse]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[ProviderResponse]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        stored_at, response = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            self._misses += 1
            return None

        self._entries.move_to_end(key)
        self._hits += 1
        return response

    def put(self, key: str, response: ProviderResponse) -> None:
        self._entries[key] = (self._clock(), response)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("cache_evicted", key_chars=len(evicted))

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }
