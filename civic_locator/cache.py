"""In-process TTL cache for nearby-feature responses."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from . import config
from .geo import round_coord
from .models import Candidate

logger = logging.getLogger(__name__)

BucketKey = Tuple[float, float, int]


def make_bucket_key(
    lat: float, lng: float, radius_m: int, decimals: int = config.NEARBY_CACHE_DECIMALS
) -> BucketKey:
    return (round_coord(lat, decimals), round_coord(lng, decimals), int(radius_m))


@dataclass(frozen=True)
class CacheEntry:
    features: Tuple[Candidate, ...]
    created_at: float


class NearbyCache:
    """Bucketed feature lists; entries expire after ``ttl_seconds`` and the
    oldest-created entry is evicted once ``max_entries`` is exceeded."""

    def __init__(
        self,
        ttl_seconds: float = config.NEARBY_CACHE_TTL_SECONDS,
        max_entries: int = config.NEARBY_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, int(max_entries))
        self.clock = clock
        self._entries: "OrderedDict[BucketKey, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: BucketKey) -> Optional[List[Candidate]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self.clock() - entry.created_at
        if age >= self.ttl_seconds:
            logger.debug("Nearby cache expired %s (age %.1fs)", key, age)
            del self._entries[key]
            return None
        return list(entry.features)

    def set(self, key: BucketKey, features: List[Candidate]) -> None:
        # Re-inserting moves the key to the newest position.
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(features=tuple(features), created_at=self.clock())
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Nearby cache evicted %s", evicted)

    def keys(self) -> List[BucketKey]:
        return list(self._entries.keys())

    def clear(self) -> None:
        self._entries.clear()
