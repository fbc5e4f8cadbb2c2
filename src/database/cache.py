"""
Caching interface for geographic lookup responses.

Provides a session-lifetime key/value store with key patterns like
counties:v1, constituencies:{county_code}:v1, wards:{const_code}:v1 and
stations:{ward_code}:v1. Entries never expire; the store is discarded with the
session that owns it.
"""

import copy
import fnmatch
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from models.geography import HierarchyLevel


logger = logging.getLogger(__name__)

KEY_VERSION = "v1"


@dataclass
class CacheEntry:
    """Represents a cached lookup response with metadata."""
    key: str
    payload: Any
    created_at: float
    access_count: int = 0
    last_accessed: Optional[float] = None


class CacheInterface(ABC):
    """Abstract interface for keyed cache implementations."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get a payload from cache, or None when absent."""
        pass

    @abstractmethod
    def set(self, key: str, payload: Any) -> None:
        """Store a payload under key."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all cache entries."""
        pass

    @abstractmethod
    def keys(self, pattern: Optional[str] = None) -> List[str]:
        """Get all keys, optionally matching a pattern."""
        pass

    def __contains__(self, key: str) -> bool:
        return key in self.keys()


class KeyedCache(CacheInterface):
    """
    In-memory session cache with no eviction and no TTL.

    Payloads are deep-copied on the way in and on the way out so that a
    caller mutating a lookup result can never alter the stored entry.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        entry.access_count += 1
        entry.last_accessed = time.time()
        return copy.deepcopy(entry.payload)

    def set(self, key: str, payload: Any) -> None:
        self._entries[key] = CacheEntry(
            key=key,
            payload=copy.deepcopy(payload),
            created_at=time.time(),
        )
        logger.debug(f"Cached {key}")

    def clear(self) -> None:
        if self._entries:
            logger.debug(f"Clearing {len(self._entries)} cache entries")
        self._entries.clear()

    def keys(self, pattern: Optional[str] = None) -> List[str]:
        all_keys = list(self._entries.keys())
        if pattern is None:
            return all_keys
        return [key for key in all_keys if fnmatch.fnmatch(key, pattern)]

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self._hits + self._misses
        return {
            'total_entries': len(self._entries),
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': self._hits / lookups if lookups > 0 else 0.0,
        }


# Key prefix per hierarchy level.
LEVEL_KEY_PREFIXES = {
    HierarchyLevel.COUNTY: "counties",
    HierarchyLevel.CONSTITUENCY: "constituencies",
    HierarchyLevel.WARD: "wards",
    HierarchyLevel.POLLING_STATION: "stations",
}


class GeoLookupCache:
    """
    Specialized cache for hierarchy lookups with standard key patterns.

    Key patterns:
    - counties:v1: County list
    - constituencies:{county_code}:v1: Constituencies of one county
    - wards:{const_code}:v1: Wards of one constituency
    - stations:{ward_code}:v1: Polling stations of one ward
    - capacity:{ward_code}:v1: Station capacities of one ward
    """

    def __init__(self, cache: Optional[CacheInterface] = None):
        self.cache = cache if cache is not None else KeyedCache()

    @staticmethod
    def make_key(level: HierarchyLevel, parent_code: Optional[str] = None) -> str:
        """Create the deterministic cache key for one level lookup."""
        prefix = LEVEL_KEY_PREFIXES[level]
        if level == HierarchyLevel.COUNTY:
            return f"{prefix}:{KEY_VERSION}"
        if not parent_code:
            raise ValueError(f"{level.value} lookups need a parent code")
        return f"{prefix}:{parent_code}:{KEY_VERSION}"

    @staticmethod
    def capacity_key(ward_code: str) -> str:
        return f"capacity:{ward_code}:{KEY_VERSION}"

    def get_level(self, level: HierarchyLevel, parent_code: Optional[str] = None) -> Optional[Any]:
        return self.cache.get(self.make_key(level, parent_code))

    def set_level(self, level: HierarchyLevel, parent_code: Optional[str], payload: Any) -> None:
        self.cache.set(self.make_key(level, parent_code), payload)

    def get_capacity(self, ward_code: str) -> Optional[Any]:
        return self.cache.get(self.capacity_key(ward_code))

    def set_capacity(self, ward_code: str, payload: Any) -> None:
        self.cache.set(self.capacity_key(ward_code), payload)

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics broken down by key pattern."""
        keys = self.cache.keys()
        stats: Dict[str, Any] = {}
        if hasattr(self.cache, 'stats'):
            stats.update(self.cache.stats())
        stats['total_entries'] = len(keys)
        stats['key_patterns'] = {
            prefix: len([k for k in keys if k.startswith(f"{prefix}:")])
            for prefix in list(LEVEL_KEY_PREFIXES.values()) + ["capacity"]
        }
        return stats
