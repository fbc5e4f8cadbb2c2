"""
Storage layer for the field-geo system.

Provides the session-lifetime keyed cache for geographic lookup responses.
"""

from .cache import (
    CacheEntry,
    CacheInterface,
    KeyedCache,
    GeoLookupCache,
    KEY_VERSION,
)

__all__ = [
    'CacheEntry',
    'CacheInterface',
    'KeyedCache',
    'GeoLookupCache',
    'KEY_VERSION',
]
