"""
Utility modules for the field-geo system.
"""

from .http import (
    BoundedFetcher,
    CancellationToken,
    FetchResponse,
    FetchError,
    FetchTimeout,
    NetworkError,
    FetchCancelled,
    DEFAULT_TIMEOUT_MS,
)

__all__ = [
    'BoundedFetcher',
    'CancellationToken',
    'FetchResponse',
    'FetchError',
    'FetchTimeout',
    'NetworkError',
    'FetchCancelled',
    'DEFAULT_TIMEOUT_MS',
]
