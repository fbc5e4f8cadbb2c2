"""Error taxonomy for hierarchy resolution."""

from enum import Enum
from typing import Optional

from utils.http import FetchCancelled, FetchTimeout, NetworkError


class ErrorKind(str, Enum):
    """Classification of a level-scoped failure."""
    TIMEOUT = "timeout"
    NETWORK = "network"
    FORMAT = "format"
    SCOPE_VIOLATION = "scope_violation"


class GeoError(Exception):
    """Base exception for geographic resolution errors."""
    pass


class FormatError(GeoError):
    """Exception raised when a lookup envelope is not {status: success, data: [...]}."""
    pass


class ScopeViolation(GeoError):
    """Exception raised when a locked operator tries to leave their home county."""

    def __init__(self, message: str, attempted: Optional[str] = None, home_county: Optional[str] = None):
        super().__init__(message)
        self.attempted = attempted
        self.home_county = home_county


class InvalidSelectionError(GeoError, ValueError):
    """Exception raised for a selection whose node or parent is not available."""
    pass


def classify(error: Exception) -> ErrorKind:
    """Map an exception onto the level error taxonomy."""
    # A cancelled request is handled like a timeout.
    if isinstance(error, (FetchTimeout, FetchCancelled)):
        return ErrorKind.TIMEOUT
    if isinstance(error, NetworkError):
        return ErrorKind.NETWORK
    if isinstance(error, ScopeViolation):
        return ErrorKind.SCOPE_VIOLATION
    return ErrorKind.FORMAT
