"""
Resolution package for the geographic hierarchy.

This package provides:
- HierarchyResolver for cascading County → Constituency → Ward → Station lookups
- ScopeGuard for the county jurisdiction lock
- Static station catalog and capacity table used as lookup fallbacks
"""

from .errors import ErrorKind, GeoError, FormatError, ScopeViolation, InvalidSelectionError
from .events import WarningEvent, NotificationSink
from .catalog import (
    CatalogStation,
    StationCatalog,
    CapacityCatalog,
    DEFAULT_REQUIRED_AGENTS,
    load_station_catalog,
    load_roster,
)
from .hierarchy import HierarchyResolver, LevelState, LevelStatus
from .scope import ScopeGuard, SCOPE_VIOLATION_MESSAGE

__all__ = [
    "ErrorKind",
    "GeoError",
    "FormatError",
    "ScopeViolation",
    "InvalidSelectionError",
    "WarningEvent",
    "NotificationSink",
    "CatalogStation",
    "StationCatalog",
    "CapacityCatalog",
    "DEFAULT_REQUIRED_AGENTS",
    "load_station_catalog",
    "load_roster",
    "HierarchyResolver",
    "LevelState",
    "LevelStatus",
    "ScopeGuard",
    "SCOPE_VIOLATION_MESSAGE",
]
