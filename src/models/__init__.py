"""
Core data models for the field-geo system.

This package contains:
- Geographic hierarchy records and the selection path
- Agent roster records
- Operator role and permission models
- Staffing statistics
"""

from .geography import (
    HierarchyLevel,
    LEVEL_ORDER,
    StationSource,
    GeoNode,
    County,
    Constituency,
    Ward,
    PollingStation,
    GeoRef,
    SelectionState,
)
from .roster import Agent, AgentStatus, VETTED_STATUSES, TRAINED_STATUSES
from .permissions import UserRole, OperatorContext
from .stats import CountyStats

__all__ = [
    # Geography
    "HierarchyLevel",
    "LEVEL_ORDER",
    "StationSource",
    "GeoNode",
    "County",
    "Constituency",
    "Ward",
    "PollingStation",
    "GeoRef",
    "SelectionState",

    # Roster
    "Agent",
    "AgentStatus",
    "VETTED_STATUSES",
    "TRAINED_STATUSES",

    # Permission models
    "UserRole",
    "OperatorContext",

    # Statistics
    "CountyStats",
]
