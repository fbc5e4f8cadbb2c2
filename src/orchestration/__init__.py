"""
Orchestration package for coordinating one operator session.

This package provides:
- FieldOpsSession wiring cache, fetcher, resolver, scope guard and aggregation
- Automatic statistics recomputation on selection and roster changes
"""

from .session import FieldOpsSession

__all__ = [
    "FieldOpsSession",
]
