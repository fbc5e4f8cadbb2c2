"""
Aggregation package: staffing statistics over stations and the agent roster.
"""

from .staffing import AggregationEngine, progress_pct

__all__ = [
    "AggregationEngine",
    "progress_pct",
]
