"""
Field Geo

Cascading County → Constituency → Ward → Polling Station resolution for
campaign field operations, with session-scoped lookup caching, jurisdiction
scoping and staffing aggregation over the agent roster.
"""

__version__ = "0.1.0"
