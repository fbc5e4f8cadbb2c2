"""
Session orchestrator for the geographic core.

This module wires one operator session together: a keyed cache, a fetcher, the
hierarchy resolver, the scope guard and the aggregation engine. Statistics are
recomputed on every resolver change and on every roster update, so the
session's stats always describe the current selection.
"""

import logging
from typing import Callable, Iterable, List, Optional

from aggregation.staffing import AggregationEngine
from database.cache import GeoLookupCache, KeyedCache
from field_geo.config import Settings
from models.geography import HierarchyLevel, PollingStation, SelectionState
from models.permissions import OperatorContext
from models.roster import Agent, AgentStatus
from models.stats import CountyStats
from resolution.catalog import CapacityCatalog, StationCatalog
from resolution.events import NotificationSink
from resolution.hierarchy import HierarchyResolver
from resolution.scope import ScopeGuard
from utils.http import BoundedFetcher


logger = logging.getLogger(__name__)

StatsListener = Callable[[Optional[CountyStats]], None]


class FieldOpsSession:
    """
    One operator's view of the hierarchy and its staffing.

    Every screen that needs the cascade reuses a session instead of carrying
    its own copy of the resolver state.
    """

    def __init__(
        self,
        operator: OperatorContext,
        settings: Optional[Settings] = None,
        fetcher: Optional[BoundedFetcher] = None,
        cache: Optional[KeyedCache] = None,
        catalog: Optional[StationCatalog] = None,
        roster: Iterable[Agent] = (),
        notifications: Optional[NotificationSink] = None,
    ):
        self.settings = settings or Settings.load()
        self.operator = operator
        self.notifications = notifications if notifications is not None else NotificationSink()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or BoundedFetcher(
            default_timeout_ms=self.settings.geo.timeout_ms,
            auth_token=self.settings.geo.auth_token,
        )
        self.cache = GeoLookupCache(cache if cache is not None else KeyedCache())
        self.catalog = catalog if catalog is not None else StationCatalog()
        self.capacity = CapacityCatalog(self.catalog, default_required=self.settings.scope.default_required_agents)

        self.resolver = HierarchyResolver(
            fetcher=self.fetcher,
            cache=self.cache,
            service=self.settings.geo,
            catalog=self.catalog,
            capacity=self.capacity,
        )
        self.guard = ScopeGuard(operator, notifications=self.notifications, config=self.settings.scope)
        self.guard.attach(self.resolver)
        self.engine = AggregationEngine(self.capacity)

        self._roster: List[Agent] = list(roster)
        self._stations: List[PollingStation] = []
        self._stats: Optional[CountyStats] = None
        self._stats_listeners: List[StatsListener] = []
        self.recompute_count = 0

        self.resolver.subscribe(self._on_resolver_change)

    async def __aenter__(self) -> "FieldOpsSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Load counties and apply the jurisdiction lock when it applies."""
        await self.resolver.load_counties()
        self.guard.apply_auto_lock()
        await self.resolver.wait_idle()

    async def close(self) -> None:
        """End the session: drop the cache and release the HTTP session."""
        await self.resolver.wait_idle()
        self.guard.detach()
        self.cache.cache.clear()
        if self._owns_fetcher:
            await self.fetcher.close()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def selection(self) -> SelectionState:
        return self.resolver.selection

    @property
    def roster(self) -> List[Agent]:
        return list(self._roster)

    @property
    def stats(self) -> Optional[CountyStats]:
        return self._stats

    @property
    def stations(self) -> List[PollingStation]:
        """Resolved stations annotated with agent_count and required_agents."""
        return list(self._stations)

    def filtered_agents(self, search: str = "", status: Optional[AgentStatus] = None) -> List[Agent]:
        return self.engine.filter_agents(self._roster, self.selection, search=search, status=status)

    def agents_for_station(self, station_id: str) -> List[Agent]:
        return self.engine.agents_for_station(self._roster, station_id)

    def on_stats(self, listener: StatsListener) -> None:
        self._stats_listeners.append(listener)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def select_county(self, ref) -> bool:
        return await self.resolver.select_county(ref)

    async def select_constituency(self, ref) -> bool:
        return await self.resolver.select_constituency(ref)

    async def select_ward(self, ref) -> bool:
        ok = await self.resolver.select_ward(ref)
        await self.resolver.wait_idle()
        return ok

    async def select_polling_station(self, ref) -> bool:
        return await self.resolver.select_polling_station(ref)

    def clear(self, level: HierarchyLevel) -> bool:
        return self.resolver.clear(level)

    def set_roster(self, agents: Iterable[Agent]) -> None:
        """Replace the roster snapshot supplied by the roster collaborator."""
        self._roster = list(agents)
        logger.info(f"Roster updated: {len(self._roster)} agents")
        self.recompute()

    def recompute(self) -> Optional[CountyStats]:
        selection = self.resolver.selection
        stations = self.resolver.resolved_stations()
        self._stations = self.engine.annotate_stations(stations, self._roster) if selection.county else []
        self._stats = self.engine.compute_stats(selection, stations, self._roster)
        self.recompute_count += 1

        for listener in list(self._stats_listeners):
            listener(self._stats)
        return self._stats

    def _on_resolver_change(self, level: HierarchyLevel) -> None:
        self.recompute()
