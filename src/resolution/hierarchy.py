"""
Cascading hierarchy resolver for County → Constituency → Ward → Polling Station.

Each level moves through Idle → Loading → Loaded | Error. Selecting (or
clearing) a level resets every level below it first and only then consults the
cache for the child lookup. Every load carries the generation of its level; a
result whose generation is no longer current is discarded, so a slow response
to an abandoned selection can never overwrite a newer one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from database.cache import GeoLookupCache
from field_geo.config import GeoServiceConfig
from models.geography import (
    County,
    Constituency,
    GeoNode,
    GeoRef,
    HierarchyLevel,
    LEVEL_ORDER,
    PollingStation,
    SelectionState,
    Ward,
)
from resolution.catalog import CapacityCatalog, StationCatalog
from resolution.errors import ErrorKind, FormatError, GeoError, InvalidSelectionError, classify
from utils.http import BoundedFetcher, CancellationToken, FetchError, NetworkError


logger = logging.getLogger(__name__)


class LevelStatus(str, Enum):
    """Load status of one hierarchy level."""
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass
class LevelState:
    """Observable state of one hierarchy level."""
    level: HierarchyLevel
    status: LevelStatus = LevelStatus.IDLE
    items: List[GeoNode] = field(default_factory=list)
    parent_code: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    from_cache: bool = False

    @property
    def loading(self) -> bool:
        return self.status == LevelStatus.LOADING


NodeRef = Union[GeoNode, GeoRef, str]
ChangeListener = Callable[[HierarchyLevel], None]

# Query parameter carrying the parent code for each level lookup.
PARENT_PARAMS = {
    HierarchyLevel.COUNTY: None,
    HierarchyLevel.CONSTITUENCY: "county_code",
    HierarchyLevel.WARD: "const_code",
    HierarchyLevel.POLLING_STATION: "ward_code",
}


class HierarchyResolver:
    """
    One parameterised resolver for all four hierarchy levels.

    Collaborators are injected: the lookup cache, the fetcher, the service
    endpoints, and the static station/capacity catalogs. A ScopeGuard may be
    attached to vet county selections.
    """

    def __init__(
        self,
        fetcher: BoundedFetcher,
        cache: Optional[GeoLookupCache] = None,
        service: Optional[GeoServiceConfig] = None,
        catalog: Optional[StationCatalog] = None,
        capacity: Optional[CapacityCatalog] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else GeoLookupCache()
        self.service = service or GeoServiceConfig()
        self.catalog = catalog if catalog is not None else StationCatalog()
        self.capacity = capacity if capacity is not None else CapacityCatalog(self.catalog)
        self.scope_guard = None

        self._selection = SelectionState()
        self._states: Dict[HierarchyLevel, LevelState] = {level: LevelState(level) for level in LEVEL_ORDER}
        self._generations: Dict[HierarchyLevel, int] = {level: 0 for level in LEVEL_ORDER}
        self._tokens: Dict[HierarchyLevel, Optional[CancellationToken]] = {level: None for level in LEVEL_ORDER}
        self._tasks: Dict[HierarchyLevel, Optional[asyncio.Task]] = {level: None for level in LEVEL_ORDER}
        self._aux_tasks: Set[asyncio.Task] = set()
        self._listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def selection(self) -> SelectionState:
        return self._selection

    def state(self, level: HierarchyLevel) -> LevelState:
        return self._states[level]

    @property
    def counties(self) -> List[County]:
        return list(self._states[HierarchyLevel.COUNTY].items)

    @property
    def constituencies(self) -> List[Constituency]:
        return list(self._states[HierarchyLevel.CONSTITUENCY].items)

    @property
    def wards(self) -> List[Ward]:
        return list(self._states[HierarchyLevel.WARD].items)

    @property
    def polling_stations(self) -> List[PollingStation]:
        return list(self._states[HierarchyLevel.POLLING_STATION].items)

    def errors(self) -> Dict[HierarchyLevel, str]:
        return {level: s.error for level, s in self._states.items() if s.error}

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a callback invoked with the level whose state changed."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def is_selected_up_to(self, level: HierarchyLevel) -> bool:
        return all(self._selection.get(lvl) is not None for lvl in LEVEL_ORDER[:level.depth + 1])

    def breadcrumb(self, separator: str = " • ") -> str:
        parts = [ref.name for ref in (self._selection.get(lvl) for lvl in LEVEL_ORDER) if ref]
        return separator.join(parts) if parts else "—"

    def resolved_stations(self) -> List[PollingStation]:
        """
        Stations at the current scope.

        A ward's non-empty API result wins; otherwise the static catalog
        filtered by county and constituency stands in.
        """
        selection = self._selection
        if selection.county is None:
            return []

        station_state = self._states[HierarchyLevel.POLLING_STATION]
        if (
            selection.ward is not None
            and station_state.status == LevelStatus.LOADED
            and station_state.parent_code == selection.ward.code
            and station_state.items
        ):
            return list(station_state.items)

        return self.catalog.for_scope(selection.county_name, selection.constituency_name)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load_counties(self) -> LevelState:
        """Resolve the county list (cache first)."""
        task = self._start_load(HierarchyLevel.COUNTY, None)
        if task is not None:
            await task
        return self._states[HierarchyLevel.COUNTY]

    def choose(self, level: HierarchyLevel, ref: NodeRef) -> bool:
        """
        Select a node synchronously and schedule the child lookup.

        Returns False when the ScopeGuard rejects the selection.

        Raises:
            InvalidSelectionError: parent level unset or node not available
        """
        parent = level.parent
        if parent is not None and self._selection.get(parent) is None:
            raise InvalidSelectionError(f"Cannot select a {level.value} before a {parent.value}")

        node = self._find(level, ref)
        if level == HierarchyLevel.COUNTY and self.scope_guard is not None:
            name = node.name if node is not None else _ref_label(ref)
            if not self.scope_guard.check_county(name):
                return False

        if node is None:
            raise InvalidSelectionError(f"Unknown {level.value}: {_ref_label(ref)}")

        self._selection = self._selection.with_level(level, GeoRef.of(node))
        self._reset_below(level)
        logger.info(f"Selected {level.value} {node.name} ({node.code})")

        child = level.child
        if child is not None:
            self._start_load(child, node.code)
        self._notify(level)
        return True

    async def select(self, level: HierarchyLevel, ref: NodeRef) -> bool:
        """Select a node and wait for the child level to settle."""
        if not self.choose(level, ref):
            return False
        child = level.child
        task = self._tasks.get(child) if child is not None else None
        if task is not None and not task.done():
            await task
        return True

    async def select_county(self, ref: NodeRef) -> bool:
        return await self.select(HierarchyLevel.COUNTY, ref)

    async def select_constituency(self, ref: NodeRef) -> bool:
        return await self.select(HierarchyLevel.CONSTITUENCY, ref)

    async def select_ward(self, ref: NodeRef) -> bool:
        return await self.select(HierarchyLevel.WARD, ref)

    async def select_polling_station(self, ref: NodeRef) -> bool:
        return await self.select(HierarchyLevel.POLLING_STATION, ref)

    def clear(self, level: HierarchyLevel) -> bool:
        """Unset one level and reset everything below it."""
        if level == HierarchyLevel.COUNTY and self.scope_guard is not None:
            if self._selection.county is not None and not self.scope_guard.check_county(None):
                return False

        self._selection = self._selection.with_level(level, None)
        self._reset_below(level)
        logger.info(f"Cleared {level.value} selection")
        self._notify(level)
        return True

    def reset(self) -> bool:
        return self.clear(HierarchyLevel.COUNTY)

    async def wait_idle(self) -> None:
        """Wait until no lookup is in flight."""
        while True:
            pending = [t for t in list(self._tasks.values()) + list(self._aux_tasks) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    # ------------------------------------------------------------------
    # Cascade and loading
    # ------------------------------------------------------------------

    def _find(self, level: HierarchyLevel, ref: NodeRef) -> Optional[GeoNode]:
        items = self._states[level].items
        if isinstance(ref, GeoNode):
            ref = ref.code
        elif isinstance(ref, GeoRef):
            ref = ref.code
        for node in items:
            if node.code == ref or node.id == ref:
                return node
        for node in items:
            if node.matches(ref):
                return node
        return None

    def _cancel(self, level: HierarchyLevel, reason: str) -> None:
        self._generations[level] += 1
        token = self._tokens[level]
        if token is not None:
            token.cancel(reason)
        self._tokens[level] = None

        task = self._tasks[level]
        if task is not None and not task.done():
            self._track(task)
        self._tasks[level] = None

    def _track(self, task: asyncio.Task) -> None:
        self._aux_tasks.add(task)
        task.add_done_callback(self._aux_tasks.discard)

    def _reset_below(self, level: HierarchyLevel) -> None:
        for below in level.descendants():
            self._cancel(below, f"{level.value} changed")
            self._states[below] = LevelState(below)

    def _is_current(self, level: HierarchyLevel, generation: int) -> bool:
        return self._generations[level] == generation

    def _start_load(self, level: HierarchyLevel, parent_code: Optional[str]) -> Optional[asyncio.Task]:
        """Cache hit → Loaded immediately; miss → Loading plus a fetch task."""
        self._cancel(level, "reloaded")
        generation = self._generations[level]

        cached = self.cache.get_level(level, parent_code)
        if cached is not None:
            try:
                rows = self._extract_rows(level, cached)
            except FormatError:
                logger.warning(f"Ignoring malformed cache entry for {level.value} {parent_code}")
            else:
                logger.debug(f"Cache hit for {level.value} {parent_code}")
                self._apply(level, parent_code, rows, from_cache=True)
                return None

        token = CancellationToken(label=f"{level.value}:{parent_code}")
        self._tokens[level] = token
        self._states[level] = LevelState(level, status=LevelStatus.LOADING, parent_code=parent_code)
        self._notify(level)

        task = asyncio.ensure_future(self._load(level, parent_code, generation, token))
        self._tasks[level] = task
        return task

    async def _load(
        self,
        level: HierarchyLevel,
        parent_code: Optional[str],
        generation: int,
        token: CancellationToken,
    ) -> None:
        url, params = self._endpoint(level, parent_code)
        try:
            response = await self.fetcher.fetch(url, self.service.timeout_ms, token=token, params=params)
            if not response.ok:
                raise NetworkError(f"HTTP {response.status}")
            rows = self._extract_rows(level, response.data)
        except (FetchError, GeoError) as e:
            if not self._is_current(level, generation):
                logger.debug(f"Discarding stale {level.value} failure for {parent_code}: {e}")
                return
            logger.warning(f"Failed to load {level.plural} for {parent_code or 'all'}: {e}")
            self._states[level] = LevelState(
                level,
                status=LevelStatus.ERROR,
                parent_code=parent_code,
                error=f"Failed to load {level.plural}",
                error_kind=classify(e),
            )
            self._notify(level)
            return

        # The payload is valid for its own key even if the level has moved on.
        self.cache.set_level(level, parent_code, response.data)

        if not self._is_current(level, generation):
            logger.debug(f"Discarding stale {level.value} response for {parent_code}")
            return

        self._apply(level, parent_code, rows, from_cache=False)

    def _apply(self, level: HierarchyLevel, parent_code: Optional[str], rows: List[Any], from_cache: bool) -> None:
        items = self._map_rows(level, rows, parent_code)
        self._states[level] = LevelState(
            level,
            status=LevelStatus.LOADED,
            items=items,
            parent_code=parent_code,
            from_cache=from_cache,
        )
        logger.debug(f"Loaded {len(items)} {level.plural} for {parent_code or 'all'}")
        self._notify(level)

        if level == HierarchyLevel.POLLING_STATION and items and self.service.capacity_path:
            self._start_capacity_load(parent_code)

    def _endpoint(self, level: HierarchyLevel, parent_code: Optional[str]) -> Tuple[str, Optional[Dict[str, str]]]:
        paths = {
            HierarchyLevel.COUNTY: self.service.counties_path,
            HierarchyLevel.CONSTITUENCY: self.service.constituencies_path,
            HierarchyLevel.WARD: self.service.wards_path,
            HierarchyLevel.POLLING_STATION: self.service.stations_path,
        }
        param = PARENT_PARAMS[level]
        params = {param: parent_code} if param else None
        return self.service.url_for(paths[level]), params

    @staticmethod
    def _extract_rows(level: HierarchyLevel, payload: Any) -> List[Any]:
        """Validate the {status, data} envelope and return its rows."""
        if level == HierarchyLevel.POLLING_STATION and isinstance(payload, list):
            return payload
        if not isinstance(payload, dict) or payload.get("status") != "success":
            raise FormatError(f"Bad {level.plural} format")

        rows = payload.get("data")
        if level == HierarchyLevel.POLLING_STATION:
            # Station endpoints may omit the list or use the legacy key.
            if rows is None:
                rows = payload.get("polling_centers")
            if rows is None:
                rows = []
        if not isinstance(rows, list):
            raise FormatError(f"Bad {level.plural} format")
        return rows

    def _map_rows(self, level: HierarchyLevel, rows: List[Any], parent_code: Optional[str]) -> List[GeoNode]:
        selection = self._selection
        mapped: List[Optional[GeoNode]] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            if level == HierarchyLevel.COUNTY:
                mapped.append(County.from_row(row))
            elif level == HierarchyLevel.CONSTITUENCY:
                mapped.append(Constituency.from_row(row, parent_code))
            elif level == HierarchyLevel.WARD:
                mapped.append(Ward.from_row(row, parent_code))
            else:
                mapped.append(PollingStation.from_row(
                    row,
                    parent_code,
                    county=selection.county_name or "",
                    constituency=selection.constituency_name or "",
                    ward=selection.ward_name or "",
                ))

        items = [node for node in mapped if node is not None]
        dropped = len(rows) - len(items)
        if dropped:
            logger.debug(f"Dropped {dropped} {level.plural} rows without id or name")
        return items

    def _start_capacity_load(self, ward_code: str) -> None:
        cached = self.cache.get_capacity(ward_code)
        if cached is not None:
            self._register_capacity(cached)
            return

        generation = self._generations[HierarchyLevel.POLLING_STATION]
        self._track(asyncio.ensure_future(self._load_capacity(ward_code, generation)))

    async def _load_capacity(self, ward_code: str, generation: int) -> None:
        url = self.service.url_for(self.service.capacity_path)
        try:
            response = await self.fetcher.fetch(url, self.service.timeout_ms, params={"ward_code": ward_code})
            if not response.ok:
                raise NetworkError(f"HTTP {response.status}")
            payload = response.data
            if not isinstance(payload, dict) or payload.get("status") != "success" or not isinstance(payload.get("data"), list):
                raise FormatError("Bad capacity format")
        except (FetchError, GeoError) as e:
            logger.warning(f"Capacity lookup for ward {ward_code} failed, using static capacities: {e}")
            return

        self.cache.set_capacity(ward_code, payload)
        self._register_capacity(payload)
        if self._is_current(HierarchyLevel.POLLING_STATION, generation):
            self._notify(HierarchyLevel.POLLING_STATION)

    def _register_capacity(self, payload: Dict[str, Any]) -> None:
        self.capacity.register(CapacityCatalog.parse_rows(payload.get("data") or []))

    def _notify(self, level: HierarchyLevel) -> None:
        for listener in list(self._listeners):
            listener(level)


def _ref_label(ref: NodeRef) -> str:
    if isinstance(ref, (GeoNode, GeoRef)):
        return ref.name
    return str(ref)
