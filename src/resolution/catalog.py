"""
Static station catalog and station capacity table.

The catalog stands in for ward lookups that are unavailable (no ward selected,
or the ward returned nothing). The capacity table supplies required_agents per
station: values registered from a capacity endpoint win over the static
entries, and unknown stations get the default capacity.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from models.geography import PollingStation, StationSource
from models.roster import Agent


logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_AGENTS = 3


class CatalogStation(BaseModel):
    """One static catalog entry, scoped by names."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    county: str
    constituency: str = ""
    ward: str = ""
    required_agents: int = DEFAULT_REQUIRED_AGENTS

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    def to_station(self) -> PollingStation:
        return PollingStation(
            id=self.id,
            name=self.name,
            code=self.id,
            county=self.county,
            constituency=self.constituency,
            ward=self.ward,
            required_agents=self.required_agents,
            source=StationSource.CATALOG,
        )


DEFAULT_CATALOG = [
    CatalogStation(id="1", name="Kasarani Primary", county="Nairobi", constituency="Kasarani", ward="Mwiki", required_agents=3),
    CatalogStation(id="2", name="Ruaraka Secondary", county="Nairobi", constituency="Ruaraka", ward="Baba Dogo", required_agents=3),
    CatalogStation(id="5", name="Kibra Community Centre", county="Nairobi", constituency="Kibra", ward="Sarang'ombe", required_agents=3),
    CatalogStation(id="3", name="Likoni Social Hall", county="Mombasa", constituency="Likoni", ward="Shika Adabu", required_agents=2),
    CatalogStation(id="4", name="Mvita CDF Hall", county="Mombasa", constituency="Mvita", ward="Majengo", required_agents=2),
    CatalogStation(id="6", name="Manyatta Sports Ground", county="Kisumu", constituency="Kisumu Central", ward="Manyatta B", required_agents=2),
]


class StationCatalog:
    """Static polling-station fallback, filtered by the selected scope."""

    def __init__(self, stations: Optional[Iterable[CatalogStation]] = None):
        self._stations: List[CatalogStation] = list(DEFAULT_CATALOG if stations is None else stations)

    def __len__(self) -> int:
        return len(self._stations)

    def __iter__(self):
        return iter(self._stations)

    def get(self, station_id: str) -> Optional[CatalogStation]:
        for station in self._stations:
            if station.id == station_id:
                return station
        return None

    def for_scope(self, county: Optional[str], constituency: Optional[str] = None) -> List[PollingStation]:
        """Stations whose county (and constituency, when given) match."""
        if not county:
            return []
        return [
            s.to_station()
            for s in self._stations
            if s.county == county and (not constituency or s.constituency == constituency)
        ]


class CapacityCatalog:
    """Per-station required agent counts."""

    def __init__(
        self,
        catalog: Optional[StationCatalog] = None,
        default_required: int = DEFAULT_REQUIRED_AGENTS,
    ):
        self.catalog = catalog if catalog is not None else StationCatalog()
        self.default_required = default_required
        self._overrides: Dict[str, int] = {}

    def register(self, capacities: Dict[str, int]) -> None:
        """Record capacities reported by the capacity endpoint."""
        for station_id, required in capacities.items():
            self._overrides[str(station_id)] = int(required)

    def required_for(self, station_id: str) -> int:
        if station_id in self._overrides:
            return self._overrides[station_id]
        entry = self.catalog.get(station_id)
        if entry is not None:
            return entry.required_agents
        return self.default_required

    @staticmethod
    def parse_rows(rows: List[Dict[str, Any]]) -> Dict[str, int]:
        """Read {station id: required agents} out of capacity endpoint rows."""
        capacities = {}
        for row in rows:
            if not isinstance(row, dict):
                continue
            station_id = row.get("polling_station_id") or row.get("station_id") or row.get("id")
            required = row.get("required_agents", row.get("requiredAgents", row.get("capacity")))
            if station_id is None or required is None:
                continue
            try:
                capacities[str(station_id)] = int(required)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring capacity row with bad value: {row}")
        return capacities


def _load_document(path: Union[str, Path]) -> Any:
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_station_catalog(path: Union[str, Path]) -> StationCatalog:
    """Load a station catalog from a JSON or YAML list (or {stations: [...]})."""
    data = _load_document(path)
    if isinstance(data, dict):
        data = data.get("stations", [])
    stations = [CatalogStation.model_validate(row) for row in data or []]
    logger.info(f"Loaded {len(stations)} catalog stations from {path}")
    return StationCatalog(stations)


def load_roster(path: Union[str, Path]) -> List[Agent]:
    """Load an agent roster from a JSON or YAML list (or {agents: [...]})."""
    data = _load_document(path)
    if isinstance(data, dict):
        data = data.get("agents", [])
    agents = [Agent.model_validate(row) for row in data or []]
    logger.info(f"Loaded {len(agents)} agents from {path}")
    return agents
