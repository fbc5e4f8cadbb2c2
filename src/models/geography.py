"""
Geographic hierarchy models for the 4-level hierarchy:
County → Constituency → Ward → Polling Station

Rows from the lookup service are mapped into these immutable records. Each
level carries the code of its parent so that scopes stay distinguishable.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class HierarchyLevel(str, Enum):
    """Levels of the geographic hierarchy, parent to child."""
    COUNTY = "county"
    CONSTITUENCY = "constituency"
    WARD = "ward"
    POLLING_STATION = "polling_station"

    @property
    def depth(self) -> int:
        return LEVEL_ORDER.index(self)

    @property
    def parent(self) -> Optional["HierarchyLevel"]:
        if self.depth == 0:
            return None
        return LEVEL_ORDER[self.depth - 1]

    @property
    def child(self) -> Optional["HierarchyLevel"]:
        if self.depth == len(LEVEL_ORDER) - 1:
            return None
        return LEVEL_ORDER[self.depth + 1]

    @property
    def plural(self) -> str:
        return LEVEL_PLURALS[self]

    def descendants(self) -> List["HierarchyLevel"]:
        """Levels strictly below this one."""
        return LEVEL_ORDER[self.depth + 1:]


LEVEL_ORDER = [
    HierarchyLevel.COUNTY,
    HierarchyLevel.CONSTITUENCY,
    HierarchyLevel.WARD,
    HierarchyLevel.POLLING_STATION,
]

LEVEL_PLURALS = {
    HierarchyLevel.COUNTY: "counties",
    HierarchyLevel.CONSTITUENCY: "constituencies",
    HierarchyLevel.WARD: "wards",
    HierarchyLevel.POLLING_STATION: "polling stations",
}


class StationSource(str, Enum):
    """Where a polling station record came from."""
    API = "api"
    CATALOG = "catalog"


class GeoNode(BaseModel):
    """A single node of the hierarchy."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    code: str
    parent_code: Optional[str] = None

    def matches(self, ref: str) -> bool:
        """True when ref names this node by code, id or name."""
        return ref in (self.code, self.id) or ref.strip().lower() == self.name.strip().lower()


class County(GeoNode):
    """Top level; never has a parent."""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["County"]:
        code = _text(row.get("county_code"))
        name = _text(row.get("county_name"))
        if not code or not name:
            return None
        return cls(id=code, name=name, code=code)


class Constituency(GeoNode):
    """Second level; parent_code is the county code."""

    @classmethod
    def from_row(cls, row: Dict[str, Any], county_code: str) -> Optional["Constituency"]:
        code = _text(row.get("const_code"))
        name = _text(row.get("constituency_name"))
        if not code or not name:
            return None
        return cls(id=code, name=name, code=code, parent_code=county_code)


class Ward(GeoNode):
    """Third level; parent_code is the constituency code."""

    @classmethod
    def from_row(cls, row: Dict[str, Any], constituency_code: str) -> Optional["Ward"]:
        code = _text(row.get("ward_code"))
        name = _text(row.get("ward_name"))
        if not code or not name:
            return None
        return cls(id=code, name=name, code=code, parent_code=constituency_code)


STATION_ID_FIELDS = ("polling_station_id", "station_id", "id", "code", "ps_code")
STATION_NAME_FIELDS = ("polling_station_name", "name", "station_name", "label", "description")


class PollingStation(GeoNode):
    """
    Leaf level; parent_code is the ward code.

    required_agents and agent_count are derived by the aggregation engine and
    default to zero on freshly mapped rows.
    """
    county: str = ""
    constituency: str = ""
    ward: str = ""
    required_agents: int = 0
    agent_count: int = 0
    source: StationSource = StationSource.API

    @classmethod
    def from_row(
        cls,
        row: Dict[str, Any],
        ward_code: str,
        county: str = "",
        constituency: str = "",
        ward: str = "",
    ) -> Optional["PollingStation"]:
        station_id = _first(row, STATION_ID_FIELDS)
        name = _first(row, STATION_NAME_FIELDS)
        if not station_id or not name:
            return None
        return cls(
            id=station_id,
            name=name,
            code=station_id,
            parent_code=ward_code,
            county=county,
            constituency=constituency,
            ward=ward,
        )

    @property
    def needs_agents(self) -> bool:
        return self.agent_count < self.required_agents


class GeoRef(BaseModel):
    """A (name, code) pair identifying the selected node of one level."""
    model_config = ConfigDict(frozen=True)

    name: str
    code: str

    @classmethod
    def of(cls, node: GeoNode) -> "GeoRef":
        return cls(name=node.name, code=node.code)


class SelectionState(BaseModel):
    """The single active path through the hierarchy."""
    model_config = ConfigDict(frozen=True)

    county: Optional[GeoRef] = None
    constituency: Optional[GeoRef] = None
    ward: Optional[GeoRef] = None
    polling_station: Optional[GeoRef] = None

    def get(self, level: HierarchyLevel) -> Optional[GeoRef]:
        return getattr(self, level.value)

    def with_level(self, level: HierarchyLevel, ref: Optional[GeoRef]) -> "SelectionState":
        """Set one level and unset every level below it."""
        updates: Dict[str, Optional[GeoRef]] = {level.value: ref}
        for below in level.descendants():
            updates[below.value] = None
        return self.model_copy(update=updates)

    @property
    def county_name(self) -> Optional[str]:
        return self.county.name if self.county else None

    @property
    def constituency_name(self) -> Optional[str]:
        return self.constituency.name if self.constituency else None

    @property
    def ward_name(self) -> Optional[str]:
        return self.ward.name if self.ward else None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first(row: Dict[str, Any], fields) -> str:
    for field in fields:
        value = _text(row.get(field))
        if value:
            return value
    return ""
