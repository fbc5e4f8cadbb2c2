"""
Agent roster models.

The roster is owned by an external collaborator and arrives already loaded;
these records are read-only inside the geographic core.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentStatus(str, Enum):
    """Recruitment pipeline status of a field agent."""
    RECRUITED = "Recruited"
    VETTED = "Vetted"
    TRAINED = "Trained"
    ASSIGNED = "Assigned"
    AVAILABLE = "Available"
    ON_LEAVE = "On Leave"

    @classmethod
    def parse(cls, value: str) -> "AgentStatus":
        """Parse a status string regardless of casing and separators."""
        if isinstance(value, cls):
            return value
        normalized = "".join(ch for ch in str(value).lower() if ch.isalnum())
        for status in cls:
            if status.value.lower().replace(" ", "") == normalized:
                return status
        raise ValueError(f"Unknown agent status: {value!r}")


# Statuses that count towards each pipeline stage.
VETTED_STATUSES = frozenset({
    AgentStatus.VETTED, AgentStatus.TRAINED, AgentStatus.ASSIGNED, AgentStatus.AVAILABLE,
})
TRAINED_STATUSES = frozenset({
    AgentStatus.TRAINED, AgentStatus.ASSIGNED, AgentStatus.AVAILABLE,
})


class Agent(BaseModel):
    """A field agent as supplied by the roster."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    status: AgentStatus
    assigned_polling_station_id: Optional[str] = Field(None, alias="assignedPollingStationId")
    contact: str = ""
    county: str = ""
    constituency: str = ""
    ward: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return AgentStatus.parse(v)

    @field_validator("assigned_polling_station_id", mode="before")
    @classmethod
    def normalize_station_id(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    def in_scope(
        self,
        county: Optional[str],
        constituency: Optional[str] = None,
        ward: Optional[str] = None,
    ) -> bool:
        """Strict narrowing: every selected level must match."""
        if county and self.county != county:
            return False
        if constituency and self.constituency != constituency:
            return False
        if ward and self.ward != ward:
            return False
        return True
