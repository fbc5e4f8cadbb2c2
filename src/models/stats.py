"""Staffing statistics produced by the aggregation engine."""

from pydantic import BaseModel, ConfigDict


class CountyStats(BaseModel):
    """Staffing picture for the currently selected scope. Never persisted."""
    model_config = ConfigDict(frozen=True)

    total_stations: int = 0
    agents_required: int = 0
    agents_recruited: int = 0
    agents_vetted: int = 0
    agents_trained: int = 0
    agents_assigned: int = 0
    stations_with_agents: int = 0
    stations_needing_agents: int = 0

    @property
    def coverage_pct(self) -> float:
        """Share of required agents already assigned, in percent."""
        if self.agents_required <= 0:
            return 0.0
        return self.agents_assigned / self.agents_required * 100
