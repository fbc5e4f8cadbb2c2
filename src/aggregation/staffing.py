"""
Staffing aggregation over resolved polling stations and the agent roster.

Everything here is a pure function of its inputs: the engine holds no state
and is re-run whenever the selection, the resolved station set, or the roster
changes.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from models.geography import PollingStation, SelectionState
from models.roster import Agent, AgentStatus, TRAINED_STATUSES, VETTED_STATUSES
from models.stats import CountyStats
from resolution.catalog import CapacityCatalog


logger = logging.getLogger(__name__)


def progress_pct(current: int, total: int) -> float:
    """current as a percentage of total; 0 when total is not positive."""
    return (current / total) * 100 if total > 0 else 0.0


class AggregationEngine:
    """
    Folds stations and agents into CountyStats for the selected scope.

    Responsibilities:
    - Derive agent_count and required_agents for every resolved station
    - Narrow the roster to the selected county/constituency/ward
    - Count agents at each pipeline stage and stations still short of agents
    """

    def __init__(self, capacity: Optional[CapacityCatalog] = None):
        self.capacity = capacity if capacity is not None else CapacityCatalog()

    def annotate_stations(
        self,
        stations: Sequence[PollingStation],
        agents: Iterable[Agent],
    ) -> List[PollingStation]:
        """Return copies of stations with derived agent_count and required_agents."""
        assigned = Counter(a.assigned_polling_station_id for a in agents if a.assigned_polling_station_id)
        return [
            station.model_copy(update={
                "agent_count": assigned.get(station.id, 0),
                "required_agents": self.capacity.required_for(station.id),
            })
            for station in stations
        ]

    @staticmethod
    def scope_agents(agents: Iterable[Agent], selection: SelectionState) -> List[Agent]:
        """Agents in the selected county, narrowed by constituency and ward when set."""
        if selection.county is None:
            return []
        return [
            a for a in agents
            if a.in_scope(selection.county_name, selection.constituency_name, selection.ward_name)
        ]

    def compute_stats(
        self,
        selection: SelectionState,
        stations: Sequence[PollingStation],
        agents: Sequence[Agent],
    ) -> Optional[CountyStats]:
        """
        Compute CountyStats for the selection.

        Args:
            selection: Current hierarchy selection
            stations: Resolved stations at the current scope
            agents: Full agent roster

        Returns:
            CountyStats, or None when no county is selected
        """
        if selection.county is None:
            return None

        annotated = self.annotate_stations(stations, agents)
        geo_agents = self.scope_agents(agents, selection)
        statuses = Counter(a.status for a in geo_agents)

        stations_with_agents = sum(1 for s in annotated if s.agent_count >= s.required_agents)

        stats = CountyStats(
            total_stations=len(annotated),
            agents_required=sum(s.required_agents for s in annotated),
            agents_recruited=sum(n for status, n in statuses.items() if status != AgentStatus.ON_LEAVE),
            agents_vetted=sum(n for status, n in statuses.items() if status in VETTED_STATUSES),
            agents_trained=sum(n for status, n in statuses.items() if status in TRAINED_STATUSES),
            agents_assigned=statuses.get(AgentStatus.ASSIGNED, 0),
            stations_with_agents=stations_with_agents,
            stations_needing_agents=len(annotated) - stations_with_agents,
        )
        logger.debug(f"Computed stats for {selection.county_name}: {stats}")
        return stats

    @staticmethod
    def filter_agents(
        agents: Iterable[Agent],
        selection: SelectionState,
        search: str = "",
        status: Optional[AgentStatus] = None,
    ) -> List[Agent]:
        """
        Roster view for the current scope.

        Unlike scope_agents this does not require a county: with nothing
        selected every agent is a candidate. The search matches name, contact,
        constituency and ward, case-insensitively.
        """
        query = search.strip().lower()
        results = []
        for agent in agents:
            if not agent.in_scope(selection.county_name, selection.constituency_name, selection.ward_name):
                continue
            if status is not None and agent.status != status:
                continue
            if query and not any(
                query in field.lower()
                for field in (agent.name, agent.contact, agent.constituency, agent.ward)
            ):
                continue
            results.append(agent)
        return results

    @staticmethod
    def agents_for_station(agents: Iterable[Agent], station_id: str) -> List[Agent]:
        return [a for a in agents if a.assigned_polling_station_id == station_id]

    @staticmethod
    def status_breakdown(agents: Iterable[Agent]) -> Dict[AgentStatus, int]:
        counts = Counter(a.status for a in agents)
        return {status: counts.get(status, 0) for status in AgentStatus}
