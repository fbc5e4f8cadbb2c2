"""
End-to-end tests for FieldOpsSession.

Drives the full cascade through the session and checks that the staffing
statistics track the selection and the roster.
"""

import sys
import pytest
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from field_geo.config import Settings
from models.geography import HierarchyLevel, StationSource
from models.permissions import OperatorContext
from models.roster import Agent, AgentStatus
from orchestration.session import FieldOpsSession
from resolution.scope import SCOPE_VIOLATION_MESSAGE

from fakes import FakeFetcher, nairobi_payloads, service_config


@pytest.fixture
def settings():
    return Settings(geo=service_config())


@pytest.fixture
def fetcher():
    return FakeFetcher(nairobi_payloads())


@pytest.fixture
def roster():
    return [
        Agent(
            id="A1",
            name="Wanjiru Kamau",
            status="Assigned",
            assignedPollingStationId="1",
            county="Nairobi",
            constituency="Kasarani",
            ward="Mwiki",
        ),
    ]


def open_session(settings, fetcher, roster=(), operator=None):
    return FieldOpsSession(
        operator or OperatorContext(),
        settings=settings,
        fetcher=fetcher,
        roster=roster,
    )


class TestFieldOpsSession:
    """Test the orchestrated session."""

    @pytest.mark.asyncio
    async def test_nairobi_kasarani_mwiki(self, settings, fetcher, roster):
        async with open_session(settings, fetcher, roster) as session:
            await session.select_county("Nairobi")
            await session.select_constituency("Kasarani")
            await session.select_ward("Mwiki")

            stats = session.stats

        assert stats.total_stations == 1
        assert stats.agents_required == 3
        assert stats.agents_recruited == 1
        assert stats.agents_vetted == 1
        assert stats.agents_trained == 1
        assert stats.agents_assigned == 1
        assert stats.stations_with_agents == 0
        assert stats.stations_needing_agents == 1

    @pytest.mark.asyncio
    async def test_stats_absent_until_county_selected(self, settings, fetcher, roster):
        async with open_session(settings, fetcher, roster) as session:
            assert session.stats is None
            assert session.stations == []

            await session.select_county("Nairobi")
            assert session.stats.total_stations == 3

    @pytest.mark.asyncio
    async def test_stations_are_annotated(self, settings, fetcher, roster):
        async with open_session(settings, fetcher, roster) as session:
            await session.select_county("Nairobi")
            await session.select_constituency("Kasarani")
            await session.select_ward("Mwiki")

            stations = session.stations

        assert len(stations) == 1
        assert stations[0].source == StationSource.API
        assert stations[0].agent_count == 1
        assert stations[0].required_agents == 3
        assert stations[0].needs_agents

    @pytest.mark.asyncio
    async def test_roster_update_recomputes(self, settings, fetcher, roster):
        async with open_session(settings, fetcher) as session:
            await session.select_county("Nairobi")
            seen = []
            session.on_stats(seen.append)
            assert session.stats.agents_recruited == 0

            session.set_roster(roster)

            assert session.stats.agents_recruited == 1
            assert seen[-1] == session.stats
            assert session.roster == roster

    @pytest.mark.asyncio
    async def test_selection_change_recomputes(self, settings, fetcher, roster):
        async with open_session(settings, fetcher, roster) as session:
            await session.select_county("Nairobi")
            before = session.recompute_count

            await session.select_constituency("Ruaraka")

            assert session.recompute_count > before
            assert session.stats.total_stations == 1
            assert session.stats.agents_recruited == 0

    @pytest.mark.asyncio
    async def test_clear_county_drops_stats(self, settings, fetcher, roster):
        async with open_session(settings, fetcher, roster) as session:
            await session.select_county("Nairobi")

            assert session.clear(HierarchyLevel.COUNTY)
            assert session.stats is None

    @pytest.mark.asyncio
    async def test_agent_views(self, settings, fetcher, roster):
        async with open_session(settings, fetcher, roster) as session:
            await session.select_county("Mombasa")
            assert session.filtered_agents() == []

            await session.select_county("Nairobi")
            assert session.filtered_agents(search="wanjiru") == roster
            assert session.filtered_agents(status=AgentStatus.TRAINED) == []
            assert session.agents_for_station("1") == roster

    @pytest.mark.asyncio
    async def test_locked_operator_session(self, settings, fetcher, roster):
        operator = OperatorContext(
            role="county_coordinator",
            home_county="Nairobi",
            permissions=["agent.manage.county"],
        )
        async with open_session(settings, fetcher, roster, operator=operator) as session:
            assert session.selection.county.name == "Nairobi"
            assert session.stats is not None

            assert await session.select_county("Mombasa") is False

            assert session.selection.county.name == "Nairobi"
            assert [e.message for e in session.notifications.events] == [SCOPE_VIOLATION_MESSAGE]

    @pytest.mark.asyncio
    async def test_close_discards_cache(self, settings, fetcher):
        session = open_session(settings, fetcher)
        await session.start()
        await session.select_county("Nairobi")
        assert len(session.cache.cache) > 0

        await session.close()

        assert len(session.cache.cache) == 0
        assert session.guard.resolver is None
