"""
Tests for HierarchyResolver.

Verifies the cascade (selecting a level resets everything below it), the
cache short-circuit, stale-response rejection, level-local errors and the
polling-station fallback to the static catalog.
"""

import asyncio
import sys
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, Mock

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from database.cache import GeoLookupCache
from models.geography import HierarchyLevel, StationSource
from resolution.errors import ErrorKind, InvalidSelectionError
from resolution.hierarchy import HierarchyResolver, LevelStatus
from utils.http import BoundedFetcher, CancellationToken, FetchResponse, FetchTimeout, NetworkError

from fakes import FakeFetcher, envelope, nairobi_payloads, service_config


COUNTIES = "get_counties.php"
CONSTITUENCIES = "get_constituencies.php"
WARDS = "get_wards.php"
STATIONS = "get_polling_stations_for_roles.php"


@pytest.fixture
def fetcher():
    return FakeFetcher(nairobi_payloads())


@pytest.fixture
def resolver(fetcher):
    return HierarchyResolver(fetcher=fetcher, cache=GeoLookupCache(), service=service_config())


async def drill_to_mwiki(resolver):
    await resolver.load_counties()
    await resolver.select_county("Nairobi")
    await resolver.select_constituency("Kasarani")
    await resolver.select_ward("Mwiki")


class TestLoading:
    """Test level loading and the cache short-circuit."""

    @pytest.mark.asyncio
    async def test_load_counties(self, resolver, fetcher):
        state = await resolver.load_counties()

        assert state.status == LevelStatus.LOADED
        assert [c.name for c in resolver.counties] == ["Nairobi", "Mombasa"]
        assert fetcher.count(COUNTIES) == 1

    @pytest.mark.asyncio
    async def test_select_county_loads_constituencies(self, resolver, fetcher):
        await resolver.load_counties()
        assert await resolver.select_county("047")

        state = resolver.state(HierarchyLevel.CONSTITUENCY)
        assert state.status == LevelStatus.LOADED
        assert state.parent_code == "047"
        assert [c.name for c in resolver.constituencies] == ["Kasarani", "Ruaraka"]
        assert all(c.parent_code == "047" for c in resolver.constituencies)
        assert resolver.selection.county.name == "Nairobi"
        assert resolver.state(HierarchyLevel.WARD).status == LevelStatus.IDLE

    @pytest.mark.asyncio
    async def test_parent_code_is_sent_as_query_param(self, resolver, fetcher):
        await drill_to_mwiki(resolver)

        assert (CONSTITUENCIES, "047") in fetcher.calls
        assert (WARDS, "047-01") in fetcher.calls
        assert (STATIONS, "W1") in fetcher.calls

    @pytest.mark.asyncio
    async def test_cached_lookup_is_not_refetched(self, resolver, fetcher):
        await resolver.load_counties()
        await resolver.select_county("Nairobi")
        await resolver.select_county("Mombasa")

        assert resolver.choose(HierarchyLevel.COUNTY, "Nairobi")

        # A cache hit is applied synchronously, no Loading state in between.
        state = resolver.state(HierarchyLevel.CONSTITUENCY)
        assert state.status == LevelStatus.LOADED
        assert state.from_cache
        assert fetcher.count(CONSTITUENCIES, "047") == 1

    @pytest.mark.asyncio
    async def test_second_county_load_uses_cache(self, resolver, fetcher):
        await resolver.load_counties()
        state = await resolver.load_counties()

        assert state.from_cache
        assert fetcher.count(COUNTIES) == 1

    @pytest.mark.asyncio
    async def test_loading_state_while_in_flight(self, resolver, fetcher):
        await resolver.load_counties()
        gate = fetcher.hold(CONSTITUENCIES, "047")

        resolver.choose(HierarchyLevel.COUNTY, "Nairobi")
        assert resolver.state(HierarchyLevel.CONSTITUENCY).loading

        gate.set()
        await resolver.wait_idle()
        assert resolver.state(HierarchyLevel.CONSTITUENCY).status == LevelStatus.LOADED

    @pytest.mark.asyncio
    async def test_fetch_call_carries_timeout_and_token(self):
        client = Mock(spec=BoundedFetcher)
        client.fetch = AsyncMock(return_value=FetchResponse(
            url="http://geo.test/API/get_counties.php",
            status=200,
            data=nairobi_payloads()[(COUNTIES, None)],
            latency_ms=3.0,
        ))
        resolver = HierarchyResolver(fetcher=client, service=service_config(timeout_ms=4000))

        await resolver.load_counties()

        client.fetch.assert_awaited_once()
        args, kwargs = client.fetch.call_args
        assert args == ("http://geo.test/API/get_counties.php", 4000)
        assert kwargs["params"] is None
        assert isinstance(kwargs["token"], CancellationToken)
        assert len(resolver.counties) == 2

    @pytest.mark.asyncio
    async def test_rows_without_code_or_name_are_dropped(self, fetcher):
        fetcher.responses[(COUNTIES, None)] = envelope([
            {"county_code": "047", "county_name": "Nairobi"},
            {"county_code": "", "county_name": "Nowhere"},
            {"county_name": "No Code"},
            "not-a-row",
        ])
        resolver = HierarchyResolver(fetcher=fetcher, service=service_config())

        await resolver.load_counties()

        assert [c.code for c in resolver.counties] == ["047"]


class TestCascade:
    """Test that changing a level resets everything below it."""

    @pytest.mark.asyncio
    async def test_changing_county_resets_descendants(self, resolver):
        await drill_to_mwiki(resolver)
        assert resolver.is_selected_up_to(HierarchyLevel.WARD)

        await resolver.select_county("Mombasa")

        selection = resolver.selection
        assert selection.county.name == "Mombasa"
        assert selection.constituency is None
        assert selection.ward is None
        assert selection.polling_station is None
        assert [c.name for c in resolver.constituencies] == ["Likoni"]
        assert resolver.wards == []
        assert resolver.polling_stations == []
        assert resolver.state(HierarchyLevel.WARD).status == LevelStatus.IDLE
        assert resolver.state(HierarchyLevel.POLLING_STATION).status == LevelStatus.IDLE

    @pytest.mark.asyncio
    async def test_changing_constituency_keeps_county(self, resolver):
        await drill_to_mwiki(resolver)

        await resolver.select_constituency("Ruaraka")

        assert resolver.selection.county.name == "Nairobi"
        assert resolver.selection.ward is None
        assert [w.name for w in resolver.wards] == ["Baba Dogo"]
        assert resolver.polling_stations == []

    @pytest.mark.asyncio
    async def test_clear_constituency(self, resolver):
        await drill_to_mwiki(resolver)

        assert resolver.clear(HierarchyLevel.CONSTITUENCY)

        assert resolver.selection.county.name == "Nairobi"
        assert resolver.selection.constituency is None
        assert resolver.wards == []
        assert resolver.state(HierarchyLevel.POLLING_STATION).status == LevelStatus.IDLE
        assert len(resolver.constituencies) == 2

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, resolver):
        await drill_to_mwiki(resolver)

        assert resolver.reset()

        assert resolver.selection.county is None
        assert resolver.constituencies == []
        assert len(resolver.counties) == 2
        assert resolver.breadcrumb() == "—"

    @pytest.mark.asyncio
    async def test_listeners_see_each_level_change(self, resolver):
        await resolver.load_counties()
        seen = []
        unsubscribe = resolver.subscribe(seen.append)

        await resolver.select_county("Nairobi")
        unsubscribe()
        await resolver.select_constituency("Kasarani")

        assert HierarchyLevel.CONSTITUENCY in seen
        assert HierarchyLevel.COUNTY in seen
        assert HierarchyLevel.WARD not in seen


class TestStaleResponses:
    """Test that only the latest selection's response is applied."""

    @pytest.mark.asyncio
    async def test_slow_response_for_abandoned_county_is_discarded(self, resolver, fetcher):
        await resolver.load_counties()
        gate = fetcher.hold(CONSTITUENCIES, "047")

        resolver.choose(HierarchyLevel.COUNTY, "Nairobi")
        await resolver.select_county("Mombasa")
        assert [c.name for c in resolver.constituencies] == ["Likoni"]

        gate.set()
        await resolver.wait_idle()

        state = resolver.state(HierarchyLevel.CONSTITUENCY)
        assert state.parent_code == "001"
        assert [c.name for c in resolver.constituencies] == ["Likoni"]
        # The late payload is still valid for its own key.
        assert resolver.cache.get_level(HierarchyLevel.CONSTITUENCY, "047") is not None

    @pytest.mark.asyncio
    async def test_superseded_request_token_is_cancelled(self, resolver, fetcher):
        await resolver.load_counties()
        gate = fetcher.hold(CONSTITUENCIES, "047")

        resolver.choose(HierarchyLevel.COUNTY, "Nairobi")
        # Let the scheduled lookup reach the fetcher.
        await asyncio.sleep(0)
        token = fetcher.tokens[-1]
        assert fetcher.calls[-1] == (CONSTITUENCIES, "047")
        assert not token.cancelled

        await resolver.select_county("Mombasa")

        assert token.cancelled
        assert token.reason == "county changed"
        gate.set()
        await resolver.wait_idle()

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_mark_error(self, resolver, fetcher):
        await resolver.load_counties()
        fetcher.responses[(CONSTITUENCIES, "047")] = NetworkError("connection reset")
        gate = fetcher.hold(CONSTITUENCIES, "047")

        resolver.choose(HierarchyLevel.COUNTY, "Nairobi")
        await resolver.select_county("Mombasa")
        gate.set()
        await resolver.wait_idle()

        assert resolver.state(HierarchyLevel.CONSTITUENCY).status == LevelStatus.LOADED
        assert resolver.errors() == {}

    @pytest.mark.asyncio
    async def test_rapid_ward_switching_keeps_last(self, resolver, fetcher):
        await resolver.load_counties()
        await resolver.select_county("Nairobi")
        await resolver.select_constituency("Kasarani")
        gate = fetcher.hold(STATIONS, "W1")

        resolver.choose(HierarchyLevel.WARD, "Mwiki")
        await resolver.select_ward("Clay City")
        gate.set()
        await resolver.wait_idle()

        assert resolver.selection.ward.name == "Clay City"
        assert resolver.state(HierarchyLevel.POLLING_STATION).parent_code == "W2"
        assert resolver.polling_stations == []


class TestErrors:
    """Test level-local error handling."""

    @pytest.mark.asyncio
    async def test_bad_envelope_is_format_error(self, resolver, fetcher):
        fetcher.responses[(CONSTITUENCIES, "001")] = {"status": "error", "message": "no such county"}
        await resolver.load_counties()

        await resolver.select_county("Mombasa")

        state = resolver.state(HierarchyLevel.CONSTITUENCY)
        assert state.status == LevelStatus.ERROR
        assert state.error == "Failed to load constituencies"
        assert state.error_kind == ErrorKind.FORMAT
        assert resolver.cache.get_level(HierarchyLevel.CONSTITUENCY, "001") is None

    @pytest.mark.asyncio
    async def test_error_stays_on_its_level(self, resolver, fetcher):
        fetcher.responses[(WARDS, "047-01")] = NetworkError("connection refused")
        await resolver.load_counties()
        await resolver.select_county("Nairobi")

        await resolver.select_constituency("Kasarani")

        assert resolver.errors() == {HierarchyLevel.WARD: "Failed to load wards"}
        assert resolver.state(HierarchyLevel.WARD).error_kind == ErrorKind.NETWORK
        assert resolver.state(HierarchyLevel.COUNTY).status == LevelStatus.LOADED
        assert resolver.state(HierarchyLevel.CONSTITUENCY).status == LevelStatus.LOADED
        assert resolver.selection.constituency.name == "Kasarani"

    @pytest.mark.asyncio
    async def test_timeout_kind(self, resolver, fetcher):
        fetcher.responses[(COUNTIES, None)] = FetchTimeout("timed out after 12000ms")

        state = await resolver.load_counties()

        assert state.status == LevelStatus.ERROR
        assert state.error == "Failed to load counties"
        assert state.error_kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_non_2xx_is_network_error(self, resolver, fetcher):
        fetcher.responses[(COUNTIES, None)] = FetchResponse(
            url="http://geo.test/API/get_counties.php",
            status=503,
            data=envelope([{"county_code": "047", "county_name": "Nairobi"}]),
            latency_ms=1.0,
        )

        state = await resolver.load_counties()

        assert state.error_kind == ErrorKind.NETWORK
        assert resolver.counties == []

    @pytest.mark.asyncio
    async def test_failed_level_can_be_retried(self, resolver, fetcher):
        fetcher.responses[(COUNTIES, None)] = NetworkError("offline")
        await resolver.load_counties()

        fetcher.responses[(COUNTIES, None)] = nairobi_payloads()[(COUNTIES, None)]
        state = await resolver.load_counties()

        assert state.status == LevelStatus.LOADED
        assert resolver.errors() == {}
        assert fetcher.count(COUNTIES) == 2


class TestInvalidSelection:
    """Test selections that cannot be made."""

    @pytest.mark.asyncio
    async def test_child_before_parent(self, resolver):
        await resolver.load_counties()

        with pytest.raises(InvalidSelectionError):
            await resolver.select_constituency("Kasarani")

    @pytest.mark.asyncio
    async def test_unknown_node(self, resolver):
        await resolver.load_counties()

        with pytest.raises(InvalidSelectionError, match="Unknown county"):
            await resolver.select_county("Turkana")

        assert resolver.selection.county is None


class TestPollingStations:
    """Test station resolution and the static catalog fallback."""

    @pytest.mark.asyncio
    async def test_api_stations_win_for_selected_ward(self, resolver):
        await drill_to_mwiki(resolver)

        stations = resolver.resolved_stations()
        assert [s.id for s in stations] == ["1"]
        station = stations[0]
        assert station.source == StationSource.API
        assert station.parent_code == "W1"
        assert (station.county, station.constituency, station.ward) == ("Nairobi", "Kasarani", "Mwiki")

    @pytest.mark.asyncio
    async def test_empty_ward_falls_back_to_catalog(self, resolver):
        await resolver.load_counties()
        await resolver.select_county("Nairobi")
        await resolver.select_constituency("Kasarani")
        await resolver.select_ward("Clay City")

        stations = resolver.resolved_stations()
        assert [s.name for s in stations] == ["Kasarani Primary"]
        assert stations[0].source == StationSource.CATALOG

    @pytest.mark.asyncio
    async def test_county_only_uses_catalog_for_county(self, resolver):
        await resolver.load_counties()
        await resolver.select_county("Nairobi")

        assert sorted(s.id for s in resolver.resolved_stations()) == ["1", "2", "5"]

    @pytest.mark.asyncio
    async def test_no_county_no_stations(self, resolver):
        await resolver.load_counties()
        assert resolver.resolved_stations() == []

    @pytest.mark.asyncio
    async def test_failed_station_lookup_falls_back(self, resolver, fetcher):
        fetcher.responses[(STATIONS, "W1")] = NetworkError("offline")

        await drill_to_mwiki(resolver)

        assert HierarchyLevel.POLLING_STATION in resolver.errors()
        assert [s.source for s in resolver.resolved_stations()] == [StationSource.CATALOG]

    @pytest.mark.asyncio
    async def test_legacy_polling_centers_key(self, resolver, fetcher):
        fetcher.responses[(STATIONS, "W1")] = {
            "status": "success",
            "polling_centers": [{"station_id": 77, "station_name": "Mwiki Social Hall"}],
        }

        await drill_to_mwiki(resolver)

        assert [(s.id, s.name) for s in resolver.polling_stations] == [("77", "Mwiki Social Hall")]

    @pytest.mark.asyncio
    async def test_bare_list_of_stations(self, resolver, fetcher):
        fetcher.responses[(STATIONS, "W1")] = [{"id": "PS-9", "name": "Mwiki Primary"}]

        await drill_to_mwiki(resolver)

        assert [s.id for s in resolver.polling_stations] == ["PS-9"]

    @pytest.mark.asyncio
    async def test_missing_station_list_is_empty(self, resolver, fetcher):
        fetcher.responses[(STATIONS, "W1")] = {"status": "success"}

        await drill_to_mwiki(resolver)

        state = resolver.state(HierarchyLevel.POLLING_STATION)
        assert state.status == LevelStatus.LOADED
        assert state.items == []

    @pytest.mark.asyncio
    async def test_select_polling_station(self, resolver):
        await drill_to_mwiki(resolver)

        assert await resolver.select_polling_station("Kasarani Primary")

        assert resolver.selection.polling_station.code == "1"
        assert resolver.is_selected_up_to(HierarchyLevel.POLLING_STATION)
        assert resolver.breadcrumb() == "Nairobi • Kasarani • Mwiki • Kasarani Primary"


class TestCapacity:
    """Test the optional per-ward capacity lookup."""

    @pytest.mark.asyncio
    async def test_capacity_endpoint_overrides_catalog(self, fetcher):
        fetcher.responses[("get_capacity.php", "W1")] = envelope([
            {"polling_station_id": "1", "required_agents": 5},
        ])
        resolver = HierarchyResolver(
            fetcher=fetcher,
            service=service_config(capacity_path="get_capacity.php"),
        )

        await drill_to_mwiki(resolver)
        await resolver.wait_idle()

        assert resolver.capacity.required_for("1") == 5
        assert resolver.cache.get_capacity("W1") is not None

    @pytest.mark.asyncio
    async def test_capacity_failure_keeps_static_values(self, fetcher):
        fetcher.responses[("get_capacity.php", "W1")] = NetworkError("offline")
        resolver = HierarchyResolver(
            fetcher=fetcher,
            service=service_config(capacity_path="get_capacity.php"),
        )

        await drill_to_mwiki(resolver)
        await resolver.wait_idle()

        assert resolver.capacity.required_for("1") == 3
        assert resolver.errors() == {}

    @pytest.mark.asyncio
    async def test_no_capacity_lookup_without_path(self, resolver, fetcher):
        await drill_to_mwiki(resolver)
        await resolver.wait_idle()

        assert not any(endpoint == "get_capacity.php" for endpoint, _ in fetcher.calls)


class TestBreadcrumb:
    """Test the selection breadcrumb."""

    @pytest.mark.asyncio
    async def test_breadcrumb(self, resolver):
        assert resolver.breadcrumb() == "—"

        await drill_to_mwiki(resolver)

        assert resolver.breadcrumb() == "Nairobi • Kasarani • Mwiki"
        assert resolver.breadcrumb(" / ") == "Nairobi / Kasarani / Mwiki"
