"""Command-line interface for field-geo."""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from aggregation.staffing import AggregationEngine, progress_pct
from field_geo.config import Settings
from models.geography import GeoRef, HierarchyLevel, SelectionState
from models.permissions import OperatorContext
from models.roster import AgentStatus
from orchestration.session import FieldOpsSession
from resolution.catalog import StationCatalog, load_roster, load_station_catalog
from resolution.errors import InvalidSelectionError

app = typer.Typer(
    name="field-geo",
    help="Field Geo - County → Constituency → Ward → Polling Station resolution and staffing",
    add_completion=False,
)

console = Console()


def _configure_logging(settings: Settings, verbose: bool) -> None:
    level = logging.DEBUG if verbose or settings.app.debug else getattr(logging, settings.app.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


@app.command()
def version():
    """Show version information."""
    from field_geo import __version__

    console.print(Panel.fit(
        f"[bold blue]Field Geo[/bold blue]\n"
        f"Version: [green]{__version__}[/green]",
        title="Version Info"
    ))


@app.command()
def counties(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """List the counties served by the geography service."""
    settings = Settings.load()
    _configure_logging(settings, verbose)

    async def run():
        async with FieldOpsSession(OperatorContext(), settings=settings) as session:
            return session.resolver.counties, session.resolver.errors()

    items, errors = asyncio.run(run())
    for message in errors.values():
        console.print(f"[red]❌ {message}[/red]")

    table = Table(title="Counties")
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    for county in items:
        table.add_row(county.code, county.name)
    console.print(table)


@app.command()
def resolve(
    county: Optional[str] = typer.Option(None, "--county", help="County code or name"),
    constituency: Optional[str] = typer.Option(None, "--constituency", help="Constituency code or name"),
    ward: Optional[str] = typer.Option(None, "--ward", help="Ward code or name"),
    role: Optional[str] = typer.Option(None, "--role", help="Operator role"),
    home_county: Optional[str] = typer.Option(None, "--home-county", help="Operator's assigned county"),
    permission: List[str] = typer.Option([], "--permission", "-p", help="Granted permission (repeatable)"),
    roster: Optional[Path] = typer.Option(None, "--roster", help="Agent roster (JSON or YAML)"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Static station catalog (JSON or YAML)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Drill down the hierarchy and print staffing statistics for the scope."""
    settings = Settings.load()
    _configure_logging(settings, verbose)

    operator = OperatorContext(role=role, home_county=home_county, permissions=permission)
    agents = load_roster(roster) if roster else []
    station_catalog = load_station_catalog(catalog) if catalog else StationCatalog()

    async def run():
        async with FieldOpsSession(operator, settings=settings, catalog=station_catalog, roster=agents) as session:
            try:
                if county:
                    await session.select_county(county)
                if constituency:
                    await session.select_constituency(constituency)
                if ward:
                    await session.select_ward(ward)
            except InvalidSelectionError as e:
                console.print(f"[red]❌ {e}[/red]")
            session.recompute()
            return session.resolver.breadcrumb(), session.stats, session.stations, session.resolver.errors(), list(session.notifications.events)

    breadcrumb, stats, stations, errors, warnings = asyncio.run(run())

    for event in warnings:
        console.print(f"[yellow]⚠️  {event.message}[/yellow]")
    for message in errors.values():
        console.print(f"[red]❌ {message}[/red]")

    console.print(Panel.fit(f"[bold]{breadcrumb}[/bold]", title="Scope"))
    if stats is None:
        console.print("[yellow]No county selected[/yellow]")
        return

    summary = Table(title="Staffing")
    summary.add_column("Metric")
    summary.add_column("Value", justify="right")
    summary.add_row("Polling stations", str(stats.total_stations))
    summary.add_row("Agents required", str(stats.agents_required))
    summary.add_row("Recruited", str(stats.agents_recruited))
    summary.add_row("Vetted", str(stats.agents_vetted))
    summary.add_row("Trained", str(stats.agents_trained))
    summary.add_row("Assigned", f"{stats.agents_assigned} ({progress_pct(stats.agents_assigned, stats.agents_required):.0f}%)")
    summary.add_row("Stations staffed", str(stats.stations_with_agents))
    summary.add_row("Stations needing agents", str(stats.stations_needing_agents))
    console.print(summary)

    table = Table(title="Polling stations")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Agents", justify="right")
    table.add_column("Source")
    for station in stations:
        colour = "red" if station.needs_agents else "green"
        table.add_row(
            station.id,
            station.name,
            f"[{colour}]{station.agent_count}/{station.required_agents}[/{colour}]",
            station.source.value,
        )
    console.print(table)


@app.command()
def agents(
    roster: Path = typer.Argument(..., help="Agent roster (JSON or YAML)"),
    county: Optional[str] = typer.Option(None, "--county", help="County name"),
    constituency: Optional[str] = typer.Option(None, "--constituency", help="Constituency name"),
    ward: Optional[str] = typer.Option(None, "--ward", help="Ward name"),
    search: str = typer.Option("", "--search", "-s", help="Match name, contact, constituency or ward"),
    status: Optional[str] = typer.Option(None, "--status", help="Agent status"),
):
    """List roster agents in a scope, without contacting the geography service."""
    selection = SelectionState()
    try:
        if county:
            selection = selection.with_level(HierarchyLevel.COUNTY, GeoRef(name=county, code=county))
            if constituency:
                selection = selection.with_level(HierarchyLevel.CONSTITUENCY, GeoRef(name=constituency, code=constituency))
                if ward:
                    selection = selection.with_level(HierarchyLevel.WARD, GeoRef(name=ward, code=ward))
        status_filter = AgentStatus.parse(status) if status else None
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    results = AggregationEngine.filter_agents(load_roster(roster), selection, search=search, status=status_filter)

    table = Table(title=f"Agents ({len(results)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Station")
    table.add_column("Constituency")
    table.add_column("Ward")
    for agent in results:
        table.add_row(
            agent.id,
            agent.name,
            agent.status.value,
            agent.assigned_polling_station_id or "-",
            agent.constituency,
            agent.ward,
        )
    console.print(table)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
