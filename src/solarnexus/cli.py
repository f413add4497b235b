"""Command-line interface for solar savings and SDG impact."""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import config, db
from .collectors import readings, solax
from .errors import SolarNexusError
from .models import Site, to_dict
from .sdg import SDGTrackingService
from .tariffs import TariffEngine, load_tariff_config

console = Console()


def _engine(ctx) -> TariffEngine:
    config_path = ctx.obj["tariff_config"]
    return TariffEngine(load_tariff_config(config_path))


def _service(ctx, source: str) -> SDGTrackingService:
    store = db.SQLiteStore(ctx.obj["db_path"])
    if source == "solax":
        return SDGTrackingService(store, solax.SolaxEnergySource())
    # Imported readings exist for sites without cloud credentials too
    return SDGTrackingService(store, db.SQLiteEnergySource(ctx.obj["db_path"]), require_credentials=False)


def _load_energy_data(path: str) -> dict:
    with open(path) as f:
        return json.load(f)


def _print_json(data) -> None:
    console.print_json(json.dumps(to_dict(data)))


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("--config", "tariff_config", type=click.Path(exists=True), help="Path to tariffs.yaml")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, db_path, tariff_config, verbose):
    """Solar savings and SDG impact for monitored sites."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.get_log_level(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = Path(db_path) if db_path else None
    ctx.obj["tariff_config"] = Path(tariff_config) if tariff_config else config.get_tariff_config_path()


# Database commands
@cli.group()
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    db.init_db(ctx.obj["db_path"])
    console.print("[green]Database initialized successfully[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show database statistics."""
    stats = db.get_stats(ctx.obj["db_path"])

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Detail")

    orgs = stats["organizations"]
    table.add_row("Organizations", str(orgs["count"]), f"{orgs['active']} active")

    sites = stats["sites"]
    table.add_row(
        "Sites",
        str(sites["count"]),
        f"{sites['active']} active, {sites['integrated']} with SolaX, {sites['capacity_kw']:.1f} kW",
    )

    energy = stats["site_energy_readings"]
    table.add_row(
        "Daily readings",
        str(energy["count"]),
        f"{energy['earliest'] or 'N/A'} → {energy['latest'] or 'N/A'}",
    )

    console.print(table)


# Organization and site commands
@cli.group()
def org():
    """Organization commands."""
    pass


@org.command("add")
@click.argument("organization_id")
@click.argument("name")
@click.option("--inactive", is_flag=True, help="Mark the organization inactive")
@click.pass_context
def org_add(ctx, organization_id, name, inactive):
    """Add or update an organization."""
    db.add_organization(organization_id, name, not inactive, ctx.obj["db_path"])
    console.print(f"[green]Saved organization {organization_id}[/green]")


@cli.group()
def site():
    """Site commands."""
    pass


@site.command("add")
@click.argument("site_id")
@click.option("--org", "organization_id", required=True, help="Owning organization ID")
@click.option("--name", required=True, help="Site name")
@click.option("--capacity", type=float, required=True, help="Installed capacity (kW)")
@click.option("--address", help="Street address")
@click.option("--municipality", help="Municipality slug, e.g. city-of-cape-town")
@click.option("--solax-client-id", envvar="SOLAX_CLIENT_ID", help="SolaX client ID")
@click.option("--solax-client-secret", envvar="SOLAX_CLIENT_SECRET", help="SolaX client secret")
@click.option("--solax-plant-id", help="SolaX plant ID")
@click.option("--inactive", is_flag=True, help="Mark the site inactive")
@click.pass_context
def site_add(ctx, site_id, organization_id, name, capacity, address, municipality,
             solax_client_id, solax_client_secret, solax_plant_id, inactive):
    """Add or update a site."""
    db.add_site(
        Site(
            id=site_id,
            name=name,
            capacity=capacity,
            organization_id=organization_id,
            is_active=not inactive,
            address=address,
            municipality=municipality,
            solax_client_id=solax_client_id,
            solax_client_secret=solax_client_secret,
            solax_plant_id=solax_plant_id,
        ),
        ctx.obj["db_path"],
    )
    console.print(f"[green]Saved site {site_id}[/green]")


@site.command("list")
@click.argument("organization_id")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive sites")
@click.pass_context
def site_list(ctx, organization_id, include_inactive):
    """List an organization's sites."""
    sites = db.list_sites(organization_id, not include_inactive, ctx.obj["db_path"])
    if not sites:
        console.print("[yellow]No sites found[/yellow]")
        return

    table = Table(title=f"Sites for {organization_id}")
    table.add_column("Site ID", style="cyan")
    table.add_column("Name")
    table.add_column("Capacity", justify="right")
    table.add_column("Municipality", style="dim")
    table.add_column("SolaX", justify="center")
    table.add_column("Status")

    for s in sites:
        table.add_row(
            s.id,
            s.name,
            f"{s.capacity:.1f} kW",
            s.municipality or "-",
            "[green]✓[/green]" if s.has_integration_credentials else "[yellow]-[/yellow]",
            "[green]Active[/green]" if s.is_active else "[red]Inactive[/red]",
        )

    console.print(table)


# Import commands
@cli.group("import")
def import_cmd():
    """Import energy data."""
    pass


@import_cmd.command("readings")
@click.option("--csv", "csv_path", type=click.Path(exists=True), required=True,
              help="CSV with site_id,date,generation_kwh,consumption_kwh")
@click.pass_context
def import_readings(ctx, csv_path):
    """Import daily site readings from CSV."""
    result = readings.import_from_csv(Path(csv_path), ctx.obj["db_path"])
    console.print(f"[green]Imported {result['imported']} readings[/green]")
    if result["skipped"]:
        console.print(f"[yellow]Skipped {result['skipped']} duplicates[/yellow]")


@import_cmd.command("solax")
@click.argument("site_id")
@click.option("--days", default=30, help="Number of days to fetch (default: 30)")
@click.option("--from-date", help="Start date (YYYY-MM-DD)")
@click.option("--to-date", help="End date (YYYY-MM-DD)")
@click.pass_context
def import_solax(ctx, site_id, days, from_date, to_date):
    """Import a site's daily history from SolaX Cloud."""
    site_obj = db.get_site(site_id, ctx.obj["db_path"])
    if site_obj is None:
        console.print(f"[red]Site not found: {site_id}[/red]")
        return

    end = datetime.fromisoformat(to_date) if to_date else datetime.now()
    start = datetime.fromisoformat(from_date) if from_date else end - timedelta(days=days)

    try:
        console.print(f"[cyan]Fetching {start.date()} to {end.date()} for {site_id}...[/cyan]")
        daily = asyncio.run(solax.fetch_daily_readings(solax.SolaxClient(), site_obj, start, end))
        result = readings.save_readings(daily, ctx.obj["db_path"])
        console.print(f"[green]Imported {result['imported']} readings[/green]")
        if result["skipped"]:
            console.print(f"[yellow]Skipped {result['skipped']} duplicates[/yellow]")
    except SolarNexusError as e:
        console.print(f"[red]Error: {e}[/red]")


# Tariff commands
@cli.group()
def tariff():
    """Tariff commands."""
    pass


@tariff.command("rates")
@click.option("--municipality", help="Municipality slug")
@click.pass_context
def tariff_rates(ctx, municipality):
    """Show rates per kWh, optionally adjusted for a municipality."""
    engine = _engine(ctx)
    rates = engine.get_municipal_rates(None, municipality)
    currency = engine.config.currency

    table = Table(title=f"Tariff Rates ({municipality or 'default'})")
    table.add_column("Period", style="cyan")
    table.add_column(f"{currency}/kWh", justify="right")
    table.add_column("Hours", style="dim")

    for period, ranges in engine.default_time_periods.items():
        hours = ", ".join(f"{r.start}-{r.end}" for r in ranges)
        table.add_row(period, f"{rates.rate_for(period):.4f}", hours)
    table.add_row("feed_in", f"{rates.feed_in:.4f}", "")

    console.print(table)
    console.print(f"Current season: {engine.get_current_season()}")


@tariff.command("period")
@click.argument("time_str")
@click.pass_context
def tariff_period(ctx, time_str):
    """Show which rate period an HH:MM time falls in."""
    try:
        console.print(_engine(ctx).get_tariff_period(time_str))
    except SolarNexusError as e:
        console.print(f"[red]Error: {e}[/red]")


# Savings commands
@cli.command()
@click.argument("energy_file", type=click.Path(exists=True))
@click.option("--site", "site_id", default="cli", help="Site ID for logging")
@click.option("--address", help="Site address")
@click.option("--municipality", help="Municipality slug")
@click.option("--period", type=click.Choice(["day", "week", "month", "year", "lifetime"]),
              default="day", help="Extrapolation period")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def savings(ctx, energy_file, site_id, address, municipality, period, as_json):
    """Calculate savings from a day of energy data (JSON file)."""
    engine = _engine(ctx)
    try:
        result = engine.calculate_period_savings(
            site_id, _load_energy_data(energy_file), address, period, municipality
        )
    except (SolarNexusError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    if as_json:
        _print_json(result)
        return

    table = Table(title=f"Savings ({period}, {result.season})")
    table.add_column("Item", style="cyan")
    table.add_column(result.currency, justify="right")
    table.add_row("Grid cost", f"{result.total_grid_cost:,.2f}")
    table.add_row("Solar savings", f"{result.total_solar_savings:,.2f}")
    table.add_row("Feed-in earnings", f"{result.total_feed_in_earnings:,.2f}")
    table.add_row("Net savings", f"[green]{result.net_savings:,.2f}[/green]")
    table.add_row("Savings", f"{result.savings_percentage:.2f}%")
    console.print(table)


@cli.command()
@click.argument("energy_file", type=click.Path(exists=True))
@click.option("--municipality", help="Municipality slug")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def recommendations(ctx, energy_file, municipality, as_json):
    """Suggest usage changes for a day of energy data (JSON file)."""
    engine = _engine(ctx)
    rates = engine.get_municipal_rates(None, municipality)
    items = engine.get_usage_recommendations(_load_energy_data(energy_file), rates)

    if as_json:
        _print_json(items)
        return

    if not items:
        console.print("[green]No recommendations - usage looks good[/green]")
        return

    for item in items:
        colour = "red" if item.priority == "high" else "yellow"
        console.print(f"[{colour}]{item.priority.upper()}[/{colour}] {item.title}")
        console.print(f"  {item.description}")
        console.print(f"  Potential saving: {item.potential_saving:,.2f} {engine.config.currency}")


# SDG commands
@cli.group()
def sdg():
    """SDG impact commands."""
    pass


source_option = click.option(
    "--source",
    type=click.Choice(["db", "solax"]),
    default="db",
    help="Energy data from imported readings (db) or SolaX Cloud",
)


@sdg.command("impact")
@click.argument("organization_id")
@source_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sdg_impact(ctx, organization_id, source, as_json):
    """Show SDG impact for the last 12 months."""
    try:
        impact = asyncio.run(_service(ctx, source).calculate_sdg_impact(organization_id))
    except SolarNexusError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    if as_json:
        _print_json(impact)
        return

    console.print(
        f"[bold]{impact.organization_name}[/bold]: {impact.total_sites} sites, "
        f"{impact.total_capacity:.1f} kW"
    )
    table = Table(title="SDG Metrics")
    table.add_column("Goal", justify="right", style="cyan")
    table.add_column("Target")
    table.add_column("Indicator")
    table.add_column("Value", justify="right")
    table.add_column("Unit", style="dim")
    for m in impact.metrics:
        table.add_row(str(m.goal), m.target, m.indicator, f"{m.value:,.2f}", m.unit)
    console.print(table)


@sdg.command("score")
@click.argument("organization_id")
@source_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sdg_score(ctx, organization_id, source, as_json):
    """Show SDG alignment score."""
    try:
        score = asyncio.run(_service(ctx, source).get_sdg_alignment_score(organization_id))
    except SolarNexusError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    if as_json:
        _print_json(score)
        return

    console.print(f"Overall score: [bold]{score.overall_score}[/bold]/100")
    for g in score.goal_scores:
        console.print(f"  SDG {g.goal:>2} {g.description}: {g.score:.0f}")
    for line in score.strengths:
        console.print(f"[green]+ {line}[/green]")
    for line in score.improvements:
        console.print(f"[yellow]- {line}[/yellow]")


@sdg.command("report")
@click.argument("organization_id")
@click.option("--from-date", required=True, help="Start date (YYYY-MM-DD)")
@click.option("--to-date", required=True, help="End date (YYYY-MM-DD)")
@source_option
@click.pass_context
def sdg_report(ctx, organization_id, from_date, to_date, source):
    """Generate an SDG report as JSON."""
    start = datetime.fromisoformat(from_date)
    end = datetime.fromisoformat(to_date)
    try:
        report_data = asyncio.run(_service(ctx, source).generate_sdg_report(organization_id, start, end))
    except SolarNexusError as e:
        console.print(f"[red]Error: {e}[/red]")
        return
    _print_json(report_data)


@sdg.command("compare")
@click.argument("organization_ids", nargs=-1, required=True)
@source_option
@click.pass_context
def sdg_compare(ctx, organization_ids, source):
    """Compare SDG impact across organizations."""
    try:
        comparison = asyncio.run(_service(ctx, source).get_sdg_comparison(list(organization_ids)))
    except SolarNexusError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    table = Table(title="SDG Comparison")
    table.add_column("Organization", style="cyan")
    table.add_column("Sites", justify="right")
    table.add_column("Capacity (kW)", justify="right")
    table.add_column("Generation (kWh)", justify="right")
    table.add_column("CO2 avoided (kg)", justify="right")
    table.add_column("Jobs", justify="right")

    for impact in comparison.organizations:
        table.add_row(
            impact.organization_name,
            str(impact.total_sites),
            f"{impact.total_capacity:,.1f}",
            f"{impact.summary.renewable_energy_generated:,.0f}",
            f"{impact.summary.total_co2_avoided:,.0f}",
            str(impact.summary.jobs_supported),
        )

    agg = comparison.aggregated
    table.add_row(
        "[bold]Total[/bold]",
        str(agg["total_communities_impacted"]),
        f"{agg['total_capacity']:,.1f}",
        f"{agg['total_generation']:,.0f}",
        f"{agg['total_co2_avoided']:,.0f}",
        str(agg["total_jobs_supported"]),
    )
    console.print(table)


if __name__ == "__main__":
    cli()
