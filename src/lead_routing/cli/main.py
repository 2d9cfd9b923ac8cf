"""Main CLI entry point for the lead-routing command."""

import json
import logging
import time
import click
from pathlib import Path
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from typing import Optional

from ..errors import RuleParseError
from ..services import RoutingServices, build_services
from ..sla.runner import SlaTaskRunner
from ..storage.models import Tenant

console = Console()

STATUS_STYLES = {"PENDING": "yellow", "BREACHED": "red", "SATISFIED": "green"}


def get_services(db_path: Optional[str] = None) -> RoutingServices:
    """Build services against the given or default database."""
    path = Path(db_path) if db_path else None
    return build_services(db_path=path)


@click.group()
@click.version_option(version="1.0.0", prog_name="lead-routing")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
def cli(verbose: bool):
    """Lead Routing - rule-based lead assignment with SLA tracking.

    \b
    Quick Start:
      lead-routing init -t acme                 # Initialize database and tenant
      lead-routing add-rule -t acme rule.json   # Add a routing rule
      lead-routing sweep                        # Breach overdue SLA timers
      lead-routing sla -t acme                  # SLA dashboard
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@cli.command()
@click.option("--tenant", "-t", "tenant_id", help="Register or update this tenant")
@click.option("--name", help="Tenant display name")
@click.option("--timezone", "tz", default="America/New_York", help="Tenant IANA timezone")
@click.option("--quiet-start", default=21, type=click.IntRange(0, 23), help="Quiet hours start (local hour)")
@click.option("--quiet-end", default=8, type=click.IntRange(0, 23), help="Quiet hours end (local hour)")
@click.option("--ten-dlc-ready", is_flag=True, help="Tenant messaging registration is complete")
@click.option("--db", "db_path", help="Custom database path")
def init(tenant_id: Optional[str], name: Optional[str], tz: str, quiet_start: int, quiet_end: int,
         ten_dlc_ready: bool, db_path: Optional[str]):
    """Initialize the routing database."""
    services = get_services(db_path)

    if tenant_id:
        services.db.upsert_tenant(Tenant(
            id=tenant_id,
            name=name or tenant_id,
            timezone=tz,
            quiet_hours_start=quiet_start,
            quiet_hours_end=quiet_end,
            ten_dlc_ready=ten_dlc_ready,
        ))

    console.print(Panel.fit(
        f"[green]✓ Database initialized![/green]\n\n"
        f"Location: [cyan]{services.db.db_path}[/cyan]\n"
        + (f"Tenant: [cyan]{tenant_id}[/cyan] ({tz})\n" if tenant_id else "")
        + "\n[dim]Run 'lead-routing --help' for all commands[/dim]",
        title="Lead Routing"
    ))


@cli.command()
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@click.option("--db", "db_path", help="Custom database path")
def rules(tenant_id: str, db_path: Optional[str]):
    """List routing rules in evaluation order."""
    services = get_services(db_path)
    rule_list = services.rules.list_rules(tenant_id)

    if not rule_list:
        console.print("[yellow]No routing rules configured.[/yellow]")
        return

    table = Table(title=f"Routing Rules ({len(rule_list)})")
    table.add_column("Priority", justify="right", style="dim")
    table.add_column("Name", style="cyan", max_width=30)
    table.add_column("Mode")
    table.add_column("Enabled", justify="center")
    table.add_column("Targets", max_width=40)
    table.add_column("Fallback Team")
    table.add_column("SLA (min)", justify="right")

    for rule in rule_list:
        if rule["targets"] is None:
            targets = "[red]invalid[/red]"
        else:
            targets = ", ".join(t["type"] for t in rule["targets"])
        fallback = rule["fallback"]["team_id"] if rule["fallback"] else "-"
        sla = rule["sla_first_touch_minutes"] or "-"

        table.add_row(
            str(rule["priority"]),
            rule["name"][:30],
            rule["mode"],
            "[green]yes[/green]" if rule["enabled"] else "[dim]no[/dim]",
            targets,
            fallback,
            str(sla),
        )

    console.print(table)


@cli.command("add-rule")
@click.argument("rule_file", type=click.Path(exists=True))
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@click.option("--db", "db_path", help="Custom database path")
def add_rule(rule_file: str, tenant_id: str, db_path: Optional[str]):
    """Create a routing rule from a JSON file."""
    services = get_services(db_path)

    with open(rule_file, "r") as f:
        data = json.load(f)

    try:
        rule = services.rules.create_rule(
            tenant_id,
            name=data["name"],
            targets=data.get("targets"),
            mode=data.get("mode", "FIRST_MATCH"),
            priority=data.get("priority", 0),
            enabled=data.get("enabled", True),
            conditions=data.get("conditions"),
            fallback=data.get("fallback"),
            sla_first_touch_minutes=data.get("sla_first_touch_minutes"),
            sla_kept_appointment_minutes=data.get("sla_kept_appointment_minutes"),
        )
    except (KeyError, RuleParseError) as e:
        console.print(f"[red]Invalid rule: {e}[/red]")
        raise SystemExit(1)

    console.print(f"[green]Created rule {rule.name}[/green] [dim]({rule.id})[/dim]")


@cli.command()
@click.option("--tenant", "-t", "tenant_id", help="Only sweep this tenant")
@click.option("--interval", type=int, help="Keep sweeping every N seconds")
@click.option("--db", "db_path", help="Custom database path")
def sweep(tenant_id: Optional[str], interval: Optional[int], db_path: Optional[str]):
    """Breach overdue SLA timers and route them to their fallback pond."""
    services = get_services(db_path)
    runner = SlaTaskRunner(services.sla, interval_seconds=interval or 0, tenant_id=tenant_id)

    if not interval:
        processed = runner.run_once()
        console.print(f"[green]Processed {processed} SLA timer(s)[/green]")
        return

    console.print(f"[cyan]Sweeping every {interval}s. Press Ctrl+C to stop.[/cyan]")
    try:
        while True:
            processed = runner.run_once()
            if processed:
                console.print(f"Processed {processed} SLA timer(s)")
            time.sleep(interval)
    except KeyboardInterrupt:
        console.print(f"\n[dim]Stopped after {runner.runs} sweep(s)[/dim]")


@cli.command()
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@click.option("--limit", "-n", default=20, help="Number of timers to show")
@click.option("--db", "db_path", help="Custom database path")
def sla(tenant_id: str, limit: int, db_path: Optional[str]):
    """Show the SLA dashboard."""
    services = get_services(db_path)
    dashboard = services.metrics.get_sla_dashboard(tenant_id)
    summary = dashboard["summary"]

    console.print(
        f"[bold]Timers:[/bold] {summary['total']}  "
        f"[yellow]Pending: {summary['pending']}[/yellow]  "
        f"[red]Breached: {summary['breached']}[/red]  "
        f"[green]Satisfied: {summary['satisfied']}[/green]"
    )

    timers = dashboard["timers"][:limit]
    if not timers:
        return

    table = Table(title="SLA Timers")
    table.add_column("Lead", style="cyan")
    table.add_column("Type")
    table.add_column("Status", justify="center")
    table.add_column("Due")
    table.add_column("Agent", style="dim")

    for timer in timers:
        style = STATUS_STYLES.get(timer["status"], "")
        table.add_row(
            timer["lead_id"],
            timer["type"],
            f"[{style}]{timer['status']}[/{style}]",
            timer["due_at"][:16].replace("T", " "),
            timer["assigned_agent_id"] or "-",
        )

    console.print(table)


@cli.command()
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@click.option("--db", "db_path", help="Custom database path")
def metrics(tenant_id: str, db_path: Optional[str]):
    """Show first-touch, breach and kept-appointment metrics."""
    services = get_services(db_path)
    data = services.metrics.get_metrics(tenant_id)

    first_touch = data["first_touch"]
    average = first_touch["average_minutes"]
    console.print(Panel.fit(
        f"First touches: [cyan]{first_touch['count']}[/cyan]\n"
        f"Average minutes to first touch: [cyan]{average if average is not None else '-'}[/cyan]\n"
        f"First-touch breach rate: [red]{data['breach']['first_touch']['percentage']}%[/red]\n"
        f"Kept-appointment breach rate: [red]{data['breach']['kept_appointment']['percentage']}%[/red]",
        title="SLA Metrics"
    ))

    for title, rows, id_key, name_key in (
        ("Kept Rate by Rule", data["rules"], "rule_id", "rule_name"),
        ("Kept Rate by Agent", data["agents"], "agent_id", "agent_name"),
    ):
        if not rows:
            continue
        table = Table(title=title)
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="dim")
        table.add_column("Timers", justify="right")
        table.add_column("Kept %", justify="right")
        for row in rows:
            table.add_row(row[name_key], row[id_key], str(row["total"]), f"{row['kept_rate']}%")
        console.print(table)


@cli.command()
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@click.option("--db", "db_path", help="Custom database path")
def capacity(tenant_id: str, db_path: Optional[str]):
    """Show agent capacity."""
    services = get_services(db_path)
    agents = services.metrics.get_capacity_view(tenant_id)

    if not agents:
        console.print("[yellow]No routable agents.[/yellow]")
        return

    table = Table(title=f"Agent Capacity ({len(agents)})")
    table.add_column("Agent", style="cyan")
    table.add_column("Pipeline", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Remaining", justify="right", style="bold")
    table.add_column("Kept Rate", justify="right")
    table.add_column("Teams", style="dim")

    for agent in agents:
        remaining = agent["capacity_remaining"]
        table.add_row(
            agent["name"] or agent["agent_id"],
            str(agent["active_pipeline"]),
            str(agent["capacity_target"]),
            f"[red]{remaining}[/red]" if remaining == 0 else str(remaining),
            f"{agent['kept_appt_rate']:.0%}",
            ", ".join(agent["team_ids"]) or "-",
        )

    console.print(table)


if __name__ == "__main__":
    cli()
