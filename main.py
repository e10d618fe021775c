"""
Opsboard - Main Entry Point

CLI for the multi-tenant operations dashboard: inspect the agent fleet,
review the autonomous activity feed, manage the content calendar and the
white-label licensing portfolio of one organization.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from core.config.loader import list_available_profiles, load_profile_config
from core.config.schema import DashboardConfig
from core.exceptions import ProfileConfigError
from core.integrations.supabase_client import OpsboardDB
from core.metrics.aggregator import (
    content_title,
    format_currency,
    format_percent,
    humanize_identifier,
    sub_org_utilization,
)
from core.observability.logging_config import configure_logging
from core.tenancy import TenantContext
from core.views.activity_feed import ActivityFeed
from core.views.agent_dashboard import AgentDashboard
from core.views.base import TenantScopedView
from core.views.content_scheduler import ContentScheduler
from core.views.licensing import LicensingPanel
from core.views.notifications import NotificationLevel, Notifier

# Load environment (override=True to ensure .env values take precedence)
root_env = Path(__file__).parent / ".env"
if root_env.exists():
    load_dotenv(root_env, override=True)
else:
    load_dotenv(override=True)

app = typer.Typer(
    name="opsboard",
    help="Opsboard - multi-tenant business operations dashboard",
)
console = Console()

ORG_OPTION = typer.Option(
    None, "--org", envvar="OPSBOARD_ORG_ID", help="Organization id to act for"
)
PROFILE_OPTION = typer.Option("default", "--profile", help="Dashboard profile ID")

_LEVEL_STYLES = {
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.INFO: "cyan",
    NotificationLevel.ERROR: "red",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Configure logging before any command runs."""
    configure_logging(level=logging.DEBUG if verbose else None)


def _get_config(profile: str) -> DashboardConfig:
    """Load and return profile config, with friendly error on failure."""
    try:
        return load_profile_config(profile)
    except FileNotFoundError:
        available = list_available_profiles()
        available_list = ", ".join(available) if available else "none found"
        console.print(Panel(
            f"[red]Profile not found:[/] [bold]{profile}[/]\n\n"
            f"Available profiles: [cyan]{available_list}[/]\n\n"
            f"To create a new profile:\n"
            f"  [dim]mkdir -p profiles/{profile}[/]\n"
            f"  [dim]# Add config.yaml based on profiles/default[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)
    except ProfileConfigError as e:
        console.print(f"[red]Invalid profile:[/] {e}")
        raise typer.Exit(code=1)


def _require_org(org: Optional[str]) -> TenantContext:
    tenant = TenantContext(org)
    if not tenant.is_resolved:
        console.print(Panel(
            "[red]No organization selected.[/]\n\n"
            "Pass [bold]--org <organization id>[/] or set it in your .env file:\n"
            "  [dim]OPSBOARD_ORG_ID=your_org_id[/]",
            title="⚠ Tenant Not Resolved",
            border_style="red",
        ))
        raise typer.Exit(code=1)
    return tenant


def _check_env_key(var_name: str, label: str) -> str:
    """Check if an environment variable is set. Shows a friendly error if missing."""
    value = os.environ.get(var_name, "").strip()
    if not value:
        console.print(Panel(
            f"[red]Missing required key:[/] [bold]{var_name}[/]\n\n"
            f"This key is needed for: [cyan]{label}[/]\n\n"
            f"Set it in your .env file:\n"
            f"  [dim]{var_name}=your_key_here[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)
    return value


async def _connect(config: DashboardConfig) -> OpsboardDB:
    _check_env_key(config.supabase.url_env, "Database connection")
    _check_env_key(config.supabase.key_env, "Database authentication")
    return await OpsboardDB.connect(config.supabase)


def _build_view(
    kind: str, config: DashboardConfig, db: OpsboardDB, notifier: Notifier
) -> TenantScopedView:
    if kind == "dashboard":
        return AgentDashboard(
            db,
            config.view("agent_states"),
            config.view("execution_tasks"),
            notifier=notifier,
        )
    if kind == "feed":
        return ActivityFeed(db, config.view("autonomous_actions"), notifier=notifier)
    if kind == "content":
        return ContentScheduler(
            db,
            config.view("content_queue"),
            platforms=config.platforms,
            tz=config.tz,
            notifier=notifier,
        )
    if kind == "licenses":
        return LicensingPanel(
            db,
            config.view("license_tenants"),
            tiers=config.license_tiers,
            notifier=notifier,
        )
    raise typer.BadParameter(f"Unknown view: {kind}")


def _print_notifications(notifier: Notifier) -> bool:
    """Print pending notifications. Returns False if any was an error."""
    ok = True
    for note in notifier.drain():
        style = _LEVEL_STYLES[note.level]
        console.print(f"[{style}]{note.message}[/]")
        ok = ok and note.level is not NotificationLevel.ERROR
    return ok


async def _open(kind: str, profile: str, org: Optional[str]):
    config = _get_config(profile)
    tenant = _require_org(org)
    db = await _connect(config)
    notifier = Notifier()
    view = _build_view(kind, config, db, notifier)
    await view.set_tenant(tenant)
    return config, view, notifier


def _short_time(value: Optional[str]) -> str:
    if not value:
        return "-"
    return value.replace("T", " ")[:16]


# =========================================================================
# Commands
# =========================================================================


@app.command()
def info():
    """Show available dashboard profiles."""
    profiles = list_available_profiles()

    if not profiles:
        console.print("[yellow]No profiles found. Create one in profiles/[/]")
        return

    table = Table(title="Opsboard - Available Profiles")
    table.add_column("Profile ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Timezone", style="green")
    table.add_column("Tiers", style="yellow")
    table.add_column("Platforms", style="blue")

    for p in profiles:
        try:
            cfg = load_profile_config(p)
            table.add_row(
                cfg.profile_id,
                cfg.profile_name,
                cfg.timezone,
                str(len(cfg.license_tiers)),
                str(len(cfg.platforms)),
            )
        except ProfileConfigError as e:
            table.add_row(p, f"[red]Error: {e}[/]", "", "", "")

    console.print(table)


@app.command()
def validate(
    profile: str = typer.Argument("default", help="Profile ID (e.g., 'default')"),
):
    """Validate a dashboard profile's configuration."""
    config = _get_config(profile)
    views = ", ".join(sorted(config.views))
    console.print(Panel(
        f"[green]Configuration valid![/]\n\n"
        f"Profile: {config.profile_name}\n"
        f"Timezone: {config.timezone}\n"
        f"Views: {views}\n"
        f"License tiers: {', '.join(t.label for t in config.license_tiers)}\n"
        f"Platforms: {len(config.platforms)}\n"
        f"Agent types: {len(config.agent_types)}",
        title=f"Config: {profile}",
    ))


@app.command()
def dashboard(
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
    tasks: int = typer.Option(10, help="Number of recent tasks to show"),
):
    """Show the agent fleet, recent tasks and key metrics."""

    async def _run():
        _, view, notifier = await _open("dashboard", profile, org)
        try:
            m = view.metrics
            console.print(Panel(
                f"Success rate:       [green]{format_percent(m.tasks.success_rate)}[/]\n"
                f"Error rate:         [red]{format_percent(m.tasks.error_rate)}[/]\n"
                f"Tasks:              {m.tasks.total} "
                f"([dim]{m.tasks.running} running, {m.tasks.pending} pending[/])\n"
                f"Lead qualification: {format_percent(m.lead_qualification_rate)} "
                f"({m.qualified_leads}/{m.total_leads})\n"
                f"Revenue:            [green]{format_currency(m.total_revenue)}[/]\n"
                f"Pending approvals:  [yellow]{m.pending_approvals}[/]",
                title=f"Key Metrics - {view.tenant}",
            ))

            agents = Table(title=f"Agents: {len(view.agents)}")
            agents.add_column("Agent", style="cyan")
            agents.add_column("Type", style="white")
            agents.add_column("Status", style="green")
            agents.add_column("Current Task", style="dim")
            for agent in view.agents:
                agents.add_row(
                    agent.get("agent_name") or "-",
                    humanize_identifier(agent.get("agent_type")),
                    agent.get("status") or "-",
                    agent.get("current_task") or "-",
                )
            console.print(agents)

            recent = Table(title="Recent Tasks")
            recent.add_column("Created", style="dim")
            recent.add_column("Type", style="white")
            recent.add_column("Status", style="yellow")
            for task in view.tasks[:tasks]:
                recent.add_row(
                    _short_time(task.get("created_at")),
                    humanize_identifier(task.get("task_type")),
                    task.get("status") or "-",
                )
            console.print(recent)
        finally:
            await view.close()
        if not _print_notifications(notifier):
            raise typer.Exit(code=1)

    asyncio.run(_run())


@app.command()
def feed(
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
    agent: Optional[str] = typer.Option(None, help="Only show this agent type"),
    pending: bool = typer.Option(False, help="Only show actions awaiting approval"),
):
    """Show the autonomous activity feed."""

    async def _run():
        config, view, notifier = await _open("feed", profile, org)
        try:
            if agent or pending:
                await view.set_filters(agent_type=agent, pending_only=pending)

            table = Table(title=f"Activity Feed ({view.pending_count} pending)")
            table.add_column("ID", style="dim")
            table.add_column("When", style="dim")
            table.add_column("Agent", style="cyan")
            table.add_column("Action", style="white")
            table.add_column("Status", style="yellow")
            for action in view.actions:
                agent_type = action.get("agent_type")
                table.add_row(
                    str(action.get("id")),
                    _short_time(action.get("created_at")),
                    config.agent_types.get(agent_type, humanize_identifier(agent_type)),
                    humanize_identifier(action.get("action_type")),
                    view.status_of(action),
                )
            console.print(table)
        finally:
            await view.close()
        if not _print_notifications(notifier):
            raise typer.Exit(code=1)

    asyncio.run(_run())


def _run_action(kind: str, profile: str, org: Optional[str], action) -> None:
    """Open a view, run one mutation against it, report the outcome."""

    async def _run():
        _, view, notifier = await _open(kind, profile, org)
        try:
            row = await action(view)
        finally:
            await view.close()
        _print_notifications(notifier)
        if row is None:
            raise typer.Exit(code=1)

    asyncio.run(_run())


@app.command()
def approve(
    action_id: str = typer.Argument(..., help="Autonomous action ID"),
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
):
    """Approve a pending autonomous action."""
    _run_action("feed", profile, org, lambda view: view.approve(action_id))


@app.command()
def reject(
    action_id: str = typer.Argument(..., help="Autonomous action ID"),
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
):
    """Reject (dismiss) an autonomous action."""
    _run_action("feed", profile, org, lambda view: view.reject(action_id))


@app.command()
def content(
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
    day: Optional[str] = typer.Option(None, help="Show the week of this date (YYYY-MM-DD)"),
):
    """Show the content calendar for a week."""

    async def _run():
        _, view, notifier = await _open("content", profile, org)
        try:
            if day:
                view.select_date(date.fromisoformat(day))
            counts = view.status_counts()
            console.print(
                f"[cyan]Scheduled:[/] {counts['scheduled']}  "
                f"[green]Published:[/] {counts['published']}  "
                f"[dim]Drafts:[/] {counts['draft']}"
            )

            table = Table(title=f"Week of {view.week()[0][0].isoformat()}")
            table.add_column("Day", style="cyan")
            table.add_column("Time", style="dim")
            table.add_column("Platform", style="white")
            table.add_column("Title", style="white")
            table.add_column("Status", style="yellow")
            for day_, items in view.week():
                if not items:
                    table.add_row(day_.strftime("%a %d"), "", "", "[dim]-[/]", "")
                for item in items:
                    table.add_row(
                        day_.strftime("%a %d"),
                        _short_time(item.get("scheduled_at"))[11:],
                        view.platform_name(item.get("platform") or ""),
                        content_title(item),
                        item.get("status") or "-",
                    )
            console.print(table)

            platforms = Table(title="By Platform")
            platforms.add_column("Platform", style="cyan")
            platforms.add_column("Items", style="white")
            for platform_id, count in view.platform_counts().items():
                platforms.add_row(view.platform_name(platform_id), str(count))
            console.print(platforms)
        finally:
            await view.close()
        _print_notifications(notifier)

    asyncio.run(_run())


@app.command()
def schedule(
    content_id: str = typer.Argument(..., help="Content queue item ID"),
    when: datetime = typer.Argument(..., help="Publish time, profile timezone if naive"),
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
):
    """Schedule a content item."""
    _run_action("content", profile, org, lambda view: view.schedule(content_id, when))


@app.command()
def publish(
    content_id: str = typer.Argument(..., help="Content queue item ID"),
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
):
    """Mark a content item as published now."""
    _run_action("content", profile, org, lambda view: view.publish(content_id))


@app.command()
def licenses(
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
):
    """Show the white-label licensing portfolio."""

    async def _run():
        _, view, notifier = await _open("licenses", profile, org)
        try:
            stats = view.stats()
            console.print(Panel(
                f"Licensees:       {stats.total_licensees}\n"
                f"Seats:           {stats.total_seats}\n"
                f"Sub-orgs:        {stats.total_sub_orgs}\n"
                f"MRR:             [green]{format_currency(stats.monthly_recurring)}[/]\n"
                f"Avg per license: {format_currency(stats.avg_revenue_per_license)}\n"
                f"Retention:       {format_percent(stats.retention_rate)}",
                title=f"Licensing - {view.tenant}",
            ))

            table = Table(title="Licensees")
            table.add_column("Name", style="cyan")
            table.add_column("Tier", style="white")
            table.add_column("Seats", style="white")
            table.add_column("Sub-orgs", style="white")
            table.add_column("Fee", style="green")
            table.add_column("Status", style="yellow")
            utilization = view.utilization()
            for tenant in view.licensees:
                table.add_row(
                    tenant.get("tenant_name") or "-",
                    humanize_identifier(tenant.get("license_tier")),
                    f"{tenant.get('active_seats') or 0}/{tenant.get('seat_limit') or 0} "
                    f"({format_percent(utilization.get(str(tenant.get('id')), 0.0))})",
                    f"{tenant.get('active_sub_orgs') or 0}/{tenant.get('sub_org_limit') or 0} "
                    f"({format_percent(sub_org_utilization(tenant))})",
                    format_currency(tenant.get("monthly_fee")),
                    tenant.get("status") or "-",
                )
            console.print(table)

            tiers = Table(title="Tiers")
            tiers.add_column("Tier", style="cyan")
            tiers.add_column("Monthly", style="green")
            tiers.add_column("Seats", style="white")
            tiers.add_column("Sub-orgs", style="white")
            for tier in view.tiers:
                tiers.add_row(
                    tier.label,
                    format_currency(tier.monthly_fee),
                    str(tier.seat_limit),
                    str(tier.sub_org_limit),
                )
            console.print(tiers)
        finally:
            await view.close()
        _print_notifications(notifier)

    asyncio.run(_run())


@app.command(name="add-licensee")
def add_licensee(
    name: str = typer.Argument(..., help="Licensee display name"),
    tier: str = typer.Option("standard", help="License tier"),
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
):
    """Add a white-label licensee under the organization."""

    def _add(view):
        try:
            view.tier(tier)
        except KeyError:
            raise typer.BadParameter(
                f"Unknown tier '{tier}'. Choose from: "
                + ", ".join(t.name.value for t in view.tiers)
            )
        return view.add_licensee(name, tier)

    _run_action("licenses", profile, org, _add)


@app.command()
def watch(
    view_name: str = typer.Argument("feed", help="dashboard | feed | content | licenses"),
    org: Optional[str] = ORG_OPTION,
    profile: str = PROFILE_OPTION,
    seconds: int = typer.Option(0, help="Stop after this many seconds (0 = until Ctrl-C)"),
):
    """Stream live changes of a view."""

    async def _run():
        _, view, notifier = await _open(view_name, profile, org)
        seen = {str(r.get("id")) for r in view.rows}
        console.print(
            f"[cyan]Watching {view.label} for {view.tenant} "
            f"({len(seen)} rows). Press Ctrl-C to stop.[/]"
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds if seconds else None
        try:
            while deadline is None or loop.time() < deadline:
                await asyncio.sleep(1)
                current = {str(r.get("id")): r for r in view.rows}
                for rid in current.keys() - seen:
                    console.print(f"[green]+[/] {view.primary_table} {rid}")
                for rid in seen - current.keys():
                    console.print(f"[red]-[/] {view.primary_table} {rid}")
                seen = set(current)
                _print_notifications(notifier)
        finally:
            await view.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/]")


if __name__ == "__main__":
    app()
