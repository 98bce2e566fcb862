"""Command-line interface for the adaptive marathon coach."""

import json
import logging
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .analysis import create_engine_for_user
from .analysis.formatting import format_pace, format_pct
from .config import config
from .db import get_db
from .db.models import EngineDocument
from .models import Aggressiveness, Frequency, Priority
from .sources import DatabaseTrainingSource, import_plan_snapshot

console = Console()

PRIORITY_STYLES = {
    Priority.HIGH: "red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "green",
}


def _engine():
    return create_engine_for_user()


def _print_recommendation(rec):
    style = PRIORITY_STYLES.get(rec.priority, "white")
    options = "\n".join(
        f"  [bold]{o.key}[/bold]: {o.label}" + (f" [dim]({o.impact})[/dim]" if o.impact else "")
        for o in rec.options
    )
    expires = rec.expires_at.strftime("%Y-%m-%d %H:%M") if rec.expires_at else "never"
    body = (
        f"{rec.message}\n\n"
        f"[dim]Why: {rec.reasoning}[/dim]\n\n"
        f"[bold]Options:[/bold]\n{options}\n\n"
        f"[dim]{rec.id} · {rec.status.value} · expires {expires}"
        f"{'' if rec.dismissible else ' · cannot be dismissed'}[/dim]"
    )
    console.print(Panel(body, title=f"[{style}]{rec.title}[/{style}]", box=box.ROUNDED))


@click.group()
def cli():
    """Adaptive marathon training coach."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("import-plan")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def import_plan(file):
    """Load a plan and sync snapshot from a JSON file."""
    console.print(Panel.fit("📥 Import Training Plan", style="bold blue"))

    try:
        snapshot = json.loads(file.read_text())
        plan_id = import_plan_snapshot(get_db(), snapshot, config.USER_ID)
        console.print(f"[green]✅ Imported plan {plan_id}[/green]")
    except (KeyError, ValueError) as e:
        console.print(f"[red]❌ Invalid plan file: {e}[/red]")


@cli.command()
@click.option("--force", is_flag=True, help="Run even if an analysis ran recently")
def analyze(force):
    """Analyze recent training and emit recommendations."""
    console.print(Panel.fit("🔍 Training Analysis", style="bold blue"))

    engine = _engine()
    engine.expire_stale()
    result = engine.analyze(force=force)
    if result is None:
        console.print("[yellow]⚠️  No analysis this time (disabled, ran recently, no active plan or too little data).[/yellow]")
        return

    stats = result.stats
    table = Table(title="Training Stats", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Long run pace (last 4)", format_pace(stats.avg_long_run_pace))
    table.add_row("Easy pace (last 4)", format_pace(stats.avg_easy_pace))
    table.add_row("Hard pace", format_pace(stats.avg_hard_pace))
    table.add_row("Weekly mileage change", format_pct(stats.weekly_mileage_change_pct))
    table.add_row("Days without rest", str(stats.consecutive_days_without_rest))
    table.add_row("Missed key workouts (2 wk)", str(stats.missed_key_workouts_last_2_weeks))
    table.add_row("Completion rate (2 wk)", format_pct(stats.last_2_weeks_completion_rate))
    console.print(table)

    if result.detected_scenarios:
        scenarios = Table(title="Detected Scenarios", box=box.ROUNDED)
        scenarios.add_column("Scenario", style="cyan")
        scenarios.add_column("Confidence", style="yellow")
        scenarios.add_column("Triggers", style="white")
        for detected in result.detected_scenarios:
            scenarios.add_row(
                detected.scenario.value.replace("_", " ").title(),
                str(detected.confidence),
                "\n".join(detected.triggers),
            )
        console.print(scenarios)
    else:
        console.print("[green]✅ Training is on track, nothing to flag.[/green]")

    for rec in result.recommendations:
        _print_recommendation(rec)


@cli.command()
@click.option("--all", "show_all", is_flag=True, help="Include dismissed, accepted and expired")
def recommendations(show_all):
    """List recommendations."""
    engine = _engine()
    recs = engine.get_all_recommendations() if show_all else engine.get_active_recommendations()
    if not recs:
        console.print("[black]No recommendations.[/black]")
        return
    for rec in recs:
        _print_recommendation(rec)


@cli.command()
@click.argument("recommendation_id")
def dismiss(recommendation_id):
    """Dismiss a recommendation."""
    if _engine().dismiss(recommendation_id):
        console.print(f"[green]✅ Dismissed {recommendation_id}[/green]")
    else:
        console.print(f"[yellow]⚠️  Could not dismiss {recommendation_id}[/yellow]")


@cli.command()
@click.argument("recommendation_id")
@click.argument("option")
def accept(recommendation_id, option):
    """Accept a recommendation option."""
    engine = _engine()
    modification = engine.accept(recommendation_id, option)
    if modification:
        weeks = ", ".join(str(a.week_index + 1) for a in modification.week_adjustments)
        console.print(f"[green]✅ {modification.description} (weeks {weeks or 'none'})[/green]")
        console.print(f"[black]Undo with: marathon-coach undo {modification.id}[/black]")
        return

    rec = engine.lifecycle.find(recommendation_id)
    if rec and rec.selected_option_key == option:
        console.print(f"[green]✅ Noted: {option}. No plan changes.[/green]")
    else:
        console.print(f"[yellow]⚠️  Could not apply {option} to {recommendation_id}[/yellow]")


@cli.command()
@click.argument("modification_id", required=False)
def undo(modification_id):
    """Undo a plan modification (the most recent one by default)."""
    engine = _engine()
    done = engine.undo(modification_id) if modification_id else engine.undo_last()
    if done:
        console.print("[green]✅ Plan restored[/green]")
    else:
        console.print("[yellow]⚠️  Nothing to undo[/yellow]")


@cli.command()
def modifications():
    """List applied plan modifications."""
    mods = _engine().get_modifications()
    if not mods:
        console.print("[black]No modifications.[/black]")
        return

    table = Table(title="Plan Modifications", box=box.ROUNDED)
    table.add_column("ID", style="cyan")
    table.add_column("Applied", style="white")
    table.add_column("Description", style="white")
    table.add_column("Weeks", style="yellow")
    table.add_column("Undone", style="magenta")
    for mod in mods:
        table.add_row(
            mod.id,
            mod.applied_at.strftime("%Y-%m-%d %H:%M") if mod.applied_at else "",
            mod.description,
            ", ".join(str(a.week_index + 1) for a in mod.week_adjustments),
            "yes" if mod.undone else "no",
        )
    console.print(table)


@cli.command()
def expire():
    """Expire stale recommendations."""
    count = _engine().expire_stale()
    console.print(f"[black]Expired {count} recommendation(s).[/black]")


@cli.command()
def status():
    """Show plan position, preferences and active recommendations."""
    console.print(Panel.fit("ℹ️  Coach Status", style="bold blue"))

    engine = _engine()
    source = DatabaseTrainingSource(get_db(), config.USER_ID)
    plan = source.get_active_plan()
    if plan:
        console.print(f"[black]Plan: {plan.plan_id} ({plan.total_weeks} weeks from {plan.start_date})[/black]")
    else:
        console.print("[yellow]⚠️  No active plan. Use import-plan first.[/yellow]")

    prefs = engine.get_preferences()
    console.print(
        f"[black]Adaptive coaching: {'on' if prefs.enabled else 'off'} · "
        f"{prefs.frequency.value} · {prefs.aggressiveness.value}[/black]"
    )
    console.print(f"[black]Active recommendations: {engine.get_recommendation_badge_count()}[/black]")

    last = engine.get_last_modification()
    if last:
        console.print(f"[black]Last modification: {last.description} ({last.id})[/black]")


@cli.command()
@click.option("--enabled/--disabled", default=None, help="Turn adaptive recommendations on or off")
@click.option("--frequency", type=click.Choice([f.value for f in Frequency]), help="Analysis cadence")
@click.option("--aggressiveness", type=click.Choice([a.value for a in Aggressiveness]), help="Detection sensitivity")
def preferences(enabled, frequency, aggressiveness):
    """Show or update adaptive coaching preferences."""
    engine = _engine()
    prefs = engine.set_preferences(
        enabled=enabled,
        frequency=Frequency(frequency) if frequency else None,
        aggressiveness=Aggressiveness(aggressiveness) if aggressiveness else None,
    )

    table = Table(title="Preferences", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Enabled", "yes" if prefs.enabled else "no")
    table.add_row("Frequency", prefs.frequency.value)
    table.add_row("Aggressiveness", prefs.aggressiveness.value)
    console.print(table)


@cli.command()
def history():
    """Show recommendation outcomes."""
    entries = _engine().get_analytics_history()
    if not entries:
        console.print("[black]No history yet.[/black]")
        return

    table = Table(title="Recommendation History", box=box.ROUNDED)
    table.add_column("When", style="white")
    table.add_column("Scenario", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("Option", style="white")
    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.scenario.value,
            entry.action.value,
            entry.selected_option_key or "",
        )
    console.print(table)


@cli.command()
def reset():
    """Clear recommendations, modifications, history and preferences."""
    console.print(Panel.fit("⚠️  Reset Coach State", style="bold yellow"))

    if not click.confirm("This will delete all coaching state. Are you sure?"):
        console.print("[black]Operation cancelled.[/black]")
        return

    with get_db().get_session() as session:
        session.query(EngineDocument).filter_by(user_id=config.USER_ID).delete()
    console.print("[green]✅ Coach state reset[/green]")


def main():
    """Main entry point."""
    try:
        config.ensure_dirs()
        cli()
    except KeyboardInterrupt:
        console.print("\n[orange]Operation cancelled by user.[/orange]")


if __name__ == "__main__":
    main()
