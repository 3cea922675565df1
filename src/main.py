"""
Command line entry point for gapnudge
"""

import asyncio
import json
import sys
from datetime import datetime

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src import __version__
from src.calendar_sources import source_registry
from src.config import get_settings
from src.gaps.models import Gap
from src.notifications import (
    CallbackSink,
    HistoryStoreError,
    JsonFileHistoryStore,
    NotificationDecision,
    NotificationInsights,
    compute_insights,
)
from src.scheduling import GapSchedulingService, ScanResult, StaticActivityState
from src.utils import get_logger, setup_logging

console = Console()

QUALITY_COLORS = {
    "excellent": "green",
    "good": "cyan",
    "fair": "yellow",
    "poor": "red",
}


def create_gaps_table(gaps: tuple[Gap, ...]) -> Table:
    table = Table(title="Free Gaps", box=box.ROUNDED)
    table.add_column("Start", style="bold")
    table.add_column("End")
    table.add_column("Minutes", justify="right")
    table.add_column("Quality")
    table.add_column("Suggestion")

    for gap in gaps:
        quality = gap.quality.value if gap.quality else "-"
        color = QUALITY_COLORS.get(quality, "white")
        table.add_row(
            gap.start.strftime("%a %H:%M"),
            gap.end.strftime("%a %H:%M"),
            str(gap.minutes),
            f"[{color}]{quality}[/]",
            gap.suggested_activity.display_name if gap.suggested_activity else "-",
        )
    return table


def create_decision_panel(decision: NotificationDecision) -> Panel:
    return Panel(
        f"[bold]{decision.title}[/bold]\n{decision.body}\n\n"
        f"[dim]Kind:[/dim] {decision.kind.value}\n"
        f"[dim]Deliver at:[/dim] {decision.trigger_at:%a %H:%M}",
        title="[bold blue]Notification[/bold blue]",
        border_style="blue",
        box=box.ROUNDED,
    )


def scan_result_to_dict(result: ScanResult) -> dict:
    return {
        "window": {
            "start": result.window.start.isoformat(),
            "end": result.window.end.isoformat(),
        },
        "gaps": [gap.model_dump(mode="json") for gap in result.gaps],
        "best_gap_id": result.best_gap.id if result.best_gap else None,
        "decision": result.decision.model_dump(mode="json")
        if result.decision
        else None,
        "warnings": list(result.warnings),
        "failed_sources": list(result.failed_sources),
        "authorization_missing": result.authorization_missing,
        "cancelled": result.cancelled,
    }


async def run_scan(hours: int | None) -> ScanResult:
    settings = get_settings()
    if hours is not None:
        settings = settings.model_copy(update={"scan_window_hours": hours})
    logger = get_logger("main")

    def log_decision(decision: NotificationDecision) -> None:
        logger.info(
            "Notification ready",
            kind=decision.kind.value,
            title=decision.title,
            trigger_at=decision.trigger_at.isoformat(),
        )

    sources = source_registry.create_configured(settings)
    history = JsonFileHistoryStore(settings.history_file, settings.history_max_records)
    service = GapSchedulingService(
        sources=sources,
        history=history,
        sink=CallbackSink(log_decision),
        activity=StaticActivityState(),
        settings=settings,
    )
    try:
        return await service.scan()
    finally:
        for source in sources:
            await source.close()


async def load_insights(days: int) -> NotificationInsights:
    settings = get_settings()
    history = JsonFileHistoryStore(settings.history_file, settings.history_max_records)
    now = datetime.now()
    records = await history.recent_records(datetime.min)
    return compute_insights(records, now, days=days)


@click.group()
@click.version_option(__version__, prog_name="gapnudge")
def cli() -> None:
    """gapnudge - find short calendar gaps for micro-workouts."""
    setup_logging()


@cli.command()
@click.option("--hours", "-h", type=int, default=None, help="Hours to scan ahead")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def scan(hours: int | None, json_output: bool) -> None:
    """Scan the calendars once and decide whether to nudge."""
    result = asyncio.run(run_scan(hours))

    if json_output:
        click.echo(json.dumps(scan_result_to_dict(result), indent=2))
        return

    console.print()
    if result.authorization_missing:
        console.print(
            "[yellow]No calendar access configured. "
            "Set GOOGLE_CALENDAR_ACCESS_TOKEN to scan a calendar.[/yellow]"
        )
        return

    if result.gaps:
        console.print(create_gaps_table(result.gaps))
    else:
        console.print("[dim]No free gaps in the scan window.[/dim]")

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if result.decision:
        console.print()
        console.print(create_decision_panel(result.decision))
    console.print()


@cli.command()
@click.option("--days", "-d", type=int, default=30, help="Days to look back")
def insights(days: int) -> None:
    """Show how notifications were received."""
    try:
        summary = asyncio.run(load_insights(days))
    except HistoryStoreError as e:
        console.print(f"[red]Cannot read notification history:[/red] {e}")
        sys.exit(1)

    console.print()
    console.print(
        Panel(
            f"[bold]Sent:[/bold] {summary.total_sent}\n"
            f"[bold]Opened:[/bold] {summary.total_opened}\n"
            f"[bold]Ignored:[/bold] {summary.total_ignored}\n"
            f"[bold]Response rate:[/bold] {summary.response_rate:.0%}\n"
            f"[bold]Per day:[/bold] {summary.average_per_day:.1f}\n"
            f"[bold]Recommended level:[/bold] {summary.recommended_level.value}",
            title=f"[bold blue]Last {summary.period_days} days[/bold blue]",
            border_style="blue",
            box=box.ROUNDED,
        )
    )
    console.print()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
