"""
Display utilities for reporting orchestration progress.
"""

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models import OperationSummary

console = Console()

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: Optional[datetime]) -> str:
    """Render a timestamp the way progress lines show it."""
    return value.strftime(TIMESTAMP_FORMAT) if value else "N/A"


def display_action_start(action: str, target: str, started_at: datetime) -> None:
    """Display the line printed when an action is issued."""
    console.print(f"Start to {action} [cyan]{escape(target)}[/cyan] at {format_timestamp(started_at)}")


def display_completion(finished_at: datetime) -> None:
    """Display the final line of an orchestration run."""
    console.print(f"[bold green]Done at {format_timestamp(finished_at)}.[/bold green]")


def display_summary(summary: OperationSummary) -> None:
    """Display per-instance timings in a table."""
    table = Table(title=f"{summary.action.value.capitalize()} - {summary.service_name} ({summary.slot.value})")
    table.add_column("Instance", style="cyan")
    table.add_column("Started", style="green")
    table.add_column("Finished", style="green")
    table.add_column("Duration", style="yellow")

    for result in summary.results:
        duration = result.duration_seconds
        table.add_row(
            result.instance_name,
            format_timestamp(result.started_at),
            format_timestamp(result.finished_at),
            f"{duration:.0f}s" if duration is not None else "N/A",
        )
    for name in summary.skipped:
        table.add_row(name, "[dim]skipped[/dim]", "", "")

    console.print(table)


def display_error(message: str) -> None:
    """Display error message."""
    console.print(f"[red]{escape(message)}[/red]")


def display_warning(message: str) -> None:
    """Display warning message."""
    console.print(f"[yellow]{escape(message)}[/yellow]")
