"""Rich formatting utilities for CLI output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from jobworker.jobs.schemas import JobResponse, JobStatsResponse

console = Console()

STATUS_STYLES = {
    "queued": "yellow",
    "running": "blue",
    "done": "green",
    "failed": "red",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def _fmt_time(value: Any) -> str:
    return value.isoformat(timespec="seconds") if value else "—"


def display_job(job: JobResponse):
    """Show a single job with its lifecycle fields"""
    style = STATUS_STYLES.get(job.status.value, "white")
    details = (
        f"🆔 [bold]ID:[/bold] [cyan]{job.id}[/cyan]\n"
        f"📝 [bold]Type:[/bold] [magenta]{job.type}[/magenta]\n"
        f"✅ [bold]Status:[/bold] [{style}]{job.status.value}[/{style}]\n"
        f"🔁 [bold]Attempts:[/bold] {job.attempts}\n"
        f"⏰ [bold]Run after:[/bold] {_fmt_time(job.run_after)}\n"
        f"📅 [bold]Created:[/bold] {_fmt_time(job.created_at)}\n"
        f"▶ [bold]Started:[/bold] {_fmt_time(job.started_at)}\n"
        f"■ [bold]Finished:[/bold] {_fmt_time(job.finished_at)}"
    )
    if job.dedupe_key:
        details += f"\n🔑 [bold]Dedupe key:[/bold] {job.dedupe_key}"

    console.print(Panel(details, title="Job", border_style=style))

    console.print("\n[bold blue]Payload:[/bold blue]")
    console.print_json(json.dumps(job.payload, default=str))

    if job.result is not None:
        console.print("\n[bold green]Result:[/bold green]")
        console.print_json(json.dumps(job.result, default=str))

    if job.last_error:
        console.print(Panel(f"[red]{job.last_error}[/red]", title="Last Error", border_style="red"))


def create_stats_table(stats: JobStatsResponse) -> Table:
    """Create a formatted table for queue statistics"""
    table = Table(title="Job Queue", box=box.ROUNDED)

    table.add_column("Status", justify="left", style="bold")
    table.add_column("Jobs", justify="right", style="cyan")

    for status, style in STATUS_STYLES.items():
        table.add_row(f"[{style}]{status}[/{style}]", str(stats.by_status.get(status, 0)))

    table.add_section()
    table.add_row("queue depth", str(stats.queue_depth))
    table.add_row("due now", str(stats.due_now))
    table.add_row("total", str(stats.total_jobs))

    return table


def create_types_table(job_types: list[tuple[str, str]]) -> Table:
    """Create a table of job types and how they execute"""
    table = Table(title="Job Types", box=box.ROUNDED)

    table.add_column("Type", justify="left", style="magenta")
    table.add_column("Runs", justify="left", style="white")

    for name, target in job_types:
        table.add_row(name, target)

    return table
