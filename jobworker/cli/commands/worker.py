"""Worker Commands - Run the job queue worker"""

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel

from jobworker.config.logging import setup_logging
from jobworker.config.settings import load_settings
from jobworker.core.exceptions import ConfigurationError
from jobworker.jobs.worker import run_worker

from ..utils.formatting import print_error, print_info

console = Console()
app = typer.Typer(name="worker", help="Job queue worker commands")


@app.command("run")
def run(
    poll_interval_ms: int | None = typer.Option(
        None, "--poll-interval-ms", help="Override WORKER_POLL_INTERVAL_MS"
    ),
    batch_size: int | None = typer.Option(
        None, "--batch-size", "-b", help="Override WORKER_BATCH_SIZE"
    ),
    max_retries: int | None = typer.Option(
        None, "--max-retries", help="Override WORKER_MAX_RETRIES"
    ),
):
    """⚙️ Poll the job table and run due jobs until interrupted"""
    overrides = {
        key: value
        for key, value in {
            "worker_poll_interval_ms": poll_interval_ms,
            "worker_batch_size": batch_size,
            "worker_max_retries": max_retries,
        }.items()
        if value is not None
    }

    try:
        settings = load_settings(**overrides)
    except ConfigurationError as e:
        print_error(e.message)
        for problem in e.details.get("errors", []):
            console.print(f"  • [red]{problem}[/red]")
        console.print(Panel(
            "Set [cyan]DATABASE_URL[/cyan], [cyan]FUNCTIONS_BASE_URL[/cyan] and "
            "[cyan]SERVICE_ROLE_KEY[/cyan] in the environment or a [cyan].env[/cyan] file.",
            title="Configuration Error",
            border_style="red"
        ))
        raise typer.Exit(1) from None

    setup_logging(settings)
    print_info(
        f"Starting worker (poll interval: {settings.worker_poll_interval_ms}ms, "
        f"batch: {settings.worker_batch_size}, max retries: {settings.worker_max_retries})"
    )

    try:
        asyncio.run(run_worker(settings))
    except asyncio.CancelledError:
        print_error("Worker cancelled before the in-flight job finished")
        raise typer.Exit(130) from None
    except ConfigurationError as e:
        print_error(f"{e.message}: {e.details}")
        raise typer.Exit(1) from None
