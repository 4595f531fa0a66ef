"""Job Worker CLI - Main Entry Point"""

from importlib.metadata import PackageNotFoundError, version as package_version

import typer
from rich.console import Console

from .commands import jobs, worker

console = Console()

app = typer.Typer(
    name="jobworker",
    help="⚙️ Job Worker - background job queue CLI",
    rich_markup_mode="rich",
)

app.add_typer(worker.app, name="worker")
app.add_typer(jobs.app, name="jobs")


def _version() -> str:
    try:
        return package_version("jobworker")
    except PackageNotFoundError:
        return "unknown"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
):
    """
    ⚙️ Job Worker CLI

    Run the background worker, enqueue jobs and inspect the queue.
    """
    if version:
        console.print(f"Job Worker CLI v{_version()}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
