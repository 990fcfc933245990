"""CLI entry point for the Fabric Workspace Archiver.

Exit codes:
- 0: Run completed (individual item failures are reported, not fatal)
- 1: Invalid configuration, or workspaces could not be listed
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .clients import FabricClient, WorkspaceApi
from .core.config import ArchiveConfig, Credentials, get_credentials, load_config
from .core.retry_policy import RetryPolicy
from .core.throttle import resolve_throttle_limit
from .errors import ConfigError, DiscoveryError
from .orchestration import (
    DiscoveryResult,
    DiscoveryStage,
    ExportOrchestrator,
    ExportRunResult,
    RateLimitedExecutor,
    flatten_jobs,
)
from .output import WorkspaceMetadataWriter, run_folder_path, write_run_report
from .types.archive import ExportJob, JobStatus

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="fabric-archiver",
    help="Fabric Workspace Archiver - Export workspace item definitions to local storage",
    add_completion=False,
)

console = Console()


def create_api(credentials: Credentials) -> WorkspaceApi:
    """Build the remote API client."""
    return FabricClient(credentials)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"fabric-archiver version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        help="Show version and exit",
    ),
) -> None:
    """Fabric Workspace Archiver."""
    pass


def _load_run_config(
    config_path: Optional[Path],
    target: Optional[Path],
    workspace_filter: Optional[str],
) -> tuple[ArchiveConfig, Credentials]:
    """Load config and credentials, exiting with code 1 on errors."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if target is not None:
        config.target_folder = target
    if workspace_filter is not None:
        config.workspace_filter = workspace_filter

    credentials = get_credentials()
    errors = config.validate() + credentials.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        console.print("\nSet FABRIC_* environment variables or create a .env file.")
        raise typer.Exit(1)

    return config, credentials


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON config file (defaults to the user config dir)",
    ),
    target: Optional[Path] = typer.Option(
        None,
        "--target",
        "-t",
        help="Override targetFolder",
    ),
    workspace_filter: Optional[str] = typer.Option(
        None,
        "--filter",
        "-f",
        help="Override workspaceFilter, e.g. \"contains(name,'Sales')\"",
    ),
    throttle_limit: int = typer.Option(
        0,
        "--throttle-limit",
        "-n",
        help="Concurrent exports (0 = config value, then CPU count)",
    ),
    what_if: bool = typer.Option(
        False,
        "--what-if",
        help="Only list matching workspaces and item counts; export nothing",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """Archive item definitions from every matching workspace."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config, credentials = _load_run_config(config_path, target, workspace_filter)
    concurrency = resolve_throttle_limit(throttle_limit, config.throttle_limit)
    policy = config.retry.to_policy()
    executor = RateLimitedExecutor()
    run_folder = run_folder_path(config.target_folder)

    api = create_api(credentials)
    try:
        stage = DiscoveryStage(api, executor, policy)
        try:
            with console.status("Discovering workspaces..."):
                discovery = stage.discover(config, run_folder, create_folders=not what_if)
        except DiscoveryError as e:
            console.print(f"[red]Discovery failed:[/red] {e}")
            raise typer.Exit(1)

        for warning in discovery.filter_warnings:
            console.print(f"[yellow]Warning:[/yellow] {warning}")

        print_discovery(discovery)

        if what_if:
            console.print("\n[cyan]What-if mode: no items were exported.[/cyan]")
            return

        if discovery.is_empty:
            console.print("[yellow]No workspaces matched the filter.[/yellow]")
            return

        jobs = flatten_jobs(discovery)
        orchestrator_result = export_with_progress(
            api, executor, policy, concurrency, jobs, discovery
        )
        report_path = write_run_report(run_folder, orchestrator_result)
        print_summary(orchestrator_result, report_path)
    finally:
        api.close()


def export_with_progress(
    api: WorkspaceApi,
    executor: RateLimitedExecutor,
    policy: RetryPolicy,
    concurrency: int,
    jobs: list[ExportJob],
    discovery: DiscoveryResult,
) -> ExportRunResult:
    """Run the export orchestrator behind a rich progress bar."""
    console.print(f"\nExporting {len(jobs)} item(s), throttle limit {concurrency}\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Exporting items...", total=len(jobs))

        def progress_callback(job: ExportJob, status: JobStatus) -> None:
            if status in (JobStatus.SUCCEEDED, JobStatus.FAILED):
                progress.advance(task)

        orchestrator = ExportOrchestrator(
            api,
            executor=executor,
            policy=policy,
            concurrency=concurrency,
            metadata_writer=WorkspaceMetadataWriter(),
            progress_callback=progress_callback,
        )
        return asyncio.run(orchestrator.run(jobs, discovery.workspaces))


def print_discovery(discovery: DiscoveryResult) -> None:
    """Print matched workspaces with item counts."""
    table = Table(title="Matched Workspaces")
    table.add_column("Workspace", style="cyan")
    table.add_column("Kind")
    table.add_column("Items", justify="right")
    table.add_column("Unsupported", justify="right")

    for entry in discovery.workspaces:
        table.add_row(
            entry.workspace.display_name,
            entry.workspace.kind,
            str(len(entry.items)),
            str(entry.skipped_items),
        )

    console.print(table)
    console.print(
        f"[bold]Workspaces:[/bold] {len(discovery.workspaces)} of "
        f"{discovery.total_workspaces}   [bold]Items:[/bold] {discovery.item_count}"
    )

    for workspace_id, message in discovery.errors.items():
        console.print(f"[red]Skipped workspace {workspace_id}:[/red] {message}")


def print_summary(result: ExportRunResult, report_path: Path) -> None:
    """Print the run summary and any failed jobs."""
    summary = result.summary

    console.print()
    if result.failed_results:
        table = Table(title="Failed Items")
        table.add_column("Job", style="cyan")
        table.add_column("Type")
        table.add_column("Attempts", justify="right")
        table.add_column("Error", style="red")

        for job_result in sorted(result.failed_results, key=lambda r: r.job_id):
            table.add_row(
                job_result.item_display_name or job_result.job_id,
                job_result.item_type,
                str(job_result.attempts),
                job_result.error.message if job_result.error else "",
            )
        console.print(table)

    style = "green" if summary.all_succeeded else "yellow"
    console.print(
        f"[bold]Total:[/bold] {summary.total_jobs}   "
        f"[{style}]Succeeded: {summary.succeeded}[/{style}]   "
        f"[bold]Failed:[/bold] {summary.failed}"
    )
    console.print(f"[bold]Duration:[/bold] {result.duration_seconds:.1f}s")
    console.print(f"[bold]Report:[/bold] {report_path}")


@app.command()
def check(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON config file",
    ),
) -> None:
    """Check configuration and connectivity."""
    config, credentials = _load_run_config(config_path, None, None)

    console.print("[bold]Configuration Check[/bold]\n")
    console.print(f"[green]Tenant ID:[/green] {credentials.tenant_id}")
    console.print(f"[green]Client ID:[/green] {credentials.client_id[:8]}...")
    console.print(f"[green]Target folder:[/green] {config.target_folder}")
    console.print(f"[green]Filter:[/green] {config.workspace_filter or '(none)'}")
    console.print(f"[green]Item types:[/green] {', '.join(config.supported_item_types)}")

    console.print("\n[bold]Testing workspace listing...[/bold]")
    api = create_api(credentials)
    try:
        with console.status("Listing workspaces..."):
            workspaces = api.list_workspaces()
    except Exception as e:
        console.print(f"[red]Connection failed:[/red] {e}")
        raise typer.Exit(1)
    finally:
        api.close()

    console.print(f"[green]OK:[/green] {len(workspaces)} workspace(s) visible")


if __name__ == "__main__":
    app()
