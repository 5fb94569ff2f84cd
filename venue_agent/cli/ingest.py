"""
Ingestion CLI Commands
======================

CLI commands for onboarding venues through the ingestion pipeline.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from venue_agent.core.config import get_default_config
from venue_agent.core.enums import StageName
from venue_agent.core.errors import ConfigError, ResumeError
from venue_agent.core.schema import JobProgress, VenueSeed
from venue_agent.db.engine import get_session
from venue_agent.db.repositories import IngestionJobRepository, VenueRepository
from venue_agent.ingestion.jobs import enqueue_onboarding, enqueue_resume, get_job_status
from venue_agent.ingestion.pipeline import PipelineOrchestrator, build_default_services

console = Console()
ingest_app = typer.Typer(help="Ingestion pipeline commands")
jobs_app = typer.Typer(help="Job management commands")

ingest_app.add_typer(jobs_app, name="jobs")

STATUS_COLORS = {
    "completed": "green",
    "running": "blue",
    "pending": "yellow",
    "error": "red",
    "failed": "red",
    "superseded": "dim",
}


def _colored(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def _orchestrator(session, show_progress: bool) -> PipelineOrchestrator:
    config = get_default_config()
    try:
        services = build_default_services(config)
    except ConfigError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    def on_progress(progress: JobProgress) -> None:
        running = [stage for stage, status in progress.stages.items() if status == "running"]
        if running:
            rprint(f"  [dim]running: {', '.join(running)}[/dim]")

    return PipelineOrchestrator(
        session, services, config, on_progress=on_progress if show_progress else None
    )


@ingest_app.command("onboard")
def onboard(
    name: str = typer.Option(..., "--name", "-n", help="Venue name"),
    place_id: str = typer.Option(..., "--place-id", "-p", help="Business-listing place identifier"),
    address: str = typer.Option("", "--address", "-a", help="Street address"),
    website: Optional[str] = typer.Option(None, "--website", "-w", help="Venue website"),
    latitude: Optional[float] = typer.Option(None, "--lat", help="Latitude"),
    longitude: Optional[float] = typer.Option(None, "--lng", help="Longitude"),
    venue_id: Optional[str] = typer.Option(None, "--venue-id", help="Re-onboard an existing venue"),
    sync: bool = typer.Option(False, "--sync", help="Run synchronously (blocking)"),
) -> None:
    """
    Onboard a venue end to end.

    Examples:
        venue-agent ingest onboard -n "Dishoom" -p ChIJ123 -a "12 Upper St Martin's Ln, London WC2H 9FB" --sync
    """
    seed = VenueSeed(
        name=name,
        place_id=place_id,
        address=address,
        website=website,
        latitude=latitude,
        longitude=longitude,
        venue_id=venue_id,
    )
    rprint(f"\n[bold]Onboarding:[/bold] {seed.name} ({seed.place_id})")

    if sync:
        with get_session() as session:
            orchestrator = _orchestrator(session, show_progress=True)
            result = asyncio.run(orchestrator.run(seed))
        _display_progress(result.progress)
        if not result.success:
            raise typer.Exit(1)
        return

    rprint("\n[dim]Enqueueing job for async processing...[/dim]")
    try:
        job_id = asyncio.run(enqueue_onboarding(seed))
    except (ConnectionError, OSError) as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)
    rprint("\n[green]Job enqueued successfully![/green]")
    rprint(f"Queue job ID: [bold]{job_id}[/bold]")
    rprint("\nCheck status with:")
    rprint(f"  venue-agent ingest jobs queue {job_id}")


@ingest_app.command("resume")
def resume(
    job_id: str = typer.Argument(..., help="Ingestion job ID"),
    stage: StageName = typer.Option(..., "--stage", "-s", help="Stage to resume from"),
    sync: bool = typer.Option(True, "--sync/--queue", help="Run here or on the worker"),
) -> None:
    """
    Re-run a job from a stage, reusing stored payloads of earlier stages.

    Examples:
        venue-agent ingest resume 5f1c... --stage generate_content
    """
    if not sync:
        queue_id = asyncio.run(enqueue_resume(job_id, stage))
        rprint(f"[green]Resume enqueued:[/green] {queue_id}")
        return

    with get_session() as session:
        orchestrator = _orchestrator(session, show_progress=True)
        try:
            result = asyncio.run(orchestrator.resume_from(job_id, stage))
        except ResumeError as e:
            rprint(f"[red]Cannot resume:[/red] {e}")
            raise typer.Exit(1)
    _display_progress(result.progress)
    if not result.success:
        raise typer.Exit(1)


@ingest_app.command("status")
def status(job_id: str = typer.Argument(..., help="Ingestion job ID")) -> None:
    """Show the per-stage status of an ingestion job."""
    with get_session() as session:
        repo = IngestionJobRepository(session)
        job = repo.get_by_id(job_id)
        if job is None:
            rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
            raise typer.Exit(1)
        venue = VenueRepository(session).get_by_id(job.venue_id) if job.venue_id else None
        progress = JobProgress.from_job(job, published=bool(venue and venue.published))
    _display_progress(progress)


@ingest_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the onboarding worker.

    The worker processes queued onboarding jobs from Redis.
    """
    from arq import run_worker

    from venue_agent.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting onboarding worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")
    run_worker(WorkerSettings, burst=burst)


# Jobs subcommands


@jobs_app.command("list")
def list_jobs(limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show")) -> None:
    """List recent ingestion jobs."""
    with get_session() as session:
        jobs = IngestionJobRepository(session).list_recent(limit)

    if not jobs:
        rprint("[yellow]No ingestion jobs yet[/yellow]")
        return

    table = Table(title="Recent ingestion jobs")
    table.add_column("Job ID", style="cyan")
    table.add_column("Venue ID")
    table.add_column("State")
    table.add_column("Failed stage")
    table.add_column("Created")
    for job in jobs:
        failed_stage = (job.error or {}).get("stage", "")
        table.add_row(
            job.id,
            job.venue_id or "-",
            _colored(job.state.value),
            failed_stage,
            job.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@jobs_app.command("queue")
def queue_status(job_id: str = typer.Argument(..., help="Queue job ID")) -> None:
    """Check the status of a queued onboarding job."""
    result = asyncio.run(get_job_status(job_id))
    if result is None:
        rprint(f"[yellow]Queue job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Queue job: {job_id}[/bold]")
    rprint(f"  Status: {result.get('status', 'unknown')}")
    job_result = result.get("result")
    if isinstance(job_result, dict) and job_result.get("progress"):
        _display_progress(JobProgress.model_validate(job_result["progress"]))


def _display_progress(progress: JobProgress) -> None:
    """Display a job's stage map in a formatted table."""
    table = Table(title=f"Job {progress.job_id}")
    table.add_column("#", justify="right")
    table.add_column("Stage")
    table.add_column("Status")
    for index, (stage, stage_status) in enumerate(progress.stages.items(), start=1):
        table.add_row(str(index), stage, _colored(stage_status))
    console.print(table)

    rprint(f"  State: {_colored(progress.state.value)}")
    rprint(f"  Venue: {progress.venue_id or 'N/A'}")
    rprint(f"  Published: {'[green]yes[/green]' if progress.published else 'no'}")
    if progress.error:
        rprint(f"\n[bold red]Error in {progress.error.get('stage')}:[/bold red]")
        rprint(f"  {progress.error.get('error_type', 'Error')}: {progress.error.get('message')}")
