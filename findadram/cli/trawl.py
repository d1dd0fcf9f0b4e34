"""
Trawl CLI Commands
==================

CLI commands for trawling bar menus and inspecting trawl jobs.
"""

from __future__ import annotations

import asyncio
import base64
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from redis.exceptions import RedisError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from findadram.core.enums import TrawlStatus
from findadram.core.errors import TrawlerError
from findadram.core.schema import ExtractedMenu, TrawlJob, TrawlRequest, TrawlResult

console = Console()
trawl_app = typer.Typer(help="Menu trawling commands")
jobs_app = typer.Typer(help="Trawl job commands")

trawl_app.add_typer(jobs_app, name="jobs")


def _get_pipeline():
    """Create tables if needed and build the pipeline from config."""
    from findadram.db.engine import init_db
    from findadram.ingestion.pipeline import TrawlPipeline

    init_db()
    return TrawlPipeline.from_config()


def _submit(request: TrawlRequest) -> None:
    pipeline = _get_pipeline()
    try:
        with console.status("[bold blue]Trawling...[/bold blue]"):
            result = asyncio.run(pipeline.submit(request))
    except TrawlerError as e:
        rprint(f"\n[red]Error:[/red] {e.user_message}")
        if e.job_id:
            rprint(f"Job ID: [bold]{e.job_id}[/bold]")
        raise typer.Exit(1)

    _display_result(result)


@trawl_app.command("url")
def trawl_url(
    url: str = typer.Argument(..., help="Menu page URL"),
    bar: Optional[str] = typer.Option(None, "--bar", "-b", help="Bar ID to ingest into"),
) -> None:
    """
    Trawl a menu web page.

    Without --bar the menu is only extracted and shown.

    Examples:
        findadram trawl url https://example-bar.com/menu --bar <bar_id>
        findadram trawl url https://example-bar.com/menu
    """
    if bar:
        _submit(TrawlRequest(bar_id=bar, url=url))
        return

    pipeline = _get_pipeline()
    try:
        with console.status("[bold blue]Fetching and extracting...[/bold blue]"):
            menu = asyncio.run(pipeline.preview(url))
    except TrawlerError as e:
        rprint(f"\n[red]Error:[/red] {e.user_message}")
        raise typer.Exit(1)

    _display_menu(menu)


@trawl_app.command("image")
def trawl_image(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Menu photo"),
    bar: str = typer.Option(..., "--bar", "-b", help="Bar ID to ingest into"),
    submitted_by: Optional[str] = typer.Option(None, "--by", help="Submitter reference"),
) -> None:
    """
    Trawl a photo of a menu.

    Examples:
        findadram trawl image menu.jpg --bar <bar_id>
    """
    mime_type, _ = mimetypes.guess_type(path.name)
    _submit(
        TrawlRequest(
            bar_id=bar,
            image=base64.b64encode(path.read_bytes()).decode("ascii"),
            image_mime_type=mime_type,
            submitted_by=submitted_by,
        )
    )


@trawl_app.command("pdf")
def trawl_pdf(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Menu PDF"),
    bar: str = typer.Option(..., "--bar", "-b", help="Bar ID to ingest into"),
    submitted_by: Optional[str] = typer.Option(None, "--by", help="Submitter reference"),
) -> None:
    """
    Trawl a PDF menu.

    Examples:
        findadram trawl pdf drinks.pdf --bar <bar_id>
    """
    _submit(
        TrawlRequest(
            bar_id=bar,
            pdf=base64.b64encode(path.read_bytes()).decode("ascii"),
            submitted_by=submitted_by,
        )
    )


@trawl_app.command("batch")
def trawl_batch(
    urls: list[str] = typer.Argument(..., help="Menu page URLs"),
    bar: Optional[str] = typer.Option(None, "--bar", "-b", help="Bar ID to ingest into"),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds between URLs"),
) -> None:
    """
    Trawl several menu pages one after another.

    Examples:
        findadram trawl batch https://a.example/menu https://b.example/menu --bar <bar_id>
    """
    from findadram.ingestion.batch import BatchCoordinator

    coordinator = BatchCoordinator(_get_pipeline(), delay_seconds=delay)
    try:
        with console.status(f"[bold blue]Trawling {len(urls)} URLs...[/bold blue]"):
            results = asyncio.run(coordinator.run_batch(urls, bar_id=bar))
    except TrawlerError as e:
        rprint(f"\n[red]Error:[/red] {e.user_message}")
        raise typer.Exit(1)

    table = Table(title="Batch Results")
    table.add_column("URL", style="bold")
    table.add_column("Status")
    table.add_column("Added", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Error")

    for item in results:
        r = item.result
        status = "[green]ok[/green]" if r.success else "[red]failed[/red]"
        table.add_row(
            item.url,
            status,
            str(r.whiskeys_added),
            str(r.whiskeys_updated),
            str(r.whiskeys_skipped),
            r.error or "",
        )

    console.print(table)


@trawl_app.command("queue")
def queue_trawl(
    url: str = typer.Argument(..., help="Menu page URL"),
    bar: str = typer.Option(..., "--bar", "-b", help="Bar ID to ingest into"),
) -> None:
    """
    Queue a menu page for the background worker.

    Examples:
        findadram trawl queue https://example-bar.com/menu --bar <bar_id>
    """
    from findadram.ingestion.jobs import enqueue_trawl

    pipeline = _get_pipeline()
    try:
        job = asyncio.run(enqueue_trawl(TrawlRequest(bar_id=bar, url=url), pipeline=pipeline))
    except TrawlerError as e:
        rprint(f"\n[red]Error:[/red] {e.user_message}")
        raise typer.Exit(1)
    except (RedisError, OSError) as e:
        rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
        rprint("\nMake sure Redis is running and REDIS_HOST / REDIS_PORT point at it")
        raise typer.Exit(1)

    rprint("\n[green]Job enqueued successfully![/green]")
    rprint(f"Job ID: [bold]{job.id}[/bold]")
    rprint("\nCheck status with:")
    rprint(f"  findadram trawl jobs status {job.id}")


@trawl_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the trawl worker.

    The worker processes queued trawl jobs from Redis.

    Examples:
        findadram trawl worker
        findadram trawl worker --burst
    """
    from arq import run_worker

    from findadram.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting trawl worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")
    run_worker(WorkerSettings, burst=burst)


@trawl_app.command("listings")
def show_listings(
    bar: str = typer.Argument(..., help="Bar ID"),
) -> None:
    """
    Show the whiskeys currently listed for a bar.

    Examples:
        findadram trawl listings <bar_id>
    """
    from findadram.db.engine import get_session, init_db
    from findadram.db.repositories import BarWhiskeyRepository, WhiskeyRepository

    init_db()
    with get_session() as session:
        bar_listings = BarWhiskeyRepository(session)
        whiskeys = WhiskeyRepository(session)
        rows = [
            (listing, whiskeys.get_by_id(listing.whiskey_id))
            for listing in bar_listings.list_for_bar(bar)
        ]
        listed = bar_listings.count_for_bar(bar)
        catalog_size = whiskeys.count()

    if not rows:
        rprint(f"[yellow]No listings for bar '{bar}'[/yellow]")
        return

    table = Table(
        title=f"Listings for {bar}",
        caption=f"{listed} listed of {catalog_size} whiskeys in the catalog",
    )
    table.add_column("Whiskey", style="bold")
    table.add_column("Distillery")
    table.add_column("Price", justify="right")
    table.add_column("Pour")
    table.add_column("Last verified")

    for listing, whiskey in rows:
        table.add_row(
            whiskey.name if whiskey else listing.whiskey_id,
            (whiskey.distillery if whiskey else None) or "",
            f"${listing.price:.2f}" if listing.price is not None else "",
            listing.pour_size or "",
            listing.last_verified.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


# Jobs subcommands


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of a trawl job.

    Examples:
        findadram trawl jobs status <job_id>
    """
    from findadram.db.engine import init_db
    from findadram.ingestion.jobs import JobTracker

    init_db()
    job = JobTracker().get(job_id)
    if job is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    _display_job(job)


@jobs_app.command("list")
def list_jobs(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of jobs to show"),
    status: Optional[TrawlStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
) -> None:
    """
    List recent trawl jobs.

    Examples:
        findadram trawl jobs list
        findadram trawl jobs list --status failed
    """
    from findadram.db.engine import init_db
    from findadram.ingestion.jobs import JobTracker

    init_db()
    jobs = JobTracker().list_recent(limit=limit, status=status)
    if not jobs:
        rprint("[yellow]No trawl jobs found[/yellow]")
        return

    table = Table(title="Trawl Jobs")
    table.add_column("ID", style="bold")
    table.add_column("Bar")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Whiskeys", justify="right")
    table.add_column("Created")

    for job in jobs:
        table.add_row(
            job.id,
            job.bar_id or "",
            job.source_url or job.source_type,
            _status_markup(job.status),
            str(job.whiskey_count),
            job.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def _status_markup(status: TrawlStatus) -> str:
    color = {
        TrawlStatus.COMPLETED: "green",
        TrawlStatus.PROCESSING: "blue",
        TrawlStatus.PENDING: "yellow",
        TrawlStatus.FAILED: "red",
    }.get(status, "white")
    return f"[{color}]{status.value}[/{color}]"


def _display_job(job: TrawlJob) -> None:
    """Display a job in a readable form."""
    rprint(f"\n[bold]Job: {job.id}[/bold]")
    rprint(f"  Status: {_status_markup(job.status)}")
    rprint(f"  Bar: {job.bar_id or 'N/A'}")
    rprint(f"  Source: {job.source_url or job.source_type}")
    rprint(f"  Whiskeys: {job.whiskey_count}")
    if job.scraped_at:
        rprint(f"  Scraped at: {job.scraped_at.isoformat()}")
    if job.source_attribution:
        rprint(f"  Attribution: {job.source_attribution}")
    if job.error:
        rprint(f"  [red]Error:[/red] {job.error}")


def _display_result(result: TrawlResult) -> None:
    """Display a trawl result with its counts and menu."""
    rprint("\n[bold]Results:[/bold]")
    rprint(f"  Added: {result.whiskeys_added}")
    rprint(f"  Updated: {result.whiskeys_updated}")
    rprint(f"  Skipped: {result.whiskeys_skipped}")
    if result.menu is not None:
        _display_menu(result.menu)


def _display_menu(menu: ExtractedMenu) -> None:
    """Display extracted menu items in a table."""
    rprint(f"\n[bold]{menu.bar_name or 'Menu'}[/bold]")
    rprint(
        f"  Method: {menu.extraction_method.value}, confidence: {menu.confidence:.2f}"
    )

    if not menu.whiskeys:
        rprint("[yellow]No whiskeys found[/yellow]")
        return

    table = Table()
    table.add_column("Name", style="bold")
    table.add_column("Distillery")
    table.add_column("Type")
    table.add_column("Price", justify="right")
    table.add_column("Pour")

    for item in menu.whiskeys:
        table.add_row(
            item.name,
            item.distillery or "",
            item.type.value if item.type else "",
            f"${item.price:.2f}" if item.price is not None else "",
            item.pour_size.value if item.pour_size else "",
        )

    console.print(table)
