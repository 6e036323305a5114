"""
Ingestion CLI Commands
======================

CLI commands for running and inspecting the release sync pipeline.
"""

from __future__ import annotations

import asyncio

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from release_intel.core.enums import RunTrigger
from release_intel.ingestion.extractors import get_extractor_info
from release_intel.ingestion.pipeline import PipelineOrchestrator
from release_intel.ingestion.registry import get_default_registry
from release_intel.ingestion.run_state import get_default_tracker

console = Console()
ingest_app = typer.Typer(help="Release sync pipeline commands")
sources_app = typer.Typer(help="Source management commands")
strategies_app = typer.Typer(help="Strategy recommendation commands")

ingest_app.add_typer(sources_app, name="sources")
ingest_app.add_typer(strategies_app, name="strategies")

_STATUS_COLORS = {
    "completed": "green",
    "running": "blue",
    "idle": "white",
    "failed": "red",
}


@ingest_app.command("run")
def run_pipeline(
    trigger: RunTrigger = typer.Option(
        RunTrigger.MANUAL, "--trigger", "-t", help="Trigger recorded for the run"
    ),
) -> None:
    """
    Run one release sync cycle in the foreground.

    Examples:
        release-intel ingest run
        release-intel ingest run --trigger scheduled
    """
    orchestrator = PipelineOrchestrator()
    begin = orchestrator.start(trigger)

    if not begin.accepted:
        rprint(
            f"[yellow]Run {begin.run.run_id} is already in progress "
            f"(started {begin.run.started_at.isoformat()})[/yellow]"
        )
        raise typer.Exit(1)

    rprint(f"\n[bold]Starting release sync[/bold] {begin.run.run_id}")
    with console.status("[bold blue]Syncing releases...[/bold blue]"):
        result = asyncio.run(orchestrator.execute(begin.run))

    if result is None:
        state = orchestrator.tracker.get_state()
        error = state.last_run.error if state.last_run else "unknown error"
        rprint(f"\n[red]Run failed:[/red] {error}")
        raise typer.Exit(1)

    _display_result(result.to_dict())


@ingest_app.command("status")
def run_status() -> None:
    """
    Show the current and last release sync run.

    Examples:
        release-intel ingest status
    """
    state = get_default_tracker().get_state().to_dict()
    status = state["status"]
    color = _STATUS_COLORS.get(status, "white")
    rprint(f"\n[bold]Status:[/bold] [{color}]{status}[/{color}]")

    current = state["currentRun"]
    if current:
        rprint(f"  Current run: {current['runId']} ({current['trigger']})")
        rprint(f"  Started: {current['startedAt']}")

    last = state["lastRun"]
    if last:
        rprint(f"\n[bold]Last run:[/bold] {last['runId']} ({last['trigger']})")
        rprint(f"  Ended: {last['endedAt']}")
        if last["durationMs"] is not None:
            rprint(f"  Duration: {last['durationMs'] / 1000:.1f}s")
        if last["error"]:
            rprint(f"  [red]Error:[/red] {last['error']}")
        if last["result"]:
            _display_result(last["result"])


@ingest_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the arq worker that runs scheduled syncs (06:00, 12:00, 18:00 UTC).

    Examples:
        release-intel ingest worker
    """
    from arq import run_worker

    from release_intel.ingestion.pipeline import WorkerSettings

    rprint("[bold]Starting release sync worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)


# Sources subcommands


@sources_app.command("list")
def list_sources(
    all_sources: bool = typer.Option(False, "--all", "-a", help="Show all sources including disabled"),
) -> None:
    """
    List configured sources.

    Examples:
        release-intel ingest sources list
        release-intel ingest sources list --all
    """
    registry = get_default_registry()
    sources = registry.list_sources() if all_sources else registry.list_enabled_sources()

    if not sources:
        rprint("[yellow]No sources configured[/yellow]")
        rprint("\nAdd sources to config/sources.yaml")
        return

    table = Table(title="Release Sources")
    table.add_column("ID", style="bold")
    table.add_column("Tier")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Extractor")
    table.add_column("Status")

    for source in sources:
        if not source.enabled:
            status = "[yellow]disabled[/yellow]"
        elif not source.include_in_scrape:
            status = "[dim]not scraped[/dim]"
        else:
            status = "[green]enabled[/green]"
        table.add_row(
            source.id,
            source.tier.value,
            source.source_type.value,
            source.category.value,
            source.extractor,
            status,
        )

    console.print(table)


@sources_app.command("show")
def show_source(
    source_id: str = typer.Argument(..., help="Source id"),
) -> None:
    """
    Show detailed information about a source.

    Examples:
        release-intel ingest sources show pokemon-tcg-api
    """
    registry = get_default_registry()
    source = registry.get_source(source_id)

    if source is None:
        rprint(f"[red]Error:[/red] Source '{source_id}' not found")
        raise typer.Exit(1)

    status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"

    rprint(f"\n[bold]Source: {source.name}[/bold] ({source.id})")
    rprint(f"  Status: {status}")
    rprint(f"  In scrape: {'yes' if source.include_in_scrape else 'no'}")
    rprint(f"  URL: {source.url}")
    rprint(f"  Tier: {source.tier.value}")
    rprint(f"  Type: {source.source_type.value}")
    rprint(f"  Category: {source.category.value}")
    if source.description:
        rprint(f"  Description: {source.description}")

    if source.custom_config:
        rprint("\n[bold]Custom Config:[/bold]")
        for key, value in source.custom_config.items():
            rprint(f"  {key}: {value}")

    extractor_info = get_extractor_info(source.extractor)
    if extractor_info:
        rprint("\n[bold]Extractor Info:[/bold]")
        rprint(f"  Name: {extractor_info['name']}")
        rprint(f"  Version: {extractor_info['version']}")
        rprint(f"  Class: {extractor_info['class']}")
        rprint(f"  Accept: {extractor_info['accept']}")
    else:
        rprint(f"\n[red]Unknown extractor:[/red] {source.extractor}")


# Strategies subcommands


@strategies_app.command("backfill")
def backfill_strategies(
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum products to process"),
    delay: float = typer.Option(0.0, "--delay", help="Seconds to wait between AI calls"),
) -> None:
    """
    Generate strategies for Pokémon products that have none.

    Examples:
        release-intel ingest strategies backfill --limit 20
    """
    from release_intel.db.engine import get_session
    from release_intel.services.strategy_service import StrategyService

    with get_session() as session:
        service = StrategyService(session)
        if service.ai_client is None:
            rprint("[red]Error:[/red] No AI provider configured")
            raise typer.Exit(1)

        with console.status("[bold blue]Generating strategies...[/bold blue]"):
            created = service.backfill_pokemon_strategies(limit=limit, delay_seconds=delay)
        session.commit()

    rprint(f"[green]Generated {created} strateg{'y' if created == 1 else 'ies'}[/green]")


def _display_result(result: dict) -> None:
    """Display a pipeline result summary."""
    rprint("\n[bold]Statistics:[/bold]")
    rprint(f"  Sources: {result.get('sources', 0)}")
    rprint(f"    processed: {result.get('sourcesProcessed', 0)}")
    rprint(f"    skipped (robots.txt): {result.get('sourcesSkipped', 0)}")
    rprint(f"    failed: {result.get('sourcesFailed', 0)}")
    rprint(f"  Set candidates: {result.get('candidates', 0)}")
    rprint(f"  Sets merged: {result.get('setsMerged', 0)}")
    rprint(f"  Releases created: {result.get('releasesCreated', 0)}")
    rprint(f"  Releases matched: {result.get('releasesMatched', 0)}")
    rprint(f"  Needs review: {result.get('needsReview', 0)}")
    rprint(f"  Products upserted: {result.get('productsUpserted', 0)}")
    rprint(f"  Changes detected: {result.get('changesDetected', 0)}")
    rprint(f"  Strategies generated: {result.get('strategiesGenerated', 0)}")
    rprint(f"  Persistence failures: {result.get('persistenceFailures', 0)}")

    errors = result.get("errors", [])
    if errors:
        rprint(f"\n[bold red]Errors ({len(errors)}):[/bold red]")
        for error in errors[:10]:  # Show first 10
            rprint(f"  • {error}")
        if len(errors) > 10:
            rprint(f"  ... and {len(errors) - 10} more")
