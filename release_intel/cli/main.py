"""Release Intel CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from release_intel import __version__
from release_intel.cli.ingest import ingest_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="release-intel",
    help="Release Intel - trading-card release tracking and reconciliation",
    add_completion=False,
)
app.add_typer(ingest_app, name="ingest")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _check_ai_config() -> None:
    """Check and display AI configuration status."""
    provider = os.environ.get("AI_PROVIDER", "openai").lower()
    key_env = "ANTHROPIC_API_KEY" if provider == "anthropic" else "OPENAI_API_KEY"

    if os.environ.get(key_env):
        typer.echo(f"  AI Provider: {provider} (configured)")
    else:
        typer.echo(f"  AI Provider: {provider} (not configured; AI sources yield no releases)")
        typer.echo(f"  Tip: Set {key_env} in .env file to enable AI extraction")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the Release Intel web server."""
    import uvicorn

    typer.echo(f"Starting Release Intel on http://{host}:{port}")
    _check_ai_config()
    if not os.environ.get("RELEASE_INTEL_ADMIN_TOKEN"):
        typer.echo("  Admin token: Not set (admin routes will answer 403)")
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "release_intel.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from release_intel.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def migrate() -> None:
    """Upgrade the database schema with Alembic."""
    from release_intel.db.engine import run_migrations

    typer.echo("Running migrations...")
    run_migrations()
    typer.echo("Database is at the latest revision.")


@app.command()
def version() -> None:
    """Show the Release Intel version."""
    typer.echo(f"Release Intel v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    typer.echo("Release Intel Configuration")
    typer.echo("=" * 40)

    # Check .env file
    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    _check_ai_config()

    from release_intel.db.engine import get_database_url
    from release_intel.ingestion.registry import get_default_registry

    typer.echo(f"  Database: {get_database_url()}")
    typer.echo(f"  Run-state backend: {os.environ.get('RUN_STATE_BACKEND', 'database')}")

    registry = get_default_registry()
    typer.echo(f"  Sources config: {registry.config_path or 'Not found'}")
    typer.echo(
        f"  Sources: {len(registry.list_sources())} configured, "
        f"{len(registry.list_scrape_sources())} in scrape"
    )


if __name__ == "__main__":
    app()
