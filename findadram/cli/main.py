"""Find a Dram CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from findadram import __version__
from findadram.cli.trawl import trawl_app

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
    name="findadram",
    help="Find a Dram - trawls bar menus into a whiskey catalog",
    add_completion=False,
)
app.add_typer(trawl_app, name="trawl")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        # Request-level chatter from the HTTP clients
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _check_ai_config() -> None:
    """Check and display AI configuration status."""
    provider = os.environ.get("AI_PROVIDER", "anthropic").lower()
    key_var = "OPENAI_API_KEY" if provider == "openai" else "ANTHROPIC_API_KEY"

    if os.environ.get(key_var):
        typer.echo(f"  AI Provider: {provider} (configured)")
    else:
        typer.echo(f"  AI Provider: {provider} (not configured, extraction will fail)")
        typer.echo(f"  Tip: Set {key_var} in .env file to enable menu extraction")


@app.command()
def run(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the Find a Dram API server."""
    import uvicorn

    typer.echo(f"Starting Find a Dram on http://{host}:{port}")
    _check_ai_config()
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "findadram.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from findadram.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def add_bar(
    name: str = typer.Argument(..., help="Bar name"),
    website: str = typer.Option(None, "--website", "-w", help="Bar website"),
    city: str = typer.Option(None, "--city", "-c", help="City"),
) -> None:
    """Register a bar so menus can be trawled for it."""
    from findadram.db.engine import get_session, init_db as db_init
    from findadram.db.repositories import BarRepository

    db_init()
    with get_session() as session:
        bar_id = BarRepository(session).create(name=name, website=website, city=city)
        session.commit()

    typer.echo(f"Created bar '{name}': {bar_id}")


@app.command()
def version() -> None:
    """Show the Find a Dram version."""
    typer.echo(f"Find a Dram v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    typer.echo("Find a Dram Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    _check_ai_config()

    from findadram.db.engine import get_database_url
    from findadram.ingestion.config import get_default_config

    typer.echo(f"  Database: {get_database_url()}")
    config = get_default_config()
    typer.echo(f"  Fetch timeout: {config.fetch.timeout}s")
    typer.echo(f"  Batch delay: {config.batch.delay_seconds}s")


if __name__ == "__main__":
    app()
