"""Venue Agent CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from venue_agent.cli.ingest import ingest_app
from venue_agent.core.enums import ReferenceKind

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()

app = typer.Typer(
    name="venue-agent",
    help="Venue Agent - onboard venues into the directory from external sources",
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
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _check_service_config() -> None:
    """Display which external-service keys are configured."""
    keys = {
        "Business data / image search": "ACTOR_API_TOKEN",
        "Web scraping": "SCRAPE_API_KEY",
        "Anthropic": "ANTHROPIC_API_KEY",
        "OpenAI": "OPENAI_API_KEY",
    }
    for label, env_var in keys.items():
        state = "configured" if os.environ.get(env_var) else "not configured"
        typer.echo(f"  {label} ({env_var}): {state}")


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from venue_agent.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Venue Agent version."""
    typer.echo("Venue Agent v0.1.0")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from venue_agent.core.config import get_default_config
    from venue_agent.db.engine import get_database_url

    typer.echo("Venue Agent Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    config = get_default_config()
    typer.echo(f"  Pipeline config: {config.config_path or 'built-in defaults'}")
    typer.echo(f"  Default city: {config.pipeline.default_city}")
    _check_service_config()
    typer.echo(f"  Database: {get_database_url()}")


@app.command()
def parse_menu(
    path: Path = typer.Argument(..., exists=True, readable=True, help="Markdown or HTML file"),
    html: bool = typer.Option(False, "--html", help="Treat the file as HTML"),
) -> None:
    """Run the menu parser on a saved page and print what it finds."""
    from venue_agent.ingestion.menu_parser import MenuParser

    text = path.read_text(encoding="utf-8")
    parser = MenuParser()
    sections = parser.parse(html=text) if html else parser.parse(markdown=text)

    if not sections:
        rprint("[yellow]No menu sections found[/yellow]")
        raise typer.Exit(1)

    for section in sections:
        table = Table(title=section.name)
        table.add_column("Item", style="cyan")
        table.add_column("Price", justify="right")
        table.add_column("Description")
        for item in section.items:
            table.add_row(item.name, f"{item.price}", item.description or "")
        console.print(table)
    rprint(f"\n{len(sections)} sections, {sum(len(s.items) for s in sections)} items")


@app.command()
def references(
    kind: ReferenceKind = typer.Argument(..., help="Reference kind"),
    scope: str = typer.Option(None, "--scope", "-s", help="Scope, e.g. a city for neighbourhoods"),
) -> None:
    """List canonical reference entities of a kind."""
    from venue_agent.db.engine import get_session
    from venue_agent.db.repositories import ReferenceRepository

    with get_session() as session:
        entities = ReferenceRepository(session).list_by_kind(kind, scope)

    if not entities:
        rprint(f"[yellow]No {kind.value} entries[/yellow]")
        return

    table = Table(title=f"{kind.value} ({len(entities)})")
    table.add_column("Name", style="cyan")
    table.add_column("Slug")
    table.add_column("Scope")
    if kind == ReferenceKind.AWARD:
        table.add_column("Stars", justify="right")
    for entity in entities:
        row = [entity.name, entity.slug, entity.scope or "-"]
        if kind == ReferenceKind.AWARD:
            row.append(str(entity.stars) if entity.stars is not None else "-")
        table.add_row(*row)
    console.print(table)


@app.command()
def add_award(
    name: str = typer.Argument(..., help="Award name, e.g. 'One Michelin Star'"),
    stars: int = typer.Option(None, "--stars", help="Star count, if the award has one"),
) -> None:
    """Add a governed award. Awards are never created by the pipeline."""
    from venue_agent.db.engine import get_session
    from venue_agent.db.repositories import ReferenceRepository

    with get_session() as session:
        repo = ReferenceRepository(session)
        existing = repo.find_by_name(ReferenceKind.AWARD, name)
        if existing is not None:
            rprint(f"[yellow]Award already exists:[/yellow] {existing.name}")
            raise typer.Exit(1)
        award = repo.create(ReferenceKind.AWARD, name, stars=stars)
        session.commit()
        rprint(f"[green]Added award:[/green] {award.name} ({award.id})")


if __name__ == "__main__":
    app()
