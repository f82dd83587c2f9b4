"""cvparse command-line interface."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import CVParseConfig, DEFAULT_CONFIG_PATH, load_config, save_config
from .errors import CVParseError
from .log import setup_logging
from .models import SectionType
from .services import open_services

app = typer.Typer(
    name="cvparse",
    help="CV ingestion and structured extraction.",
    no_args_is_help=True,
)

console = Console()

_state: dict = {"config_path": None}


def _load() -> CVParseConfig:
    try:
        return load_config(_state["config_path"])
    except CVParseError as e:
        rprint(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Log level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write JSON logs to this file"),
):
    """cvparse: turn uploaded CVs into structured profile sections."""
    _state["config_path"] = config_path
    setup_logging(log_level, log_file)


# === Configuration ===


@app.command()
def init():
    """Create a configuration file interactively."""
    config_path = _state["config_path"] or DEFAULT_CONFIG_PATH
    config = _load()

    rprint("[bold]cvparse Configuration Setup[/bold]\n")

    rprint("[cyan]Storage[/cyan]")
    config.storage.backend = typer.prompt("Storage backend (local/supabase)", default=config.storage.backend)
    if config.storage.backend == "supabase":
        config.storage.supabase_url = typer.prompt("Supabase project URL", default=config.storage.supabase_url or "")
        rprint("[dim]Set CVPARSE_SUPABASE_KEY in your environment for the service key.[/dim]")
    config.storage.canonical_bucket = typer.prompt("Canonical bucket", default=config.storage.canonical_bucket)

    rprint("\n[cyan]Extraction endpoint[/cyan]")
    config.extraction.endpoint_url = typer.prompt("Endpoint URL", default=config.extraction.endpoint_url)

    rprint("\n[cyan]AI Configuration (used by 'cvparse serve')[/cyan]")
    config.ai.provider = typer.prompt("AI provider (openai/anthropic/ollama)", default=config.ai.provider)
    config.ai.model = typer.prompt("Model", default=config.ai.model)

    save_config(config, config_path)
    rprint(f"\n[green]Configuration saved to {config_path}[/green]")


@app.command("config")
def config_cmd(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
):
    """Show the effective configuration."""
    if not show:
        rprint("Use --show to display the configuration, or 'cvparse init' to create one.")
        return

    config = _load()
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Data directory", str(config.data_dir))
    table.add_row("Database", config.database_url)
    table.add_row("Storage backend", config.storage.backend)
    table.add_row("Canonical bucket", config.storage.canonical_bucket)
    table.add_row("Upload bucket", config.storage.upload_bucket)
    table.add_row("Extraction endpoint", config.extraction.endpoint_url)
    table.add_row("Max attempts", str(config.extraction.max_attempts))
    table.add_row("AI provider", f"{config.ai.provider}/{config.ai.model}")
    table.add_row("AI key", "[green]set[/green]" if config.ai.api_key else "[yellow]not set[/yellow]")
    table.add_row("Server", config.server.base_url)
    console.print(table)


# === Document Commands ===


@app.command()
def upload(
    owner_id: str = typer.Argument(..., help="Owner (user) ID"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF or Word file"),
):
    """Upload a CV file and make it the owner's active document."""
    config = _load()

    async def _run():
        async with open_services(config) as services:
            return await services.documents.upload(owner_id, path.read_bytes(), path.name)

    try:
        reference = asyncio.run(_run())
    except CVParseError as e:
        rprint(f"[red]Upload failed: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]✓ Uploaded {reference.display_name}[/green]")
    rprint(f"  [dim]{reference.storage_locator}[/dim]")


@app.command()
def link(
    owner_id: str = typer.Argument(..., help="Owner (user) ID"),
    url: str = typer.Argument(..., help="URL of an externally hosted CV"),
):
    """Use an externally hosted file as the owner's active document."""
    config = _load()

    async def _run():
        async with open_services(config) as services:
            return await services.documents.link(owner_id, url)

    try:
        reference = asyncio.run(_run())
    except CVParseError as e:
        rprint(f"[red]Link failed: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]✓ Linked {reference.display_name}[/green]")


@app.command()
def delete(
    owner_id: str = typer.Argument(..., help="Owner (user) ID"),
):
    """Remove the owner's active document."""
    config = _load()

    async def _run():
        async with open_services(config) as services:
            return await services.documents.delete(owner_id)

    if asyncio.run(_run()):
        rprint(f"[green]✓ Removed CV for {owner_id}[/green]")
    else:
        rprint(f"[yellow]No CV found for {owner_id}[/yellow]")


# === Ingestion ===


@app.command()
def ingest(
    owner_id: str = typer.Argument(..., help="Owner (user) ID"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Parse the owner's active CV and store the structured sections."""
    from .server import result_to_dict

    config = _load()

    async def _run():
        async with open_services(config) as services:
            reference = await services.references.get(owner_id)
            if reference is None:
                return None
            return await services.orchestrator.ingest(owner_id, reference)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Ingesting CV for {owner_id}...", total=None)
        result = asyncio.run(_run())

    if result is None:
        rprint(f"[yellow]No CV found for {owner_id}. Upload or link one first.[/yellow]")
        raise typer.Exit(1)

    if as_json:
        rprint(json.dumps(result_to_dict(result), indent=2))
    elif result.success:
        rprint(f"[green]✓ Parsed CV for {owner_id}[/green] [dim]({result.attempts} attempt(s))[/dim]")
        if result.healed:
            rprint("  [cyan]Stored file was re-uploaded and the link updated.[/cyan]")
        for issue in result.issues:
            rprint(f"  [yellow]! {issue}[/yellow]")
    else:
        stage = result.failed_stage.value if result.failed_stage else "unknown"
        rprint(f"[red]✗ {result.error.user_message}[/red]")
        rprint(f"  [dim]Failed while {stage}: {result.error}[/dim]")

    if not result.success:
        raise typer.Exit(1)


@app.command()
def show(
    owner_id: str = typer.Argument(..., help="Owner (user) ID"),
):
    """Show the owner's document and parsed sections."""
    config = _load()

    async def _run():
        async with open_services(config) as services:
            return (
                await services.references.get(owner_id),
                await services.records.get(owner_id),
            )

    reference, record = asyncio.run(_run())
    if reference is None and record is None:
        rprint(f"[yellow]No CV found for {owner_id}[/yellow]")
        raise typer.Exit(1)

    if reference:
        rprint(f"[cyan]Document:[/cyan] {reference.display_name}")
        rprint(f"  [dim]{reference.storage_locator}[/dim]")

    if record is None:
        rprint("[yellow]Not parsed yet. Run 'cvparse ingest' first.[/yellow]")
        return

    table = Table(title=f"Parsed CV for {owner_id}", show_lines=True)
    table.add_column("Section", style="cyan")
    table.add_column("Content")
    for section in SectionType:
        table.add_row(section.value.title(), getattr(record, section.field_name))
    console.print(table)


# === Server ===


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to run on"),
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind to"),
):
    """Start the cvparse server (extraction endpoint and local storage)."""
    import uvicorn

    from .server import create_app

    config = _load()
    if port is not None:
        config.server.port = port
    if host is not None:
        config.server.host = host

    rprint("\n[bold green]cvparse server[/bold green]")
    rprint("─" * 50)
    rprint(f"[cyan]Listening on:[/cyan] http://{config.server.host}:{config.server.port}")
    rprint(f"[cyan]Data stored:[/cyan]  {config.data_dir}")
    rprint("─" * 50)
    rprint("[dim]Press Ctrl+C to stop the server.[/dim]\n")

    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port, log_level="warning")


if __name__ == "__main__":
    app()
