"""CLI commands for running lookups and serving the API."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

console = Console()


def run_lookup(
    license_plate: str = typer.Argument(..., help="Registration plate, e.g. 29A-12345."),
    sticker_number: str = typer.Argument(..., help="Inspection sticker number."),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", min=1, help="Override the attempt budget."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
    keep_screenshot: bool = typer.Option(
        False, "--keep-screenshot", help="Keep the result screenshot instead of deleting it on exit."
    ),
) -> None:
    """Run one lookup in a headless browser and print the result."""
    from vrlookup.evidence.artifacts import ArtifactRegistry
    from vrlookup.exceptions import LookupValidationError
    from vrlookup.lookup.workflow import LookupWorkflow
    from vrlookup.models.lookup import LookupRequest
    from vrlookup.settings import get_settings

    settings = get_settings()
    try:
        request = LookupRequest.create(license_plate, sticker_number)
    except LookupValidationError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=2)

    artifacts = ArtifactRegistry(
        settings.artifacts.output_dir,
        ttl_sec=settings.artifacts.ttl_sec,
        url_prefix=settings.artifacts.url_prefix,
    )
    workflow = LookupWorkflow.from_settings(settings, artifacts=artifacts)
    if max_attempts:
        workflow.max_attempts = max_attempts

    artifacts.start()
    try:
        if not as_json:
            console.print(Panel(f"[bold]Plate:[/bold] {request.license_plate}  [bold]Sticker:[/bold] {request.sticker_number}",
                                title="vrlookup", border_style="blue"))
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      console=console, transient=True, disable=as_json) as progress:
            progress.add_task("Querying portal...", total=None)
            result = workflow.run(request)
    finally:
        artifacts.stop(delete_pending=not keep_screenshot)

    if as_json:
        typer.echo(result.to_json())
    elif result.success:
        table = Table(title="Inspection record", show_header=True)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for name, value in result.data.items():
            table.add_row(name, value)
        console.print(table)
        if result.artifact and keep_screenshot:
            console.print(f"  Screenshot: {result.artifact.path}")
        console.print(f"[green]✓[/green] Done in {result.attempts} attempt(s)")
    else:
        console.print(f"[red]✗[/red] {result.error} ({result.attempts} attempt(s))")

    if not result.success:
        raise typer.Exit(code=1)


def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from settings)."),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from vrlookup.settings import get_settings

    settings = get_settings()
    uvicorn.run(
        "vrlookup.api.app:create_app",
        factory=True,
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )
