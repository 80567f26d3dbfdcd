"""CLI commands for inspecting and validating vrlookup settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate vrlookup configuration.")
console = Console()

_SECRET_KEYS = {"api_key"}


def _mask(value: object) -> object:
    if isinstance(value, dict):
        return {k: ("***" if k in _SECRET_KEYS and v else _mask(v)) for k, v in value.items()}
    return value


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (secrets masked)."""
    from vrlookup.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(_mask(settings.model_dump(mode="json")), indent=2, default=str))


@settings_app.command("validate")
def validate_settings(
    check_model: bool = typer.Option(False, "--check-model", help="Also check that the recognition model is reachable."),
) -> None:
    """Validate settings and report any issues."""
    from vrlookup.llm.factory import create_llm_provider
    from vrlookup.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Target: {settings.target.url}")
    console.print(f"  Recognition: {settings.llm.provider} ({settings.llm.model})")
    console.print(f"  Screenshots: {settings.artifacts.output_dir}")
    if settings.llm.provider == "gemini" and settings.llm.gemini_backend == "genai" and not settings.llm.api_key:
        console.print("[yellow]⚠[/yellow] No Gemini API key configured (GOOGLE_API_KEY / VRL_LLM__API_KEY).")

    if not check_model:
        return
    try:
        provider = create_llm_provider(settings=settings)
    except Exception as e:
        console.print(f"[red]✗[/red] Recognition provider unavailable: {e}")
        raise typer.Exit(code=1)
    try:
        reachable = provider.check_connectivity()
    finally:
        provider.close()
    if not reachable:
        console.print(f"[red]✗[/red] Model {settings.llm.model} is not reachable.")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Model {settings.llm.model} is reachable.")
