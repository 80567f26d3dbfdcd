"""Unified CLI entry point for vrlookup.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (VRL_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from vrlookup.cli.lookup_cmd import run_lookup, serve
from vrlookup.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("vrlookup")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "vrlookup: vehicle inspection record lookup. "
    "Solves the portal captcha with a multimodal model and extracts the result fields. "
    "Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> "
    "env vars (VRL_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("lookup")(run_lookup)
app.command("serve")(serve)
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Configure logging; show help when no subcommand is provided."""
    if version:
        typer.echo(f"vrlookup {VERSION}")
        raise typer.Exit()

    from vrlookup.log_config import configure_logging
    from vrlookup.settings import get_settings

    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.logging.level, json_format=settings.logging.json_format)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
