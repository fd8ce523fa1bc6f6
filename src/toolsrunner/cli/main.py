"""
Management CLI for the tools runner.

Commands:
    tools-runner status [PATH] - Show which config applies and whether its cache is reusable
    tools-runner cache list - List cached projects
    tools-runner cache prune - Remove stale cache directories now
    tools-runner config - Show current settings
    tools-runner version - Print version
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from toolsrunner import __version__
from toolsrunner.cache import CachePolicy, CacheStore
from toolsrunner.config import Settings, clear_settings_cache, get_settings
from toolsrunner.environment import load_environment
from toolsrunner.exceptions import ToolsRunnerError
from toolsrunner.logging import setup_logging
from toolsrunner.types import Reuse

app = typer.Typer(
    name="tools-runner",
    help="Tools Runner - version-pinned tool launcher",
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect and maintain the archive cache", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

console = Console()
error_console = Console(stderr=True)


def _load_settings() -> Settings:
    """Load settings or exit with a readable error."""
    try:
        clear_settings_cache()
        settings = get_settings()
    except ValidationError as e:
        error_console.print(f"[red]Error:[/red] Invalid runner settings:\n{escape(str(e))}")
        raise typer.Exit(1)
    setup_logging(log_level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    return settings


def _fail(error: ToolsRunnerError) -> typer.Exit:
    error_console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(1)


@app.command()
def status(
    path: Annotated[
        Optional[Path],
        typer.Argument(help="Directory to resolve the project config from"),
    ] = None,
) -> None:
    """Show the project config in effect and the cache decision for it.

    Nothing is fetched and the cache is not modified.
    """
    settings = _load_settings()
    store = CacheStore(settings.HOME_DIR)
    policy = CachePolicy(store, retention=settings.retention)

    try:
        environment = load_environment(path or Path.cwd(), settings.ENV_FILENAME)
        decision = policy.decide(environment.project_key, environment.version_token)
    except ToolsRunnerError as e:
        raise _fail(e)

    if isinstance(decision, Reuse):
        verdict = f"[green]reuse[/green] {escape(str(decision.directory))}"
    else:
        verdict = f"[yellow]refresh[/yellow] ({decision.reason.value})"

    console.print(
        Panel(
            f"[bold]Project:[/bold] {escape(environment.project_key)}\n"
            f"[bold]Executable:[/bold] {escape(environment.executable)}\n"
            f"[bold]URL:[/bold] {escape(environment.fetch_spec.url)}\n"
            f"[bold]Checksum:[/bold] {escape(environment.version_token or '-')}\n"
            f"[bold]Cache:[/bold] {verdict}",
            title="[bold cyan]Tools Runner[/bold cyan]",
            border_style="cyan",
        )
    )


@cache_app.command("list")
def list_cache() -> None:
    """List cached projects and their cache directories."""
    settings = _load_settings()
    store = CacheStore(settings.HOME_DIR)

    try:
        index = store.load()
    except ToolsRunnerError as e:
        raise _fail(e)

    if not index.entries:
        console.print("[dim]Cache is empty.[/dim]")
        return

    table = Table(title="Cached tools", show_header=True)
    table.add_column("Project", style="cyan")
    table.add_column("Directory")
    table.add_column("Last used")
    table.add_column("Checksum")
    table.add_column("On disk")

    for project_key, entry in sorted(index.entries.items()):
        present = store.directory_if_present(entry.directory) is not None
        table.add_row(
            escape(project_key),
            entry.directory,
            entry.last_used_at.strftime("%Y-%m-%d %H:%M"),
            entry.version_token or "[dim]none[/dim]",
            "[green]yes[/green]" if present else "[red]no[/red]",
        )

    console.print(table)


@cache_app.command()
def prune() -> None:
    """Remove cache directories not used within the retention window."""
    settings = _load_settings()
    policy = CachePolicy(CacheStore(settings.HOME_DIR), retention=settings.retention)

    try:
        result = policy.evict_stale()
    except ToolsRunnerError as e:
        raise _fail(e)

    console.print(f"Removed {len(result.removed)} stale cache directories.")
    for name, reason in result.failed.items():
        error_console.print(f"[yellow]Could not remove[/yellow] {escape(name)}: {escape(reason)}")


@app.command()
def config() -> None:
    """Show current settings."""
    settings = _load_settings()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(f"TOOLS_RUNNER_{key}", display_value)

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"tools-runner version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
