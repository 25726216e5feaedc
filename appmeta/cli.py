"""
appmeta CLI.

Command-line interface for inspecting installer archives.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .core.config import get_config
from .core.exceptions import AppMetaError
from .core.logging import setup_logging
from .models.app import AppMetadata

app = typer.Typer(
    name="appmeta",
    help="Extract metadata from Android .apk and iOS .ipa archives",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from . import __version__
        console.print(f"appmeta v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """appmeta: installer archive metadata extraction."""
    pass


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _render(metadata: AppMetadata) -> None:
    table = Table(title="App Metadata")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Platform", metadata.platform.value)
    table.add_row("Name", metadata.name or "[dim]-[/dim]")
    table.add_row("Bundle ID", metadata.bundle_id)
    table.add_row("Version", metadata.version)
    table.add_row("Build", metadata.build or "[dim]-[/dim]")
    table.add_row("Size", f"{_format_size(metadata.size_bytes)} ({metadata.size_bytes} bytes)")
    if metadata.icon:
        table.add_row("Icon", f"{metadata.icon.width}x{metadata.icon.height} from {metadata.icon.source_path}")
    else:
        table.add_row("Icon", "[dim]-[/dim]")

    if metadata.ios_info:
        info = metadata.ios_info
        table.add_row("Distribution", info.type.value)
        table.add_row("Team", info.team_name or "[dim]-[/dim]")
        table.add_row("Allowed Devices", str(len(info.allowed_devices)))
        if info.expiration_date:
            table.add_row("Profile Expires", info.expiration_date.isoformat())

    console.print(table)

    if metadata.issues:
        console.print("\n[bold yellow]Fields left empty:[/bold yellow]")
        for issue in metadata.issues:
            console.print(f"  • {issue.field}: [yellow]{issue.error_type}[/yellow] {escape(issue.message)}")


@app.command()
def inspect(
    archive_path: Path = typer.Argument(
        ...,
        help="Path to the .apk or .ipa file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the record as JSON (icon pixels omitted)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging",
    ),
) -> None:
    """Extract and print the metadata of one archive."""
    from .services.extraction import extract_app_metadata

    config = get_config()
    if verbose:
        config = config.model_copy(update={"log_level": "DEBUG"})
    setup_logging(config)

    try:
        metadata = extract_app_metadata(archive_path, config)
    except AppMetaError as e:
        console.print(f"[bold red]✗ Extraction failed:[/bold red] {type(e).__name__}")
        console.print(f"Error: {escape(str(e))}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(metadata.model_dump_json(exclude={"icon": {"pixels"}}))
        return

    console.print(Panel.fit(f"[bold blue]{archive_path.name}[/bold blue]", border_style="blue"))
    _render(metadata)


@app.command()
def config() -> None:
    """Show the effective configuration."""
    cfg = get_config()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Log Level", cfg.log_level)
    table.add_row("Target Density", f"{cfg.decoding.target_density} dpi")
    table.add_row("Max Reference Hops", str(cfg.decoding.max_reference_hops))
    table.add_row("iOS Icon Fragment", cfg.archive.ios_icon_fragment)

    console.print(table)

    console.print("\n[dim]Configure via environment variables:[/dim]")
    console.print("  APPMETA_LOG_LEVEL, APPMETA_TARGET_DENSITY")
    console.print("  APPMETA_MAX_REFERENCE_HOPS, APPMETA_IOS_ICON_FRAGMENT")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
