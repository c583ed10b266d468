"""
Rich console configuration for the static map renderer.

Provides styled logging, a tile download progress bar and summary panels.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme
from rich.panel import Panel
from rich.table import Table
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    MofNCompleteColumn,
    TimeElapsedColumn,
)

# Custom theme for Tesla-inspired styling
TESLA_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "highlight": "bold magenta",
    "muted": "dim",
    "gps": "green",
})

# Global console instance
console = Console(theme=TESLA_THEME)


def setup_rich_logging(verbose: bool = False) -> None:
    """
    Configure logging to use Rich handler for beautiful output.

    Args:
        verbose: Enable DEBUG level logging with full details
    """
    level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                show_time=verbose,
                show_path=verbose,
                rich_tracebacks=True,
                tracebacks_show_locals=verbose,
                markup=False,
            )
        ],
        force=True,  # Override any existing configuration
    )
    # urllib3 logs every connection at DEBUG; keep it quiet unless it warns
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def create_tile_progress() -> Progress:
    """
    Create a progress bar for fetching map tiles.

    Returns:
        Configured Progress instance (transient, disappears when done)
    """
    return Progress(
        SpinnerColumn("dots"),
        TextColumn("[cyan]{task.description}"),
        BarColumn(bar_width=30, style="dim cyan", complete_style="cyan"),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def print_render_summary(
    kind: str,
    output_file: str,
    width: int,
    height: int,
    dark: bool = False,
    points: Optional[int] = None,
    tiles_cached: int = 0,
    tiles_downloaded: int = 0,
    tiles_missing: int = 0,
) -> None:
    """
    Print a styled summary of a finished render.

    Args:
        kind: Map kind ("trip", "charging", "parking")
        output_file: Path of the written image
        width: Image width in pixels
        height: Image height in pixels
        dark: Whether dark mode was applied
        points: Number of trip points (trip maps only)
        tiles_cached: Tiles served from the cache
        tiles_downloaded: Tiles fetched from the tile servers
        tiles_missing: Tiles replaced by a blank placeholder
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold green")

    table.add_row("Map", kind)
    table.add_row("Size", f"{width}x{height}")
    table.add_row("Mode", "dark" if dark else "normal")
    if points:
        table.add_row("GPS Points", f"{points:,}")
    table.add_row("Tiles", f"{tiles_cached} cached, {tiles_downloaded} downloaded")
    if tiles_missing:
        table.add_row("Missing Tiles", f"[warning]{tiles_missing}[/]")
    table.add_row("Output", output_file)

    panel = Panel(
        table,
        title="[bold green]Complete[/]",
        border_style="green",
        padding=(1, 2),
    )
    console.print()
    console.print(panel)


def print_error(message: str, hint: Optional[str] = None) -> None:
    """
    Print a styled error message.

    Args:
        message: Error message
        hint: Optional hint for resolution
    """
    console.print(f"\n[error]Error:[/] {escape(message)}")
    if hint:
        console.print(f"[muted]Hint: {escape(hint)}[/]")
