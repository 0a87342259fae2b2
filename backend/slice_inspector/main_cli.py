# main_cli.py

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from slice_inspector.config import settings, setup_logging
from slice_inspector.core.common_types import (
    IslandDetectionConfig, IssueType, OverhangDetectionConfig, ResinTrapDetectionConfig,
    TouchingBoundDetectionConfig
)
from slice_inspector.core.exceptions import SliceInspectorError
from slice_inspector.core.utils import format_time
from slice_inspector.layers import ImageDirectoryStorage, LayerStack
from slice_inspector.processes.drawing import parse_operations
from slice_inspector.services import InspectionService

logger = logging.getLogger(__name__)

# --- Typer App Initialization ---
app = typer.Typer(help="Layer stack inspection CLI for resin printing: issues, bounds and pixel edits.")
console = Console()

ISSUE_COLORS = {
    IssueType.EMPTY: "dim",
    IssueType.TOUCHING_BOUND: "yellow",
    IssueType.ISLAND: "red",
    IssueType.OVERHANG: "magenta",
    IssueType.RESIN_TRAP: "cyan",
}


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the configured log level.")):
    """Configure logging before any command runs."""
    setup_logging(log_level)


def _open_stack(directory: Path, pixel_size: float = 0.0, layer_height: float = 0.0) -> LayerStack:
    storage = ImageDirectoryStorage(str(directory), pixel_size=(pixel_size, pixel_size), layer_height=layer_height)
    stack = LayerStack(storage)
    if stack.count == 0:
        console.print(f"[yellow]No layer images found in {directory}.[/]")
    return stack


@app.command()
def detect(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, readable=True, help="Directory of grayscale PNG layers, sorted by file name."),
    islands: bool = typer.Option(True, "--islands/--no-islands", help="Detect islands."),
    overhangs: bool = typer.Option(True, "--overhangs/--no-overhangs", help="Detect overhangs."),
    resin_traps: bool = typer.Option(True, "--resin-traps/--no-resin-traps", help="Detect resin traps."),
    touching_bounds: bool = typer.Option(True, "--touching-bounds/--no-touching-bounds", help="Detect pixels touching the plate margins."),
    empty_layers: bool = typer.Option(settings.detect_empty_layers, "--empty-layers/--no-empty-layers", help="Report empty layers."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Override the worker pool size."),
    output_json: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the detection report as a JSON file."),
):
    """Detect printability issues on a layer stack."""
    console.print(f"Inspecting: [cyan]{directory}[/]")
    try:
        stack = _open_stack(directory)
        service = InspectionService(stack, max_workers=workers)
        report = service.detect_issues(
            island_config=IslandDetectionConfig(enabled=islands),
            overhang_config=OverhangDetectionConfig(enabled=overhangs),
            resin_trap_config=ResinTrapDetectionConfig(enabled=resin_traps),
            touching_bound_config=TouchingBoundDetectionConfig(enabled=touching_bounds),
            detect_empty_layers=empty_layers,
        )
    except SliceInspectorError as e:
        console.print(f"\n[bold red]Detection Failed: {e}[/]")
        raise typer.Exit(code=1)

    console.print(f"Layers: {report.layer_count}, analysis time: {format_time(report.analysis_time_sec)}")
    if not report.issues:
        console.print(Panel("[bold green]No issues found[/]", title="Detection", expand=False))
    else:
        table = Table(title="Detected Issues", show_header=True, header_style="bold magenta")
        table.add_column("Type")
        table.add_column("Layer", justify="right")
        table.add_column("Pixels", justify="right")
        table.add_column("Bounding Rectangle")
        for issue in report.issues:
            rect = issue.bounding_rectangle
            color = ISSUE_COLORS[issue.issue_type]
            table.add_row(f"[{color}]{issue.issue_type.value}[/]", str(issue.layer_index), str(issue.pixel_count),
                          f"x={rect.x} y={rect.y} w={rect.width} h={rect.height}")
        console.print(table)

        summary = Table(show_header=False, box=None, padding=(0, 1))
        for issue_type, count in report.counts().items():
            if count:
                summary.add_row(f"{issue_type.value}:", str(count))
        console.print(summary)

    if output_json:
        try:
            output_json.write_text(report.model_dump_json(indent=2))
            console.print(f"\n[green]Detection report saved to: {output_json}[/]")
        except OSError as e:
            console.print(f"\n[bold red]Error saving JSON output to {output_json}: {e}[/]")
            raise typer.Exit(code=1)


@app.command()
def bounds(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, readable=True, help="Directory of grayscale PNG layers."),
    pixel_size: float = typer.Option(0.0, "--pixel-size", min=0.0, help="Pixel pitch in millimetres, to report the rectangle in mm."),
):
    """Print the bounding rectangle of every lit pixel in the stack."""
    try:
        stack = _open_stack(directory, pixel_size=pixel_size)
        rect = InspectionService(stack).get_bounding_rectangle()
    except SliceInspectorError as e:
        console.print(f"\n[bold red]Bounds Failed: {e}[/]")
        raise typer.Exit(code=1)

    if rect.is_empty:
        console.print("[yellow]The stack has no lit pixels.[/]")
        return
    console.print(f"Bounding rectangle: x={rect.x} y={rect.y} width={rect.width} height={rect.height}")
    if pixel_size > 0:
        mm = stack.bounding_rectangle_mm()
        console.print(f"In millimetres: x={mm.x} y={mm.y} width={mm.width} height={mm.height}")


@app.command()
def draw(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, readable=True, writable=True, help="Directory of grayscale PNG layers, edited in place."),
    operations_file: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True, help="JSON list of pixel operations."),
):
    """Apply pixel operations (brush, text, eraser, supports, drain holes) and save touched layers."""
    try:
        operations = parse_operations(operations_file.read_text())
        stack = _open_stack(directory)
        touched = InspectionService(stack).apply_drawings(operations)
    except SliceInspectorError as e:
        console.print(f"\n[bold red]Drawing Failed: {e}[/]")
        raise typer.Exit(code=1)

    console.print(f"[green]Applied {len(operations)} operations; {len(touched)} layers saved.[/]")
    if touched:
        console.print(f"Layers: {', '.join(str(i) for i in touched)}")


if __name__ == "__main__":
    app()
