"""CLI commands for storyreel using Typer and Rich.

Implements all 6 CLI commands:
- generate: Run the transition pipeline for a storyboard file
- runs: List recent runs in a table
- show: Show detailed run information
- delete: Delete one run from the ledger
- clear: Delete every run from the ledger
- stitch: Stitch explicit clip files in the given order
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from storyreel.config import settings
from storyreel.db import init_database, make_engine, make_sessionmaker
from storyreel.logging_config import configure_logging
from storyreel.orchestrator.pipeline import build_orchestrator
from storyreel.orchestrator.state import COMPLETED, ERROR
from storyreel.pipeline.stitcher import Stitcher, ffmpeg_version
from storyreel.schemas.shots import Shot
from storyreel.services.file_manager import FileManager
from storyreel.services.run_ledger import RunLedger

app = typer.Typer(name="storyreel", help="Turn an ordered storyboard into one stitched transition video")
console = Console()

_shots_adapter = TypeAdapter(list[Shot])


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Override the configured log level"),
):
    """Configure logging before any command runs."""
    configure_logging(log_level or settings.logging.level, settings.logging.file)


def load_storyboard(path: Path) -> list[Shot]:
    """Load shots from a JSON file holding a list or a {"storyboard": [...]} object."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("storyboard", data.get("shots"))
    if not isinstance(data, list):
        raise ValueError("Storyboard file must contain a list of shots or a 'storyboard' list")

    return _shots_adapter.validate_python(data)


@app.command()
def generate(
    storyboard_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Storyboard JSON file"),
):
    """Generate a transition video from a storyboard file.

    Plans a transition for every adjacent pair of shots plus a closing
    segment, renders all segments concurrently, and stitches them in order.
    """
    # Fail-fast dependency validation
    try:
        ffmpeg_version()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    try:
        shots = load_storyboard(storyboard_file)
    except (ValueError, ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] Invalid storyboard: {e}")
        raise typer.Exit(code=1)

    console.print(f"[yellow]Shots:[/yellow] {len(shots)}")
    console.print(f"[yellow]Segments:[/yellow] {len(shots)} ({len(shots) - 1} transitions + closing)")
    console.print()

    asyncio.run(_generate_async(shots))


async def _generate_async(shots: list[Shot]):
    """Async implementation of generate command."""
    engine = make_engine(settings.storage.database_url)
    orchestrator = None
    try:
        await init_database(engine)

        try:
            orchestrator = build_orchestrator(settings, make_sessionmaker(engine))
            with console.status("[bold green]Starting pipeline...") as status:
                def callback_wrapper(msg: str):
                    status.update(f"[bold green]{msg}")

                final_ref = await orchestrator.run(shots, progress_callback=callback_wrapper)

            console.print(f"[green]✓[/green] Video generation complete!")
            console.print(f"[green]Output:[/green] {final_ref}")

        except KeyboardInterrupt:
            console.print()
            console.print("[yellow]Pipeline interrupted.[/yellow]")
            raise typer.Exit(code=130)

        except Exception as e:
            console.print()
            console.print(f"[red]✗ Pipeline failed:[/red] {str(e)}")
            console.print("[yellow]Inspect the run with:[/yellow] storyreel runs")
            raise typer.Exit(code=1)
    finally:
        if orchestrator is not None:
            await orchestrator.aclose()
        await engine.dispose()


@app.command()
def runs(
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of runs to show"),
):
    """List recent pipeline runs."""
    asyncio.run(_runs_async(limit))


async def _runs_async(limit: int):
    """Async implementation of runs command."""
    engine, ledger = await _open_ledger()
    try:
        records = await ledger.list_runs(limit=limit)
    finally:
        await engine.dispose()

    if not records:
        console.print("[yellow]No runs found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Shots", justify="right")
    table.add_column("Created")
    table.add_column("Elapsed", justify="right")

    for record in records:
        status_color = _get_status_color(record.status)
        status_display = f"[{status_color}]{record.status}[/{status_color}]"
        elapsed_display = _format_elapsed(record.elapsed_ms) if record.elapsed_ms is not None else "-"
        table.add_row(
            record.id,
            status_display,
            str(len(record.shots)),
            record.created_at[:19].replace("T", " "),
            elapsed_display,
        )

    console.print(table)


@app.command()
def show(
    run_id: str = typer.Argument(..., help="Run ID"),
):
    """Show detailed run status, plans and clips."""
    asyncio.run(_show_async(run_id))


async def _show_async(run_id: str):
    """Async implementation of show command."""
    engine, ledger = await _open_ledger()
    try:
        record = await ledger.get_run(run_id)
    finally:
        await engine.dispose()

    if not record:
        console.print(f"[red]Error:[/red] Run not found: {run_id}")
        raise typer.Exit(code=1)

    status_color = _get_status_color(record.status)
    info_lines = [
        f"[bold]ID:[/bold] {record.id}",
        f"[bold]Status:[/bold] [{status_color}]{record.status}[/{status_color}]",
        f"[bold]Created:[/bold] {record.created_at}",
        f"[bold]Shots:[/bold] {len(record.shots)}",
    ]
    if record.elapsed_ms is not None:
        info_lines.append(f"[bold]Elapsed:[/bold] {_format_elapsed(record.elapsed_ms)}")
    if record.status == COMPLETED and record.final_output_ref:
        info_lines.append(f"[bold]Output:[/bold] [green]{record.final_output_ref}[/green]")
    if record.status == ERROR and record.error_message:
        info_lines.append(f"[bold]Error:[/bold] [red]{record.error_message}[/red]")

    console.print(Panel("\n".join(info_lines), title="[bold]Run Status[/bold]", border_style="blue"))

    if record.transition_plans:
        table = Table(title="Segments", show_header=True, header_style="bold blue")
        table.add_column("#", justify="right")
        table.add_column("From -> To")
        table.add_column("Duration", justify="right")
        table.add_column("Prompt")

        for plan in record.transition_plans:
            to_shot = plan.get("to_shot")
            pair = f"{plan['from_shot']['index']} -> {to_shot['index'] if to_shot else 'end'}"
            prompt = plan.get("prompt", "")
            prompt_display = prompt if len(prompt) <= 60 else prompt[:57] + "..."
            table.add_row(str(plan["index"]), pair, f"{plan['duration_seconds']}s", prompt_display)

        console.print(table)

    if record.clip_results:
        console.print("[bold]Clips:[/bold]")
        for clip in record.clip_results:
            console.print(f"  {clip['index']}: {clip.get('file_path') or '-'} ({clip.get('provider')})")


@app.command()
def delete(
    run_id: str = typer.Argument(..., help="Run ID to delete"),
):
    """Delete a run from the ledger."""
    asyncio.run(_delete_async(run_id))


async def _delete_async(run_id: str):
    """Async implementation of delete command."""
    engine, ledger = await _open_ledger()
    try:
        deleted = await ledger.delete_run(run_id)
    finally:
        await engine.dispose()

    if not deleted:
        console.print(f"[red]Error:[/red] Run not found: {run_id}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Deleted run {run_id}")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Delete every run from the ledger."""
    if not yes:
        typer.confirm("Delete all runs?", abort=True)
    asyncio.run(_clear_async())


async def _clear_async():
    """Async implementation of clear command."""
    engine, ledger = await _open_ledger()
    try:
        count = await ledger.clear_runs()
    finally:
        await engine.dispose()
    console.print(f"[green]✓[/green] Deleted {count} run(s)")


@app.command()
def stitch(
    clips: list[Path] = typer.Argument(..., help="Clip files, in playback order"),
):
    """Stitch existing clip files into one video without regenerating them."""
    # Fail-fast dependency validation
    try:
        ffmpeg_version()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)

    asyncio.run(_stitch_async(clips))


async def _stitch_async(clips: list[Path]):
    """Async implementation of stitch command."""
    stitcher = Stitcher(FileManager(settings.storage.tmp_dir))

    console.print(f"[yellow]Clips:[/yellow] {len(clips)}")
    console.print()

    try:
        with console.status("[bold green]Stitching video..."):
            output_path = await stitcher.stitch(clips)

        console.print(f"[green]✓[/green] Stitching complete!")
        console.print(f"[green]Output:[/green] {output_path}")

    except Exception as e:
        console.print()
        console.print(f"[red]✗ Stitching failed:[/red] {str(e)}")
        raise typer.Exit(code=1)


async def _open_ledger():
    """Create an engine with the schema in place and a ledger bound to it."""
    engine = make_engine(settings.storage.database_url)
    await init_database(engine)
    return engine, RunLedger(make_sessionmaker(engine))


def _format_elapsed(elapsed_ms: int) -> str:
    seconds = elapsed_ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    mins = int(seconds // 60)
    secs = seconds % 60
    return f"{mins}m {secs:.1f}s"


def _get_status_color(status: str) -> str:
    """Get Rich color for status display."""
    status_colors = {
        "started": "yellow",
        "generating": "cyan",
        "stitching": "magenta",
        "completed": "green",
        "error": "red",
    }
    return status_colors.get(status, "white")


if __name__ == "__main__":
    app()
