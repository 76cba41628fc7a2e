import signal
import typer
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table

from gifbatch.config.loader import load_config
from gifbatch.config.models import AppConfig
from gifbatch.domain.errors import BinaryNotFoundError, ConversionError
from gifbatch.infrastructure.encoders import probe_version
from gifbatch.infrastructure.event_bus import EventBus
from gifbatch.infrastructure.housekeeping import HousekeepingService
from gifbatch.infrastructure.logging import setup_logging
from gifbatch.infrastructure.paths import PathResolver, normalize_path
from gifbatch.infrastructure.workspace import default_temp_root
from gifbatch.pipeline.planning import build_plan, expand_inputs
from gifbatch.pipeline.service import ConversionService
from gifbatch.ui.dashboard import Dashboard
from gifbatch.ui.manager import UIManager
from gifbatch.ui.state import UIState, format_duration

app = typer.Typer(help="gifbatch - batch video to GIF conversion (ffmpeg + gifski)")


def _load(config_path: Optional[Path]) -> AppConfig:
    if config_path is None:
        return AppConfig()
    return load_config(config_path)


def _install_interrupt_handler(service: ConversionService):
    """First Ctrl+C finishes the current file; the second one interrupts it."""
    presses = {"count": 0}

    def handler(signum, frame):
        presses["count"] += 1
        if presses["count"] == 1:
            service.request_cancel()
            return
        raise KeyboardInterrupt

    return signal.signal(signal.SIGINT, handler)


def _parse_names(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Maps normalized input paths to GIF stems from INPUT=NAME pairs."""
    names: Dict[str, str] = {}
    for pair in pairs or []:
        source, sep, stem = pair.rpartition("=")
        stem = stem.strip()
        if not sep or not source or not stem or "/" in stem or "\\" in stem:
            raise ValueError(f"Invalid --name value '{pair}', expected INPUT=NAME")
        if stem.lower().endswith(".gif"):
            stem = stem[:-4]
        names[normalize_path(source)] = stem
    return names


@app.command()
def convert(
    inputs: List[str] = typer.Argument(..., help="Video files and/or folders to convert"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output folder (default: <input dir>/gifs)"),
    fps: Optional[int] = typer.Option(None, "--fps", help="Frames per second (overrides config)"),
    width: Optional[int] = typer.Option(None, "--width", help="Output width in pixels, height keeps aspect"),
    quality: Optional[int] = typer.Option(None, "--quality", help="gifski quality (1-100)"),
    name: Optional[List[str]] = typer.Option(None, "--name", help="Custom GIF name as INPUT=NAME (repeatable)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    temp_dir: Optional[Path] = typer.Option(None, "--temp-dir", help="Scratch root for frames (must be local)"),
    bin_dir: Optional[Path] = typer.Option(None, "--bin-dir", help="Folder holding the <platform>/ encoder builds"),
    open_folder: bool = typer.Option(False, "--open", help="Open the output folder when done"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert videos to animated GIFs, one file at a time."""
    try:
        config = _load(config_path)
        # Apply CLI overrides
        if fps is not None: config.general.fps = fps
        if width is not None: config.general.width = width
        if quality is not None: config.general.quality = quality
        if log_path is not None: config.general.log_path = str(log_path)
        if temp_dir is not None: config.general.temp_dir = str(temp_dir)
        if bin_dir is not None: config.binaries.bin_dir = str(bin_dir)
        if debug: config.general.debug = True

        if not 1 <= config.general.quality <= 100 or config.general.fps <= 0 or config.general.width <= 0:
            typer.secho("Error: fps and width must be positive, quality in 1-100.", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        try:
            names = _parse_names(name)
        except ValueError as e:
            typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        log_path_value = Path(config.general.log_path) if config.general.log_path else None
        logger = setup_logging(debug=config.general.debug, log_path=log_path_value)
        logger.info(f"gifbatch started: inputs={inputs}")
        logger.info(
            f"Config: fps={config.general.fps}, width={config.general.width}, "
            f"quality={config.general.quality}, debug={config.general.debug}"
        )

        # Housekeeping (scratch dirs left by a crashed run)
        temp_root = Path(config.general.temp_dir) if config.general.temp_dir else default_temp_root()
        HousekeepingService().cleanup_stale_workspaces(temp_root)

        bus = EventBus()
        service = ConversionService(config, event_bus=bus)

        files = expand_inputs(inputs, service.scanner)
        plan = build_plan(
            files,
            fps=config.general.fps,
            width=config.general.width,
            quality=config.general.quality,
            output_folder=str(output) if output else None,
            output_subdir=config.general.output_subdir,
            names=names,
        )
        if not plan:
            typer.secho("Error: No video files found in the given inputs.", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        logger.info(f"Plan: {len(plan)} file(s)")

        ui_state = UIState()
        UIManager(bus, ui_state)
        dashboard = Dashboard(ui_state)

        previous_handler = _install_interrupt_handler(service)
        try:
            with dashboard:
                result = service.run_batch(plan)
        finally:
            if previous_handler is not None:
                signal.signal(signal.SIGINT, previous_handler)

        summary = (
            f"{result.converted_count} converted, {result.skipped_count} skipped "
            f"in {format_duration(result.total_elapsed_seconds)}"
        )
        if result.cancelled:
            logger.info(f"Batch cancelled: {summary}")
            typer.secho(f"Conversion cancelled: {summary}", fg=typer.colors.YELLOW)
            raise typer.Exit(code=130)

        logger.info(f"Batch finished: {summary}")
        typer.secho(f"✓ Conversion complete: {summary}", fg=typer.colors.GREEN)
        if open_folder:
            typer.launch(plan[0].destination_folder)

    except KeyboardInterrupt:
        typer.secho("\nConversion interrupted by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except ConversionError as e:
        typer.secho(f"Conversion failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def check(
    bin_dir: Optional[Path] = typer.Option(None, "--bin-dir", help="Folder holding the <platform>/ encoder builds"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show where the encoders are expected and whether they run."""
    config = _load(config_path)
    if bin_dir is not None:
        config.binaries.bin_dir = str(bin_dir)

    resolver = PathResolver(bin_dir=config.binaries.bin_dir, strip_quarantine=config.binaries.strip_quarantine)

    table = Table(title="Encoders")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("Version")

    missing = False
    for name in (config.binaries.ffmpeg, config.binaries.gifski):
        try:
            path = resolver.resolve_binary(name)
        except BinaryNotFoundError as e:
            missing = True
            expected = str(e.path) if e.path else "-"
            table.add_row(name, expected, "[red]missing[/red]")
            continue
        version = probe_version(path)
        table.add_row(name, str(path), version or "[yellow]unknown[/yellow]")

    Console().print(table)
    if missing:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
