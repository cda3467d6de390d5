import contextlib
import logging
import typer
import yaml
from pathlib import Path
from typing import Optional
from rich.console import Console
from mediaopt.config.loader import DEFAULT_CONFIG_PATH, build_config, load_config_data
from mediaopt.domain.errors import ConfigValidationError, MissingDependencyError, StateError
from mediaopt.domain.events import RunFailed
from mediaopt.domain.models import MediaKind
from mediaopt.infrastructure.event_bus import EventBus
from mediaopt.infrastructure.ffmpeg import FFmpegAdapter
from mediaopt.infrastructure.file_scanner import FileScanner
from mediaopt.infrastructure.housekeeping import HousekeepingService
from mediaopt.infrastructure.image_encoder import ImageEncoder
from mediaopt.infrastructure.ledger import DEFAULT_STATE_DIR, Ledger
from mediaopt.infrastructure.logging import DEFAULT_LOG_DIR, setup_logging
from mediaopt.infrastructure.tool_resolver import ToolResolver, check_dependencies
from mediaopt.pipeline.file_processor import FileProcessor
from mediaopt.pipeline.orchestrator import Orchestrator
from mediaopt.pipeline.scheduler import ConcurrencyScheduler
from mediaopt.ui.console import ConsoleReporter
from mediaopt.ui.json_output import JsonEventWriter, event_to_line

app = typer.Typer(help="mediaopt - batch image and video optimizer with resumable runs")


def _fail(message: str, json_output: bool, details: Optional[str] = None) -> None:
    if json_output:
        typer.echo(event_to_line(RunFailed(message=message, details=details)))
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command()
def optimize(
    target_dir: Path = typer.Argument(..., help="Directory containing media files to optimize"),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help=f"Path to YAML config (default: {DEFAULT_CONFIG_PATH} if present)"
    ),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", help="JPEG quality (1-100)"),
    crf: Optional[int] = typer.Option(None, "--crf", help="Video CRF (0-51, lower = better quality)"),
    audio_bitrate: Optional[str] = typer.Option(None, "--audio-bitrate", "-a", help="Video audio bitrate, e.g. 128k"),
    threshold: Optional[float] = typer.Option(
        None, "--threshold", "-t", help="Keep result only if new size < original * threshold (0-1]"
    ),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Worker budget for concurrent files"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Encode and report, but do not modify any file"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write results to this directory instead of replacing originals"
    ),
    webp: bool = typer.Option(False, "--webp", help="Convert images to WebP"),
    webp_quality: Optional[int] = typer.Option(None, "--webp-quality", help="WebP quality (1-100)"),
    keep_existing: bool = typer.Option(
        False, "--keep-existing", help="Output mode: skip files whose output already exists"
    ),
    skip_video: bool = typer.Option(False, "--skip-video", help="Do not re-encode videos (copied as-is in output mode)"),
    json_output: bool = typer.Option(False, "--json", help="Emit line-delimited JSON events on stdout"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose debug logging"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file"),
):
    """Optimize every supported image and video under TARGET_DIR."""
    if not target_dir.exists() or not target_dir.is_dir():
        _fail(f"Target directory does not exist: {target_dir}", json_output)
    target_dir = target_dir.resolve()

    overrides = {
        "jpeg_quality": quality,
        "video_crf": crf,
        "audio_bitrate": audio_bitrate,
        "size_threshold": threshold,
        "workers": workers,
        "output_dir": output,
        "webp_quality": webp_quality,
        "log_path": log_path,
        "dry_run": True if dry_run else None,
        "convert_to_webp": True if webp else None,
        "keep_existing": True if keep_existing else None,
        "skip_video": True if skip_video else None,
        "json_output": True if json_output else None,
        "debug": True if verbose else None,
    }
    try:
        data = load_config_data(config_path or DEFAULT_CONFIG_PATH, required=config_path is not None)
        config = build_config(data, overrides)
    except (ConfigValidationError, FileNotFoundError, yaml.YAMLError) as exc:
        _fail(str(exc), json_output)

    json_mode = config.json_output
    if config.output_dir is not None:
        output_dir = config.output_dir.expanduser()
        if output_dir.exists() and not output_dir.is_dir():
            _fail(f"Output path is not a directory: {output_dir}", json_mode)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _fail(f"Cannot create output directory {output_dir}: {exc}", json_mode)
        config = config.model_copy(update={"output_dir": output_dir.resolve()})

    console = Console(stderr=True)
    logger = setup_logging(
        DEFAULT_LOG_DIR,
        debug=config.debug,
        log_path=config.log_path,
        console=None if json_mode else console,
    )
    logger.info(
        f"mediaopt started: target={target_dir} output={config.output_dir or 'in-place'} "
        f"workers={config.workers} threshold={config.size_threshold} dry_run={config.dry_run}"
    )

    bus = EventBus()
    if json_mode:
        JsonEventWriter(bus)
        reporter = contextlib.nullcontext()
    else:
        reporter = ConsoleReporter(bus, console, config)

    resolver = ToolResolver()
    try:
        check_dependencies(config, resolver)
    except MissingDependencyError as exc:
        logger.error(str(exc))
        bus.publish(RunFailed(message=str(exc), details="Install the tools or point MEDIAOPT_TOOLS_DIR at them"))
        raise typer.Exit(code=1)

    try:
        ledger = Ledger.for_root(target_dir, state_dir=DEFAULT_STATE_DIR)
    except StateError as exc:
        logger.error(str(exc))
        bus.publish(RunFailed(message=str(exc)))
        raise typer.Exit(code=1)

    encoders = {MediaKind.IMAGE: ImageEncoder.from_config(config)}
    if not config.skip_video:
        encoders[MediaKind.VIDEO] = FFmpegAdapter.from_config(config, resolver)

    orchestrator = Orchestrator(
        config=config,
        event_bus=bus,
        file_scanner=FileScanner(exclude_dirs=[config.output_dir] if config.output_dir else []),
        ledger=ledger,
        scheduler=ConcurrencyScheduler(config.workers, config.size_classes),
        processor=FileProcessor(config, target_dir, ledger, encoders),
        housekeeper=HousekeepingService(),
    )

    try:
        with reporter:
            orchestrator.run(target_dir)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted by user")
        typer.secho("Interrupted by user (Ctrl+C)", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=130)
    except StateError as exc:
        logger.error(str(exc))
        bus.publish(RunFailed(message=str(exc)))
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
