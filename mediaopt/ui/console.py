from rich.console import Console
from rich.progress import Progress, BarColumn, SpinnerColumn, TextColumn, TimeElapsedColumn, TimeRemainingColumn
from rich.table import Table
from mediaopt.config.models import RunConfig
from mediaopt.domain.events import FileCompleted, ProgressUpdated, RunCompleted, RunFailed, RunStarted
from mediaopt.domain.models import format_size
from mediaopt.infrastructure.event_bus import EventBus


class ConsoleReporter:
    """Human-readable rendering: banner, one progress tick per settled file, summary."""

    def __init__(self, event_bus: EventBus, console: Console, config: RunConfig):
        self.console = console
        self.config = config
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=console,
        )
        self._task_id = None
        self._started = False

        event_bus.subscribe(RunStarted, self.on_run_started)
        event_bus.subscribe(FileCompleted, self.on_file_completed)
        event_bus.subscribe(ProgressUpdated, self.on_progress)
        event_bus.subscribe(RunCompleted, self.on_run_completed)
        event_bus.subscribe(RunFailed, self.on_run_failed)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._stop()
        return False

    def _stop(self) -> None:
        if self._started:
            self.progress.stop()
            self._started = False

    def on_run_started(self, event: RunStarted) -> None:
        config = self.config
        mode = f"output -> {event.output_dir}" if event.output_dir else "in-place"
        self.console.print(f"[bold]Media optimizer[/bold] {event.input_dir}")
        self.console.print(
            f"Mode: {mode} | Files: {event.total_files} | Workers: {config.workers} | "
            f"JPEG q{config.jpeg_quality} | CRF {config.video_crf} | Threshold {config.size_threshold:.2f}"
        )
        if config.convert_to_webp:
            self.console.print(f"Converting images to WebP (q{config.webp_quality})")
        if config.dry_run:
            self.console.print("[yellow]DRY RUN: no files will be modified[/yellow]")

        if event.total_files == 0:
            return
        self._task_id = self.progress.add_task("Optimizing", total=event.total_files)
        self.progress.start()
        self._started = True

    def on_file_completed(self, event: FileCompleted) -> None:
        if self._task_id is None:
            return
        name = event.path.name
        if event.error:
            description = f"[red]ERROR[/red] {name}"
        elif event.skipped:
            description = f"[dim]SKIP[/dim] {name}"
        else:
            description = f"[green]OK[/green] {name} -{event.reduction_percent:.1f}%"
        self.progress.update(self._task_id, description=description)

    def on_progress(self, event: ProgressUpdated) -> None:
        if self._task_id is not None:
            self.progress.update(self._task_id, completed=event.current)

    def on_run_completed(self, event: RunCompleted) -> None:
        self._stop()
        table = Table(title="Optimization summary", show_header=True)
        table.add_column("")
        table.add_column("This run", justify="right")
        table.add_column("All time", justify="right")

        historical = event.historical_stats
        table.add_row("Files processed", str(event.files_processed), str(historical.total_files_ever_processed))
        table.add_row("Optimized", str(event.files_optimized), "")
        table.add_row("Skipped", str(event.files_skipped), "")
        table.add_row("Errors", str(event.errors), "")
        table.add_row(
            "Saved",
            format_size(event.total_bytes_saved),
            format_size(historical.total_bytes_saved_historically),
        )
        table.add_row(
            "Reduction",
            f"{event.average_reduction:.1f}%",
            f"{historical.average_historical_reduction:.1f}%",
        )
        self.console.print(table)
        self.console.print(f"Finished in {event.duration_seconds:.1f}s")

    def on_run_failed(self, event: RunFailed) -> None:
        self._stop()
        self.console.print(f"[bold red]Error:[/bold red] {event.message}")
        if event.details:
            self.console.print(event.details)
