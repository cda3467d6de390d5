import logging
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_DIR = Path.home() / ".media-optimizer" / "logs"


def setup_logging(
    log_dir: Path = DEFAULT_LOG_DIR,
    debug: bool = False,
    log_path: Optional[Path] = None,
    console: Optional[Console] = None,
    console_level: int = logging.WARNING,
) -> logging.Logger:
    """
    Setup logging configuration for mediaopt.

    Always writes mediaopt.log; optionally mirrors records to a rich console
    (stderr) so they interleave cleanly with the progress bar.

    Args:
        log_dir: Directory holding mediaopt.log
        debug: If True, enable DEBUG level logging (file and console)
        log_path: Optional path to log file (overrides log_dir)
        console: Rich console for terminal output; None keeps the terminal quiet
        console_level: Threshold for the console handler when not in debug mode
    """
    log_file = Path(log_path) if log_path else (log_dir / "mediaopt.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.FileHandler(log_file)]
    if console is not None:
        rich_handler = RichHandler(console=console, show_path=False, markup=False)
        rich_handler.setLevel(logging.DEBUG if debug else console_level)
        handlers.append(rich_handler)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
