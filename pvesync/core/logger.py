"""Unified logging for pvesync with console and file output."""
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console()

LOG_DIR = Path("/var/log/pvesync")
LOG_FILE = LOG_DIR / "pvesync.log"

FALLBACK_LOG_FILE = Path("/tmp/pvesync.log")

_file_handler = None


def resolve_log_file(log_file: str = None) -> Path:
    """Pick the log file path, creating its directory.

    Falls back to FALLBACK_LOG_FILE when the requested directory cannot be
    created (e.g. /var/log when not running as root).
    """
    target = Path(log_file) if log_file else LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        target = FALLBACK_LOG_FILE
        target.parent.mkdir(parents=True, exist_ok=True)
    return target


def setup_file_logging(log_file: str = None, verbose: bool = False) -> Path:
    """Attach a timestamped file handler to the ``pvesync`` logger tree.

    Called once per process; later calls return the existing log path.

    Returns:
        Path actually written to
    """
    global _file_handler

    if _file_handler is not None:
        return Path(_file_handler.baseFilename)

    target_log_file = resolve_log_file(log_file)

    _file_handler = logging.FileHandler(target_log_file)
    _file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logging.getLogger("pvesync").addHandler(_file_handler)
    set_verbose(verbose)

    logging.getLogger("pvesync").info(f"pvesync logging to {target_log_file}")
    return target_log_file


def set_verbose(verbose: bool) -> None:
    """Switch every pvesync logger, and the file handler, between INFO and DEBUG."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger("pvesync").setLevel(level)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith("pvesync") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
    if _file_handler is not None:
        _file_handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance with console output.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger with a timestamped Rich console handler
    """
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console,
            show_path=False,
            log_time_format="[%Y-%m-%d %H:%M:%S]",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger
