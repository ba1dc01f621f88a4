"""
Logging configuration for fmus.
"""
import logging
import os
import sys
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET']
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{reset}"
        return super().format(record)


def default_log_file() -> Path:
    """Get the default log file path following the XDG state directory."""
    xdg_state = os.environ.get("XDG_STATE_HOME")
    if xdg_state:
        return Path(xdg_state) / "fmus" / "fmus.log"
    return Path.home() / ".local" / "state" / "fmus" / "fmus.log"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None,
                  console: bool = False) -> None:
    """Setup logging configuration for fmus.

    The terminal UI owns stdout while the player runs, so records go to a
    file unless ``console`` is requested.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path (defaults to the XDG state dir)
        console: Also log colored records to stderr
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger('fmus')
    logger.setLevel(numeric_level)
    logger.propagate = False

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_formatter = ColoredFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    path = Path(log_file).expanduser() if log_file else default_log_file()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
    except OSError as e:
        # Unwritable log location; keep running without a file handler
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        logger.warning(f"Could not open log file {path}: {e}")
        return
    file_handler.setLevel(numeric_level)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module.

    Args:
        name: Module name

    Returns:
        Logger instance
    """
    return logging.getLogger(f'fmus.{name}')


# Custom exceptions for better error handling
class FmusError(Exception):
    """Base exception for fmus."""
    pass


class AudioBackendError(FmusError):
    """Audio device or decoder errors."""
    pass


class FilesystemError(FmusError):
    """Filesystem operation errors."""
    pass


class ConfigurationError(FmusError):
    """Configuration related errors."""
    pass


class ControlSurfaceError(FmusError):
    """External control protocol errors."""
    pass
