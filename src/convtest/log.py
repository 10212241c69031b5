"""Logging configuration for console and debug-file output."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "convtest"


def setup_logger(
    debug_file: Optional[Path] = None,
    verbose: bool = False,
    level: str = "WARNING",
    console: Optional[Console] = None,
    logger_name: str = LOGGER_NAME,
) -> logging.Logger:
    """
    Configure and return the convtest logger.

    Args:
        debug_file: If given, every record at DEBUG and above is appended here
        verbose: Lower the console level to DEBUG
        level: Console level when not verbose
        console: Rich console to log to; defaults to stderr
        logger_name: Name of the logger instance

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(logger_name)

    # Clear any existing handlers for this specific logger
    logger.handlers.clear()

    logger.disabled = False
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=False,
    )
    console_handler.setLevel(logging.DEBUG if verbose else level.upper())
    logger.addHandler(console_handler)

    if debug_file is not None:
        debug_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(debug_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    return logger
