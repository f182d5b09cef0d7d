"""
Logging utilities for cellsnp.

Log records go through the standard logging module and are rendered by rich
on the console, optionally mirrored to a plain-text log file.
"""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

__all__ = [
    "console",
    "get_logger",
    "log_call",
    "run_clock",
    "setup_logging",
    "timed",
]

# Shared console for log records, progress bars and status messages
console = Console(stderr=True)

_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """
    Configure logging for cellsnp.

    Args:
        verbose: DEBUG level (per-SNP filter decisions, stage timings) instead of INFO.
        log_file: Optional path that receives a copy of every record.
    """
    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            rich_tracebacks=True,
            markup=False,
            show_path=verbose,
        )
    ]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given module name."""
    return logging.getLogger(name)


@contextmanager
def timed(operation: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """
    Log how long a pipeline stage took, at DEBUG level.

    Example:
        with timed("Loading SNPs", logger):
            snps = load_snps(path)
    """
    log = logger or logging.getLogger(__name__)
    start = time.perf_counter()
    log.debug("Starting: %s", operation)
    try:
        yield
    finally:
        log.debug("Completed: %s (%.3fs)", operation, time.perf_counter() - start)


@contextmanager
def run_clock(logger: logging.Logger | None = None) -> Iterator[None]:
    """Log wall-clock start and end time of a whole run and the seconds spent."""
    log = logger or logging.getLogger(__name__)
    start = datetime.now()
    log.info("start time: %s", start.strftime("%Y-%m-%d %H:%M:%S"))
    try:
        yield
    finally:
        end = datetime.now()
        log.info("end time: %s", end.strftime("%Y-%m-%d %H:%M:%S"))
        log.info("time spent: %d seconds.", int((end - start).total_seconds()))


def log_call(logger: logging.Logger | None = None) -> Callable:
    """
    Decorator logging entry, duration and failure of a function.

    Failures are logged at ERROR and re-raised unchanged.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = logger or logging.getLogger(func.__module__)
            log.debug("Calling %s", func.__name__)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error("%s failed: %s", func.__name__, e)
                raise
            log.debug("%s completed (%.3fs)", func.__name__, time.perf_counter() - start)
            return result

        return wrapper

    return decorator
