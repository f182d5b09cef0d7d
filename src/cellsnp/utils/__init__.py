"""
Utility modules for cellsnp.

Provides logging, timing, and other shared utilities.
"""

from .logging import console, get_logger, log_call, run_clock, setup_logging, timed

__all__ = [
    "console",
    "get_logger",
    "log_call",
    "run_clock",
    "setup_logging",
    "timed",
]
