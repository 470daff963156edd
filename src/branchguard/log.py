"""Logging setup."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "branchguard"

# Between DEBUG and INFO: per-branch progress without request bodies.
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")


def get_log_level(verbose: bool, debug: bool) -> int:
    """Return the log level for the verbosity flags. ``debug`` wins over ``verbose``."""
    if debug:
        return logging.DEBUG
    if verbose:
        return VERBOSE
    return logging.INFO


def configure_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Configure the package logger to write to stderr through rich."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(get_log_level(verbose, debug))
    logger.handlers.clear()
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=debug,
        show_path=debug,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
